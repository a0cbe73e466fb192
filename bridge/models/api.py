"""HTTP API request and response models."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ApiErrorCode(StrEnum):
    """Error codes returned by the HTTP API."""

    AUTHENTICATION_FAILED = "authentication_failed"
    INVALID_REQUEST = "invalid_request"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    API_DISABLED = "api_disabled"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    INTERNAL_ERROR = "internal_error"


class ApiRequest(BaseModel):
    """Request model for the process-message endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    message: str | None = None
    session_id: str | None = Field(default=None, alias="sessionId")


class FunctionResultModel(BaseModel):
    """One dispatched function call in an API response."""

    model_config = ConfigDict(populate_by_name=True)

    function_name: str = Field(alias="functionName")
    result: dict[str, Any]


class ApiMetadata(BaseModel):
    """Metadata about how a response was produced."""

    model_config = ConfigDict(populate_by_name=True)

    model: str = "unknown"
    processing_time: str = Field(default="0.0s", alias="processingTime")


class ApiResponse(BaseModel):
    """Successful response model for the process-message endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    results: list[FunctionResultModel] = Field(default_factory=list)
    response: str = ""
    session_id: str = Field(alias="sessionId")
    metadata: ApiMetadata = Field(default_factory=ApiMetadata)


class ApiErrorDetail(BaseModel):
    """Error details."""

    code: ApiErrorCode
    message: str


class ApiErrorResponse(BaseModel):
    """Error response model."""

    success: bool = False
    error: ApiErrorDetail


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
    conversations: int
