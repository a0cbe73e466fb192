"""Model provider data models (provider-agnostic)."""

import json
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

FunctionResult = dict[str, Any]


class FunctionCall(BaseModel):
    """A function invocation requested by the model."""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    id: str | None = None

    def signature(self) -> tuple[str, str]:
        """Identity of the call used to avoid dispatching it twice in one run."""
        return self.name, json.dumps(self.arguments, sort_keys=True, default=str)


@dataclass
class LLMUsage:
    """Token usage reported by the provider."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class ModelResponse(BaseModel):
    """Provider-agnostic model response."""

    content: str = ""
    function_calls: list[FunctionCall] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def model(self) -> str:
        return self.metadata.get("model", "unknown")


@dataclass
class DispatchRecord:
    """A dispatched function call and its normalized result."""

    function_name: str
    result: FunctionResult
    arguments: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return bool(self.result.get("success"))

    def signature(self) -> tuple[str, str]:
        return FunctionCall(name=self.function_name, arguments=self.arguments).signature()
