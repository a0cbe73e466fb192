"""HTTP endpoints: health, the process-message API and the Slack Events API."""

import json
import time
from datetime import UTC, datetime
from typing import Annotated, Any

from cuid2 import cuid_wrapper
from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request, Response
from fastapi.responses import JSONResponse

from bridge import __version__
from bridge.container import BridgeContainer
from bridge.errors import OrchestrationError
from bridge.models.api import (
    ApiErrorCode,
    ApiErrorDetail,
    ApiErrorResponse,
    ApiMetadata,
    ApiRequest,
    ApiResponse,
    FunctionResultModel,
    HealthResponse,
)
from bridge.services.conversation import friendly_error_message
from bridge.services.slack_events import verify_slack_signature
from bridge.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

cuid = cuid_wrapper()

API_CHANNEL_ID = "api"


def get_container(request: Request) -> BridgeContainer:
    return request.app.state.container


Container = Annotated[BridgeContainer, Depends(get_container)]


def error_response(status_code: int, code: ApiErrorCode, message: str, headers: dict[str, str] | None = None):
    body = ApiErrorResponse(error=ApiErrorDetail(code=code, message=message))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(container: Container) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
        conversations=container.store.count(),
    )


@router.post("/api/process-message", response_model=ApiResponse, tags=["API"])
async def process_message(
    request: Request,
    response: Response,
    container: Container,
    x_api_key: Annotated[str | None, Header()] = None,
) -> Any:
    """Run a natural-language instruction and return the reply and function results."""
    settings = container.settings.api
    ip = client_ip(request)

    if not settings.enabled:
        logger.warning("API request rejected: API endpoint is disabled")
        return error_response(403, ApiErrorCode.API_DISABLED, "API endpoint is disabled")

    if not x_api_key or x_api_key != settings.api_key:
        logger.warning(f"API request rejected: invalid API key from {ip}")
        return error_response(401, ApiErrorCode.AUTHENTICATION_FAILED, "Invalid API key")

    rate = container.rate_limiter.hit(ip)
    if not rate.allowed:
        retry_in = max(0, rate.reset_at - int(time.time()))
        return error_response(
            429,
            ApiErrorCode.RATE_LIMIT_EXCEEDED,
            f"Rate limit exceeded. Try again in {retry_in} seconds.",
            headers=rate.headers(),
        )
    response.headers.update(rate.headers())

    try:
        body = ApiRequest.model_validate(await request.json())
    except ValueError:
        return error_response(400, ApiErrorCode.INVALID_REQUEST, "Request body must be a JSON object")

    if not body.message:
        logger.warning("API request rejected: missing required field 'message'")
        return error_response(400, ApiErrorCode.MISSING_REQUIRED_FIELD, "Missing required field: message")

    session_id = body.session_id or cuid()
    logger.info(f"Processing API request for session {session_id}: {body.message[:50]}")

    try:
        result = await container.conversations.handle_incoming(f"api:{session_id}", API_CHANNEL_ID, ip, body.message)
    except ValueError as e:
        logger.warning(f"Message validation error for session {session_id}: {e}")
        return error_response(400, ApiErrorCode.INVALID_REQUEST, str(e))
    except OrchestrationError as e:
        logger.error(f"Orchestration failed for session {session_id}: {e}")
        return error_response(500, ApiErrorCode.INTERNAL_ERROR, friendly_error_message(e))
    except Exception as e:
        logger.error(f"API processing error for session {session_id}: {e}", exc_info=True)
        return error_response(
            500, ApiErrorCode.INTERNAL_ERROR, "An internal error occurred while processing the request"
        )

    processing_time = result.metadata.get("processing_time", 0.0)
    logger.info(f"API request processed in {processing_time:.1f}s")
    return ApiResponse(
        results=[FunctionResultModel(function_name=r.function_name, result=r.result) for r in result.function_results],
        response=result.reply_text,
        session_id=session_id,
        metadata=ApiMetadata(model=result.metadata.get("model", "unknown"), processing_time=f"{processing_time:.1f}s"),
    )


@router.post("/slack/events", tags=["Slack"])
async def slack_events(request: Request, background_tasks: BackgroundTasks, container: Container) -> Any:
    """Slack Events API endpoint.

    Events are acknowledged immediately and processed in the background, since
    Slack expects an answer within three seconds.
    """
    body = await request.body()
    if not verify_slack_signature(
        container.settings.slack.signing_secret,
        request.headers.get("x-slack-request-timestamp", ""),
        body,
        request.headers.get("x-slack-signature", ""),
    ):
        logger.warning("Rejected Slack request with invalid signature")
        return JSONResponse(status_code=401, content={"ok": False, "error": "invalid_signature"})

    try:
        payload = json.loads(body)
    except ValueError:
        return JSONResponse(status_code=400, content={"ok": False, "error": "invalid_payload"})
    if not isinstance(payload, dict):
        return JSONResponse(status_code=400, content={"ok": False, "error": "invalid_payload"})

    if payload.get("type") == "url_verification":
        return {"challenge": payload.get("challenge")}

    # Slack redelivers events it thinks timed out; the first delivery is already being handled
    if request.headers.get("x-slack-retry-num"):
        return {"ok": True}

    if payload.get("type") == "event_callback":
        background_tasks.add_task(container.events.handle_event, payload.get("event", {}))

    return {"ok": True}
