"""OpenRouter client for OpenAI-compatible chat completions with tools."""

import asyncio
import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from bridge.clients.base import with_prompt
from bridge.errors import ProviderAuthError, ProviderError, ProviderRateLimitError, ProviderResponseError
from bridge.models.llm import FunctionCall, LLMUsage, ModelResponse
from bridge.models.messages import ConversationMessage
from bridge.tools.base import FunctionDefinition
from bridge.utils.logging import get_logger

logger = get_logger(__name__)

OPENROUTER_API_URL = "https://openrouter.ai/api/v1"

_AUTH_ERROR_STATUS_CODES = {401, 403}


@dataclass
class OpenRouterConfig:
    """Configuration for the OpenRouter client."""

    model: str = "anthropic/claude-3.5-sonnet"
    base_url: str = OPENROUTER_API_URL
    max_tokens: int = 1000
    temperature: float = 0.1
    timeout: float = 60.0
    max_retries: int = 3
    retry_delay: float = 1.0
    max_retry_after: float = 60.0
    app_name: str = "Slack AI Bridge"


def _message_payload(message: ConversationMessage) -> dict[str, Any]:
    if isinstance(message.content, str):
        content: str | list[dict[str, Any]] = message.content
    else:
        content = [part.model_dump(exclude_none=True) for part in message.content]

    payload: dict[str, Any] = {"role": message.role, "content": content}
    if message.name:
        payload["name"] = message.name
    return payload


def _tool_payload(definition: FunctionDefinition) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": definition.name,
            "description": definition.description,
            "parameters": definition.parameters,
        },
    }


def _parse_arguments(name: str, raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        arguments = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Could not parse arguments for {name}: {raw!r}")
        return {}
    return arguments if isinstance(arguments, dict) else {}


class OpenRouterClient:
    """Model provider backed by OpenRouter's chat completions API."""

    def __init__(
        self,
        api_key: str,
        config: OpenRouterConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the client.

        Args:
            api_key: OpenRouter API key
            config: Client configuration
            http_client: Pre-built httpx client, mainly for tests
        """
        if not api_key:
            raise ProviderAuthError("OPENROUTER_API_KEY is required")

        self.config = config or OpenRouterConfig()
        self.model = self.config.model
        self._client = http_client or httpx.AsyncClient(timeout=self.config.timeout)
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "X-Title": self.config.app_name,
        }

    async def generate_response(
        self,
        prompt: str,
        history: Sequence[ConversationMessage],
        functions: Sequence[FunctionDefinition],
    ) -> ModelResponse:
        messages = with_prompt(prompt, history)
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [_message_payload(message) for message in messages],
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
        }
        if functions:
            payload["tools"] = [_tool_payload(definition) for definition in functions]
            payload["tool_choice"] = "auto"

        logger.debug(f"OpenRouter request: {len(messages)} messages, {len(functions)} functions, model {self.model}")
        data = await self._request_with_retries(payload)
        return self._parse_response(data)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request_with_retries(self, payload: dict[str, Any]) -> dict[str, Any]:
        """POST a completion request, retrying rate limits and server errors."""
        url = f"{self.config.base_url}/chat/completions"

        for attempt in range(self.config.max_retries):
            last_attempt = attempt == self.config.max_retries - 1
            try:
                response = await self._client.post(url, json=payload, headers=self._headers)
            except httpx.TransportError as e:
                if not last_attempt:
                    logger.warning(f"OpenRouter transport error ({e}), retrying")
                    await asyncio.sleep(self.config.retry_delay * (2**attempt))
                    continue
                raise ProviderError(f"OpenRouter request failed: {e}") from e

            if response.status_code in _AUTH_ERROR_STATUS_CODES:
                raise ProviderAuthError(f"Authentication failed: HTTP {response.status_code}")

            if response.status_code == 429:
                retry_after = self._retry_after(response)
                if retry_after <= self.config.max_retry_after and not last_attempt:
                    logger.warning(f"OpenRouter rate limit, waiting {retry_after:.1f}s")
                    await asyncio.sleep(retry_after)
                    continue
                raise ProviderRateLimitError("OpenRouter rate limit exceeded", retry_after=retry_after)

            if response.status_code >= 500 and not last_attempt:
                logger.warning(f"OpenRouter returned HTTP {response.status_code}, retrying")
                await asyncio.sleep(self.config.retry_delay * (2**attempt))
                continue

            if response.status_code >= 400:
                raise ProviderResponseError(f"OpenRouter error: HTTP {response.status_code} - {response.text[:500]}")

            try:
                return response.json()
            except ValueError as e:
                raise ProviderResponseError("OpenRouter returned invalid JSON") from e

        raise ProviderError(f"Failed to complete request after {self.config.max_retries} attempts")

    @staticmethod
    def _retry_after(response: httpx.Response) -> float:
        try:
            return float(response.headers.get("Retry-After", "1"))
        except ValueError:
            return 1.0

    def _parse_response(self, data: dict[str, Any]) -> ModelResponse:
        if "error" in data and "choices" not in data:
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ProviderResponseError(f"OpenRouter error: {message}")

        choices = data.get("choices") or []
        if not choices:
            raise ProviderResponseError("Unexpected response format: no choices")

        message = choices[0].get("message") or {}
        function_calls = [
            FunctionCall(
                name=tool_call["function"]["name"],
                arguments=_parse_arguments(tool_call["function"]["name"], tool_call["function"].get("arguments")),
                id=tool_call.get("id"),
            )
            for tool_call in message.get("tool_calls") or []
            if tool_call.get("function", {}).get("name")
        ]

        usage_data = data.get("usage") or {}
        usage = LLMUsage(
            input_tokens=usage_data.get("prompt_tokens", 0),
            output_tokens=usage_data.get("completion_tokens", 0),
        )

        logger.debug(f"OpenRouter response: {len(function_calls)} function call(s), {usage.total_tokens} tokens")
        return ModelResponse(
            content=message.get("content") or "",
            function_calls=function_calls,
            metadata={
                "model": data.get("model", self.model),
                "provider": "openrouter",
                "finish_reason": choices[0].get("finish_reason"),
                "usage": {
                    "input_tokens": usage.input_tokens,
                    "output_tokens": usage.output_tokens,
                    "total_tokens": usage.total_tokens,
                },
            },
        )
