"""Model provider backed by the Anthropic messages API.

Requests are throttled client-side (requests and estimated tokens per minute)
before they are sent, and transient failures are retried with backoff.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

import tiktoken
from anthropic import APIConnectionError, APIStatusError, AsyncAnthropic
from anthropic.types import Message
from limits import RateLimitItem, parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from bridge.clients.base import with_prompt
from bridge.errors import ProviderAuthError, ProviderError, ProviderRateLimitError, ProviderResponseError
from bridge.models.llm import FunctionCall, LLMUsage, ModelResponse
from bridge.models.messages import ConversationMessage, ImageContent
from bridge.tools.base import FunctionDefinition
from bridge.utils.logging import get_logger

logger = get_logger(__name__)

CHARS_PER_TOKEN = 4


@dataclass
class AnthropicConfig:
    model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = 1000
    temperature: float = 0.1
    timeout: float = 60.0
    max_retries: int = 3
    retry_delay: float = 1.0
    max_retry_after: float = 120.0

    requests_per_minute: int = 50
    tokens_per_minute: int = 40_000


class TokenBudget:
    """Moving one-minute windows over request count and estimated token spend."""

    def __init__(self, requests_per_minute: int, tokens_per_minute: int, key: str = "anthropic"):
        self.key = key
        self.window = MovingWindowRateLimiter(MemoryStorage())
        self.requests: RateLimitItem = parse(f"{requests_per_minute}/minute")
        self.tokens: RateLimitItem = parse(f"{tokens_per_minute}/minute")

    async def acquire(self, estimated_tokens: int) -> None:
        """Sleep until one more request carrying `estimated_tokens` fits in both windows."""
        if not self.window.hit(self.requests, self.key):
            await self._sleep_until_reset(self.requests, self.key, "request")
        if not self.window.hit(self.tokens, f"{self.key}:tokens", cost=estimated_tokens):
            await self._sleep_until_reset(self.tokens, f"{self.key}:tokens", "token")

    async def _sleep_until_reset(self, item: RateLimitItem, key: str, kind: str) -> None:
        delay = self.window.get_window_stats(item, key).reset_time - time.time()
        if delay > 0:
            logger.warning(f"Anthropic {kind} budget spent, pausing {delay:.2f}s")
            await asyncio.sleep(delay)


def _content_blocks(message: ConversationMessage) -> str | list[dict[str, Any]]:
    if isinstance(message.content, str):
        return message.content

    blocks: list[dict[str, Any]] = []
    for part in message.content:
        if isinstance(part, ImageContent):
            blocks.append({"type": "image", "source": {"type": "url", "url": part.image_url.url}})
        else:
            blocks.append({"type": "text", "text": part.text})
    return blocks


class AnthropicClient:
    tokenizer: tiktoken.Encoding | None = None

    def __init__(
        self,
        api_key: str,
        config: AnthropicConfig | None = None,
        client: AsyncAnthropic | None = None,
    ):
        """`client` replaces the SDK client outright, in which case `api_key` may be empty."""
        if not api_key and client is None:
            raise ProviderAuthError("ANTHROPIC_API_KEY is required")

        self.config = config or AnthropicConfig()
        self.model = self.config.model
        # SDK retries off; _request_with_retries owns backoff
        self.client = client or AsyncAnthropic(api_key=api_key, max_retries=0, timeout=self.config.timeout)
        self.budget = TokenBudget(self.config.requests_per_minute, self.config.tokens_per_minute)

        try:
            # cl100k is close enough to Claude's tokenizer for budgeting
            self.tokenizer = tiktoken.get_encoding("cl100k_base")
        except Exception as e:
            logger.warning(f"tiktoken unavailable, estimating tokens from length: {e}")
            self.tokenizer = None

    async def generate_response(
        self,
        prompt: str,
        history: Sequence[ConversationMessage],
        functions: Sequence[FunctionDefinition],
    ) -> ModelResponse:
        messages = with_prompt(prompt, history)
        system_prompt = "\n\n".join(message.text for message in messages if message.role == "system")
        conversation = [
            {"role": message.role, "content": _content_blocks(message)}
            for message in messages
            if message.role != "system"
        ]

        estimated_tokens = self.estimate_message_tokens("".join(message.text for message in messages))
        await self.budget.acquire(estimated_tokens)

        request_params: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "messages": conversation,
        }
        if system_prompt:
            request_params["system"] = system_prompt
        if functions:
            request_params["tools"] = [
                {"name": f.name, "description": f.description, "input_schema": f.parameters} for f in functions
            ]

        logger.debug(f"Making Anthropic API call with model: {self.model}, {len(functions)} tools")
        response: Message = await self._request_with_retries(lambda: self.client.messages.create(**request_params))
        return self._convert_response(response)

    async def aclose(self) -> None:
        await self.client.close()

    async def _request_with_retries[T](self, call: Callable[[], Awaitable[T]]) -> T:
        """Run `call`, retrying 429s within max_retry_after and 5xx/connection errors with backoff."""
        for attempt in range(self.config.max_retries):
            last_attempt = attempt == self.config.max_retries - 1
            try:
                return await call()

            except APIStatusError as e:
                if e.status_code in (401, 403):
                    raise ProviderAuthError(f"Authentication failed: HTTP {e.status_code}") from e

                if e.status_code == 429:
                    retry_after = float(e.response.headers.get("retry-after", 60))
                    if retry_after < self.config.max_retry_after and not last_attempt:
                        logger.warning(f"Anthropic rate limit, waiting {retry_after:.1f}s")
                        await asyncio.sleep(retry_after)
                        continue
                    raise ProviderRateLimitError("Anthropic rate limit exceeded", retry_after=retry_after) from e

                if e.status_code >= 500 and not last_attempt:
                    # Server error, retry with exponential backoff
                    await asyncio.sleep(self.config.retry_delay * (2**attempt))
                    continue

                raise ProviderResponseError(f"Anthropic error: HTTP {e.status_code} - {e.message}") from e

            except APIConnectionError as e:
                if not last_attempt:
                    await asyncio.sleep(self.config.retry_delay * (2**attempt))
                    continue
                raise ProviderError(f"Anthropic request failed: {e}") from e

        raise ProviderError(f"Failed to complete request after {self.config.max_retries} attempts")

    def _convert_response(self, response: Message) -> ModelResponse:
        """Convert Anthropic content blocks to text and function calls."""
        texts: list[str] = []
        function_calls: list[FunctionCall] = []
        for block in response.content:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "tool_use":
                arguments = block.input if isinstance(block.input, dict) else {}
                function_calls.append(FunctionCall(name=block.name, arguments=arguments, id=block.id))
            else:
                logger.warning(f"Unknown content block type: {block.type}")

        usage = LLMUsage()
        if response.usage:
            usage = LLMUsage(input_tokens=response.usage.input_tokens, output_tokens=response.usage.output_tokens)

        logger.debug(f"Response received - Stop reason: {response.stop_reason}, Content blocks: {len(response.content)}")

        return ModelResponse(
            content="\n\n".join(text for text in texts if text),
            function_calls=function_calls,
            metadata={
                "model": response.model,
                "provider": "anthropic",
                "stop_reason": response.stop_reason,
                "usage": {
                    "input_tokens": usage.input_tokens,
                    "output_tokens": usage.output_tokens,
                    "total_tokens": usage.total_tokens,
                },
            },
        )

    def estimate_message_tokens(self, message: str) -> int:
        if self.tokenizer is not None:
            try:
                return len(self.tokenizer.encode(message))
            except Exception as e:
                logger.debug(f"Tokenizer failed, falling back to length estimate: {e}")
        return len(message) // CHARS_PER_TOKEN
