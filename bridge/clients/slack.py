"""Slack Web API client with retry handling."""

import asyncio
import json
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from bridge.errors import SlackAPIError
from bridge.utils.logging import get_logger

logger = get_logger(__name__)

SLACK_API_URL = "https://slack.com/api"


@dataclass
class SlackClientConfig:
    """Configuration for the Slack Web API client."""

    base_url: str = SLACK_API_URL
    timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0
    max_retry_after: float = 60.0  # Give up instead of sleeping longer than this on 429


def _encode_params(params: Mapping[str, Any]) -> dict[str, str]:
    """Encode call arguments as Slack form fields.

    ``None`` values are dropped, lists of scalars are comma-joined, and
    structured values (blocks, attachments) are sent as JSON.
    """
    encoded: dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        elif isinstance(value, list) and all(isinstance(item, str | int) for item in value):
            encoded[key] = ",".join(str(item) for item in value)
        elif isinstance(value, list | dict):
            encoded[key] = json.dumps(value)
        else:
            encoded[key] = str(value)
    return encoded


class SlackClient:
    """Async Slack Web API client.

    Calls are form-encoded POSTs to ``<base_url>/<method>``. A response with
    ``ok: false`` raises ``SlackAPIError`` carrying the Slack error code. HTTP
    429 honours ``Retry-After``; 5xx and transport errors retry with
    exponential backoff.
    """

    def __init__(
        self,
        bot_token: str,
        user_token: str = "",
        config: SlackClientConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the client.

        Args:
            bot_token: Bot token (``xoxb-``) used for most calls
            user_token: User token (``xoxp-``) for search and admin calls
            config: Client configuration
            http_client: Pre-built httpx client, mainly for tests
        """
        self.bot_token = bot_token
        self.user_token = user_token
        self.config = config or SlackClientConfig()
        self._client = http_client or httpx.AsyncClient(timeout=self.config.timeout)

    async def call(self, method: str, params: Mapping[str, Any] | None = None, use_user_token: bool = False) -> dict:
        """Call a Web API method.

        Args:
            method: API method such as ``conversations.create``
            params: Method arguments
            use_user_token: Authenticate with the user token instead of the bot token

        Returns:
            The decoded response body (``ok`` is always true)

        Raises:
            SlackAPIError: If Slack reports an error or the request keeps failing
        """
        token = self.user_token if use_user_token else self.bot_token
        if not token:
            raise SlackAPIError("not_authed" if not use_user_token else "missing_user_token", method)

        url = f"{self.config.base_url}/{method}"
        data = _encode_params(params or {})
        headers = {"Authorization": f"Bearer {token}"}

        logger.debug(f"Calling Slack API {method} with {'user' if use_user_token else 'bot'} token")
        response = await self._request_with_retries(lambda: self._client.post(url, data=data, headers=headers), method)
        return self._parse_response(response, method)

    async def upload_content(self, upload_url: str, content: bytes, filename: str) -> None:
        """Send file bytes to an upload URL from ``files.getUploadURLExternal``."""
        response = await self._request_with_retries(
            lambda: self._client.post(upload_url, files={"file": (filename, content)}), "files.upload"
        )
        if response.status_code >= 400:
            raise SlackAPIError(f"upload_failed_http_{response.status_code}", "files.upload")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request_with_retries(
        self, send: Callable[[], Awaitable[httpx.Response]], method: str
    ) -> httpx.Response:
        """Execute a request, retrying rate limits, server errors and transport errors."""
        for attempt in range(self.config.max_retries):
            last_attempt = attempt == self.config.max_retries - 1
            try:
                response = await send()
            except httpx.TransportError as e:
                if not last_attempt:
                    logger.warning(f"Slack {method} transport error ({e}), retrying")
                    await asyncio.sleep(self.config.retry_delay * (2**attempt))
                    continue
                raise SlackAPIError("request_failed", method) from e

            if response.status_code == 429:
                retry_after = self._retry_after(response)
                if retry_after <= self.config.max_retry_after and not last_attempt:
                    logger.warning(f"Slack rate limit on {method}, waiting {retry_after:.1f}s")
                    await asyncio.sleep(retry_after)
                    continue
                raise SlackAPIError("ratelimited", method)

            if response.status_code >= 500 and not last_attempt:
                logger.warning(f"Slack {method} returned HTTP {response.status_code}, retrying")
                await asyncio.sleep(self.config.retry_delay * (2**attempt))
                continue

            return response

        raise SlackAPIError("request_failed", method)

    @staticmethod
    def _retry_after(response: httpx.Response) -> float:
        try:
            return float(response.headers.get("Retry-After", "1"))
        except ValueError:
            return 1.0

    @staticmethod
    def _parse_response(response: httpx.Response, method: str) -> dict:
        if response.status_code >= 400:
            raise SlackAPIError(f"http_{response.status_code}", method)

        try:
            body = response.json()
        except ValueError as e:
            raise SlackAPIError("invalid_response", method) from e

        if not body.get("ok"):
            code = body.get("error", "unknown_error")
            logger.warning(f"Slack {method} failed: {code}")
            raise SlackAPIError(code, method, body)

        return body
