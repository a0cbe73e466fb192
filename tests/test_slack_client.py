"""Tests for the Slack Web API client."""

from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs

import httpx
import pytest

from bridge.clients.slack import SlackClient, SlackClientConfig, _encode_params
from bridge.errors import SlackAPIError


def _client(handler, **kwargs) -> SlackClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SlackClient("xoxb-bot", "xoxp-user", config=SlackClientConfig(**kwargs), http_client=http_client)


def _form(request: httpx.Request) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


class TestEncodeParams:
    """Tests for form encoding of call arguments."""

    def test_encoding(self):
        encoded = _encode_params(
            {
                "channel": "C1",
                "users": ["U1", "U2"],
                "is_private": False,
                "cursor": None,
                "blocks": [{"type": "section"}],
                "limit": 200,
            }
        )

        assert encoded == {
            "channel": "C1",
            "users": "U1,U2",
            "is_private": "false",
            "blocks": '[{"type": "section"}]',
            "limit": "200",
        }


class TestSlackClient:
    """Tests for calls, errors and retries."""

    @pytest.mark.asyncio
    async def test_successful_call(self):
        """Test that a call posts form data with the bot token to the method URL."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"ok": True, "channel": {"id": "C1", "name": "launch-prep"}})

        slack = _client(handler)
        response = await slack.call("conversations.create", {"name": "launch-prep", "is_private": False})

        assert response["channel"]["id"] == "C1"
        request = requests[0]
        assert request.url == "https://slack.com/api/conversations.create"
        assert request.headers["Authorization"] == "Bearer xoxb-bot"
        assert _form(request) == {"name": "launch-prep", "is_private": "false"}

    @pytest.mark.asyncio
    async def test_user_token(self):
        """Test that user-token calls authenticate with the user token."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["Authorization"])
            return httpx.Response(200, json={"ok": True})

        await _client(handler).call("search.messages", {"query": "launch"}, use_user_token=True)

        assert seen == ["Bearer xoxp-user"]

    @pytest.mark.asyncio
    async def test_missing_user_token(self):
        """Test that user-token calls fail fast without a user token."""
        slack = SlackClient("xoxb-bot", http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: None)))

        with pytest.raises(SlackAPIError) as exc_info:
            await slack.call("search.messages", {"query": "x"}, use_user_token=True)

        assert exc_info.value.code == "missing_user_token"

    @pytest.mark.asyncio
    async def test_slack_error_code(self):
        """Test that ok:false raises with the Slack error code as the message."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"ok": False, "error": "channel_not_found"})

        with pytest.raises(SlackAPIError) as exc_info:
            await _client(handler).call("chat.postMessage", {"channel": "C404", "text": "hi"})

        assert str(exc_info.value) == "channel_not_found"
        assert exc_info.value.method == "chat.postMessage"

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        """Test that a 429 waits for Retry-After and retries."""
        responses = [
            httpx.Response(429, headers={"Retry-After": "2"}),
            httpx.Response(200, json={"ok": True, "ts": "1.0"}),
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        with patch("bridge.clients.slack.asyncio.sleep", new_callable=AsyncMock) as sleep:
            response = await _client(handler).call("chat.postMessage", {"channel": "C1", "text": "hi"})

        assert response["ts"] == "1.0"
        sleep.assert_awaited_once_with(2.0)

    @pytest.mark.asyncio
    async def test_rate_limit_beyond_maximum_wait(self):
        """Test that a Retry-After above the limit fails instead of sleeping."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, headers={"Retry-After": "600"})

        with patch("bridge.clients.slack.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(SlackAPIError, match="ratelimited"):
                await _client(handler).call("chat.postMessage", {"channel": "C1", "text": "hi"})

        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_server_errors_exhaust_retries(self):
        """Test that persistent 5xx responses end in an HTTP error code."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(503)

        with patch("bridge.clients.slack.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(SlackAPIError, match="http_503"):
                await _client(handler, max_retries=3).call("auth.test")

        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_transport_error(self):
        """Test that repeated connection failures raise request_failed."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with patch("bridge.clients.slack.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(SlackAPIError, match="request_failed"):
                await _client(handler, max_retries=2).call("auth.test")
