"""Tests for API endpoints."""

import hashlib
import hmac
import json
import time
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi.testclient import TestClient

from bridge.clients.slack import SlackClient
from bridge.config import ApiSettings, Settings, SlackSettings
from bridge.container import build_container
from bridge.errors import ProviderError
from bridge.main import create_app
from tests.conftest import ScriptedProvider, model_response

API_KEY = "test-api-key"
SIGNING_SECRET = "signing-secret"


def _settings(enabled: bool = True, rate_limit: int = 60) -> Settings:
    return Settings(
        slack=SlackSettings(bot_token="xoxb-test", signing_secret=SIGNING_SECRET),
        api=ApiSettings(enabled=enabled, api_key=API_KEY, rate_limit_per_minute=rate_limit),
    )


def _slack() -> SlackClient:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"ok": True}))
    return SlackClient("xoxb-test", http_client=httpx.AsyncClient(transport=transport))


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def container(provider, registry):
    return build_container(_settings(), provider=provider, registry=registry, slack=_slack())


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as test_client:
        yield test_client


def _post(client, payload, api_key: str | None = API_KEY):
    headers = {"X-API-Key": api_key} if api_key else {}
    return client.post("/api/process-message", json=payload, headers=headers)


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check_returns_200(self, client):
        """Test that health check returns 200 status."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_check_response_structure(self, client):
        """Test that health check returns expected JSON structure."""
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert data["conversations"] == 0
        assert "timestamp" in data


class TestProcessMessageEndpoint:
    """Tests for the process-message endpoint."""

    def test_process_message(self, client, provider):
        """Test a request that dispatches one function."""
        provider.responses = [model_response(calls=[("createChannel", {"name": "launch-prep"})])]

        response = _post(client, {"message": "create a channel called launch-prep", "sessionId": "s1"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["sessionId"] == "s1"
        assert data["response"] == "Successfully created public channel #launch-prep"
        assert data["results"] == [
            {
                "functionName": "createChannel",
                "result": {
                    "channelId": "C1",
                    "channelName": "launch-prep",
                    "message": "Successfully created public channel #launch-prep",
                    "success": True,
                },
            }
        ]
        assert data["metadata"]["model"] == "test-model"
        assert data["metadata"]["processingTime"].endswith("s")
        assert response.headers["X-RateLimit-Limit"] == "60"

    def test_session_continues_conversation(self, client, container, provider):
        """Test that requests with the same session share a conversation."""
        provider.responses = [model_response(content="one"), model_response(content="two")]

        _post(client, {"message": "hello", "sessionId": "s1"})
        _post(client, {"message": "again", "sessionId": "s1"})

        assert container.store.count() == 1
        assert len(container.store.get_history("api:s1")) == 5

    def test_generates_session_id(self, client, provider):
        """Test that a session id is generated when not provided."""
        provider.responses = [model_response(content="hi")]

        data = _post(client, {"message": "hello"}).json()

        assert isinstance(data["sessionId"], str)
        assert len(data["sessionId"]) > 0

    def test_failed_function_reported_in_results(self, client, provider, workspace):
        """Test that a failed function is a result, not an HTTP error."""
        workspace.missing_channels.add("C404")
        provider.responses = [model_response(calls=[("sendMessage", {"channelId": "C404", "text": "hi"})])]

        response = _post(client, {"message": "post hi to C404"})

        assert response.status_code == 200
        assert response.json()["results"][0] == {
            "functionName": "sendMessage",
            "result": {"success": False, "error": "channel_not_found"},
        }

    @pytest.mark.parametrize("api_key", [None, "wrong-key"])
    def test_invalid_api_key(self, client, api_key):
        """Test that missing or wrong API keys are rejected."""
        response = _post(client, {"message": "hello"}, api_key=api_key)

        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": {"code": "authentication_failed", "message": "Invalid API key"},
        }

    def test_missing_message(self, client):
        response = _post(client, {"sessionId": "s1"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "missing_required_field"

    def test_invalid_json(self, client):
        response = client.post(
            "/api/process-message",
            content=b"not json",
            headers={"X-API-Key": API_KEY, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_request"

    def test_message_too_long(self, client):
        response = _post(client, {"message": "x" * 5000})

        assert response.status_code == 400
        assert "too long" in response.json()["error"]["message"]

    def test_provider_failure(self, client, provider):
        """Test that a provider failure is a 500 with a friendly message."""
        provider.responses = [ProviderError("down")]

        response = _post(client, {"message": "hello"})

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "internal_error"
        assert "couldn't reach the AI model" in error["message"]

    def test_api_disabled(self, provider, registry):
        """Test that the endpoint is forbidden when disabled."""
        container = build_container(_settings(enabled=False), provider=provider, registry=registry, slack=_slack())

        with TestClient(create_app(container)) as client:
            response = _post(client, {"message": "hello"})

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "api_disabled"

    def test_rate_limit(self, provider, registry):
        """Test that requests beyond the per-minute limit get 429."""
        provider.responses = [model_response(content="ok"), model_response(content="ok")]
        container = build_container(_settings(rate_limit=2), provider=provider, registry=registry, slack=_slack())

        with TestClient(create_app(container)) as client:
            statuses = [_post(client, {"message": "hello", "sessionId": "s1"}).status_code for _ in range(3)]
            limited = _post(client, {"message": "hello", "sessionId": "s1"})

        assert statuses == [200, 200, 429]
        assert limited.json()["error"]["code"] == "rate_limit_exceeded"
        assert limited.headers["X-RateLimit-Remaining"] == "0"


class TestSlackEventsEndpoint:
    """Tests for the Slack Events API endpoint."""

    def _signed_post(self, client, payload, secret: str = SIGNING_SECRET, extra_headers=None):
        body = json.dumps(payload).encode()
        timestamp = str(int(time.time()))
        signature = "v0=" + hmac.new(secret.encode(), f"v0:{timestamp}:".encode() + body, hashlib.sha256).hexdigest()
        headers = {
            "Content-Type": "application/json",
            "X-Slack-Request-Timestamp": timestamp,
            "X-Slack-Signature": signature,
            **(extra_headers or {}),
        }
        return client.post("/slack/events", content=body, headers=headers)

    def test_url_verification(self, client):
        response = self._signed_post(client, {"type": "url_verification", "challenge": "abc123"})

        assert response.status_code == 200
        assert response.json() == {"challenge": "abc123"}

    def test_invalid_signature(self, client):
        response = self._signed_post(client, {"type": "url_verification", "challenge": "x"}, secret="wrong")
        assert response.status_code == 401

    def test_event_callback_handled_in_background(self, client, container):
        """Test that event callbacks are acknowledged and handed to the event handler."""
        container.events.handle_event = AsyncMock()
        event = {"type": "app_mention", "user": "U1", "text": "hi", "channel": "C1", "ts": "1.0"}

        response = self._signed_post(client, {"type": "event_callback", "event": event})

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        container.events.handle_event.assert_awaited_once_with(event)

    def test_retries_are_acknowledged_without_processing(self, client, container):
        """Test that Slack redeliveries are not processed twice."""
        container.events.handle_event = AsyncMock()
        event = {"type": "app_mention", "user": "U1", "text": "hi", "channel": "C1", "ts": "1.0"}

        response = self._signed_post(
            client, {"type": "event_callback", "event": event}, extra_headers={"X-Slack-Retry-Num": "1"}
        )

        assert response.status_code == 200
        container.events.handle_event.assert_not_awaited()

    @pytest.mark.parametrize("payload", [[], ["event_callback"], "url_verification", 42, None])
    def test_signed_non_object_body_rejected(self, client, container, payload):
        """Test that a validly signed body that is not a JSON object is a bad request."""
        container.events.handle_event = AsyncMock()

        response = self._signed_post(client, payload)

        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "invalid_payload"}
        container.events.handle_event.assert_not_awaited()
