"""Tests for the model provider clients."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from bridge.clients.anthropic import AnthropicClient, AnthropicConfig
from bridge.clients.openrouter import OpenRouterClient, OpenRouterConfig
from bridge.errors import ProviderAuthError, ProviderResponseError
from bridge.services.formatter import create_multimodal_user_message, create_system_message, create_user_message
from bridge.tools.base import FunctionDefinition
from tests.conftest import ChannelArgs


async def _noop(args):
    return None


CREATE_CHANNEL = FunctionDefinition("createChannel", "Create a new Slack channel", ChannelArgs, _noop)


def _openrouter(handler) -> OpenRouterClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenRouterClient("or-key", OpenRouterConfig(model="anthropic/claude-3.5-sonnet"), http_client=http_client)


def _completion(message: dict, **extra) -> dict:
    return {
        "model": "anthropic/claude-3.5-sonnet",
        "choices": [{"message": message, "finish_reason": "tool_calls"}],
        "usage": {"prompt_tokens": 120, "completion_tokens": 30},
        **extra,
    }


class TestOpenRouterClient:
    """Tests for the OpenRouter client."""

    @pytest.mark.asyncio
    async def test_request_payload_and_tool_calls(self):
        """Test that tools are sent and tool calls are parsed."""
        payloads = []

        def handler(request: httpx.Request) -> httpx.Response:
            payloads.append(json.loads(request.content))
            return httpx.Response(
                200,
                json=_completion(
                    {
                        "content": None,
                        "tool_calls": [
                            {
                                "id": "call_1",
                                "type": "function",
                                "function": {"name": "createChannel", "arguments": '{"name": "launch-prep"}'},
                            }
                        ],
                    }
                ),
            )

        client = _openrouter(handler)
        history = [create_system_message("sys"), create_user_message("create launch-prep")]

        response = await client.generate_response("create launch-prep", history, [CREATE_CHANNEL])

        payload = payloads[0]
        assert payload["model"] == "anthropic/claude-3.5-sonnet"
        assert payload["tool_choice"] == "auto"
        assert payload["tools"][0]["function"]["name"] == "createChannel"
        assert payload["tools"][0]["function"]["parameters"]["required"] == ["name"]
        assert [message["role"] for message in payload["messages"]] == ["system", "user"]

        assert response.content == ""
        assert response.function_calls[0].name == "createChannel"
        assert response.function_calls[0].arguments == {"name": "launch-prep"}
        assert response.function_calls[0].id == "call_1"
        assert response.model == "anthropic/claude-3.5-sonnet"
        assert response.metadata["usage"]["input_tokens"] == 120

    @pytest.mark.asyncio
    async def test_prompt_appended_when_history_lacks_it(self):
        """Test that the prompt is sent as the final user message."""
        payloads = []

        def handler(request: httpx.Request) -> httpx.Response:
            payloads.append(json.loads(request.content))
            return httpx.Response(200, json=_completion({"content": "ok"}))

        await _openrouter(handler).generate_response("next step?", [create_system_message("sys")], [])

        assert payloads[0]["messages"][-1] == {"role": "user", "content": "next step?"}
        assert "tools" not in payloads[0]

    @pytest.mark.asyncio
    async def test_malformed_arguments_become_empty(self):
        """Test that unparseable tool arguments are passed on as an empty object."""

        def handler(request: httpx.Request) -> httpx.Response:
            tool_call = {"id": "c", "function": {"name": "createChannel", "arguments": "{not json"}}
            return httpx.Response(200, json=_completion({"content": "", "tool_calls": [tool_call]}))

        response = await _openrouter(handler).generate_response("x", [create_user_message("x")], [CREATE_CHANNEL])

        assert response.function_calls[0].arguments == {}

    @pytest.mark.asyncio
    async def test_authentication_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": {"message": "bad key"}})

        with pytest.raises(ProviderAuthError):
            await _openrouter(handler).generate_response("x", [create_user_message("x")], [])

    @pytest.mark.asyncio
    async def test_error_body_without_choices(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"error": {"message": "model overloaded"}})

        with pytest.raises(ProviderResponseError, match="model overloaded"):
            await _openrouter(handler).generate_response("x", [create_user_message("x")], [])

    def test_api_key_required(self):
        with pytest.raises(ProviderAuthError):
            OpenRouterClient("")


class TestAnthropicClient:
    """Tests for the Anthropic client."""

    @pytest.fixture
    def sdk(self):
        sdk = Mock()
        sdk.messages.create = AsyncMock(
            return_value=SimpleNamespace(
                content=[
                    SimpleNamespace(type="text", text="Creating it now."),
                    SimpleNamespace(type="tool_use", id="tu_1", name="createChannel", input={"name": "launch-prep"}),
                ],
                usage=SimpleNamespace(input_tokens=50, output_tokens=20),
                model="claude-3-5-sonnet-20241022",
                stop_reason="tool_use",
            )
        )
        return sdk

    @pytest.fixture
    def client(self, sdk):
        client = AnthropicClient("", AnthropicConfig(), client=sdk)
        client.tokenizer = Mock()
        client.tokenizer.encode.return_value = ["token"] * 10
        return client

    @pytest.mark.asyncio
    async def test_generate_response(self, client, sdk):
        """Test request shaping and response conversion."""
        history = [
            create_system_message("sys"),
            create_multimodal_user_message("what is this?", ["https://example.com/a.png"]),
        ]

        response = await client.generate_response("what is this?", history, [CREATE_CHANNEL])

        params = sdk.messages.create.call_args.kwargs
        assert params["system"] == "sys"
        assert params["messages"][0]["role"] == "user"
        assert params["messages"][0]["content"][1] == {
            "type": "image",
            "source": {"type": "url", "url": "https://example.com/a.png"},
        }
        assert params["tools"][0]["name"] == "createChannel"
        assert "input_schema" in params["tools"][0]

        assert response.content == "Creating it now."
        assert response.function_calls[0].name == "createChannel"
        assert response.function_calls[0].arguments == {"name": "launch-prep"}
        assert response.model == "claude-3-5-sonnet-20241022"
        assert response.metadata["usage"]["total_tokens"] == 70

    def test_estimate_message_tokens(self, client):
        """Test token estimation with the tokenizer and without it."""
        assert client.estimate_message_tokens("anything") == 10

        client.tokenizer = None
        assert client.estimate_message_tokens("x" * 40) == 10

    def test_api_key_required(self):
        with pytest.raises(ProviderAuthError):
            AnthropicClient("")
