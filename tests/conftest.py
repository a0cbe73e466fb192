"""Shared fakes and fixtures."""

from collections.abc import Sequence

import pytest
from pydantic import Field

from bridge.errors import SlackAPIError
from bridge.models.llm import FunctionCall, ModelResponse
from bridge.services.context_store import InMemoryContextStore
from bridge.tools.base import FunctionArguments, FunctionDefinition
from bridge.tools.registry import FunctionRegistry

TEST_MODEL = "test-model"


def model_response(content: str = "", calls: Sequence[tuple[str, dict]] = (), model: str = TEST_MODEL):
    """Build a provider response requesting the given (name, arguments) calls."""
    return ModelResponse(
        content=content,
        function_calls=[FunctionCall(name=name, arguments=arguments) for name, arguments in calls],
        metadata={"model": model, "usage": {"input_tokens": 10, "output_tokens": 5}},
    )


class ScriptedProvider:
    """Model provider that replays canned responses and records each request.

    An ``Exception`` in the script is raised instead of returned. When the
    script runs out, an empty response is returned.
    """

    def __init__(self, responses=(), model: str = TEST_MODEL):
        self.model = model
        self.responses = list(responses)
        self.requests: list[dict] = []

    async def generate_response(self, prompt, history, functions):
        self.requests.append(
            {"prompt": prompt, "history": list(history), "functions": [definition.name for definition in functions]}
        )
        if not self.responses:
            return model_response(model=self.model)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class ChannelArgs(FunctionArguments):
    name: str = Field(..., min_length=1)


class InviteArgs(FunctionArguments):
    channel_id: str
    user_ids: list[str] = Field(..., min_length=1)


class MessageArgs(FunctionArguments):
    channel_id: str
    text: str


class FakeSlackWorkspace:
    """In-memory stand-ins for a few Slack functions."""

    def __init__(self):
        self.calls: list[tuple[str, dict]] = []
        self.missing_channels: set[str] = set()

    async def create_channel(self, args: ChannelArgs):
        self.calls.append(("createChannel", args.model_dump()))
        return {
            "channelId": "C1",
            "channelName": args.name,
            "message": f"Successfully created public channel #{args.name}",
        }

    async def invite_to_channel(self, args: InviteArgs):
        self.calls.append(("inviteToChannel", args.model_dump()))
        return {
            "channelId": args.channel_id,
            "invitedUsers": args.user_ids,
            "message": f"Successfully invited {len(args.user_ids)} user(s) to channel",
        }

    async def send_message(self, args: MessageArgs):
        self.calls.append(("sendMessage", args.model_dump()))
        if args.channel_id in self.missing_channels:
            raise SlackAPIError("channel_not_found", "chat.postMessage")
        return {"channelId": args.channel_id, "messageTs": "1700000000.000100"}

    def registry(self) -> FunctionRegistry:
        return FunctionRegistry(
            [
                FunctionDefinition("createChannel", "Create a new Slack channel", ChannelArgs, self.create_channel),
                FunctionDefinition(
                    "inviteToChannel", "Invite users to a Slack channel", InviteArgs, self.invite_to_channel
                ),
                FunctionDefinition("sendMessage", "Send a message to a Slack channel", MessageArgs, self.send_message),
            ]
        )


@pytest.fixture
def workspace():
    return FakeSlackWorkspace()


@pytest.fixture
def registry(workspace):
    return workspace.registry()


@pytest.fixture
def store():
    return InMemoryContextStore(max_conversations=10, idle_timeout_minutes=60)
