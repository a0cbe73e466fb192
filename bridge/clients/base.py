"""Model provider interface."""

from collections.abc import Sequence
from typing import Protocol

from bridge.models.llm import ModelResponse
from bridge.models.messages import ConversationMessage
from bridge.services.formatter import create_user_message
from bridge.tools.base import FunctionDefinition


class ModelProvider(Protocol):
    """A chat model that can request function calls.

    ``model`` is the model id; it selects the formatting family applied to the
    history before it is sent.
    """

    model: str

    async def generate_response(
        self,
        prompt: str,
        history: Sequence[ConversationMessage],
        functions: Sequence[FunctionDefinition],
    ) -> ModelResponse:
        """Send the history and function catalog, return content and calls.

        Raises:
            ProviderError: If the provider cannot produce a response
        """
        ...


def with_prompt(prompt: str, history: Sequence[ConversationMessage]) -> list[ConversationMessage]:
    """History to send, ending with the prompt as a user turn.

    The prompt is appended only when the history does not already end with a
    user message (callers normally append the prompt to the history first).
    """
    messages = list(history)
    if prompt and (not messages or messages[-1].role != "user"):
        messages.append(create_user_message(prompt))
    return messages
