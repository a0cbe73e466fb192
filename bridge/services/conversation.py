"""Entry point for inbound messages from Slack and the HTTP API."""

import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from bridge.errors import ContextNotFoundError, OrchestrationError
from bridge.graphs.orchestration import OrchestrationManager
from bridge.models.llm import DispatchRecord
from bridge.services.context_store import InMemoryContextStore
from bridge.services.formatter import format_messages
from bridge.utils.logging import get_logger

logger = get_logger(__name__)

GENERIC_ERROR_MESSAGE = "I apologize, but I'm experiencing technical difficulties. Please try again."


@dataclass
class IncomingResult:
    """Reply and function results for one inbound message."""

    reply_text: str
    function_results: list[DispatchRecord] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


class ConversationService:
    """Runs inbound messages through the context store and the orchestrator."""

    def __init__(
        self,
        store: InMemoryContextStore,
        orchestrator: OrchestrationManager,
        max_history_messages: int = 2,
        max_message_chars: int = 4000,
    ):
        """Initialize conversation service.

        Args:
            store: Conversation context store
            orchestrator: Orchestration manager used for every run
            max_history_messages: Messages sent to the model on the first round,
                including the system message
            max_message_chars: Longest accepted user message
        """
        self.store = store
        self.orchestrator = orchestrator
        self.max_history_messages = max_history_messages
        self.max_message_chars = max_message_chars

    async def handle_incoming(
        self,
        thread_key: str,
        channel_id: str,
        user_id: str,
        text: str,
        image_urls: Sequence[str] | None = None,
    ) -> IncomingResult:
        """Process a user message and return the reply.

        Runs for the same thread key are serialised; different threads run
        concurrently.

        Raises:
            ValueError: If the message is empty or too long
            OrchestrationError: If the model provider fails
        """
        self._validate_message(text)

        conversation = self.store.create_context(thread_key, channel_id, user_id)
        async with conversation.run_lock:
            started = time.perf_counter()
            # Re-fetch: the context may have been evicted while this run waited for the lock
            self.store.create_context(thread_key, channel_id, user_id)
            self.store.append_user_message(thread_key, text, image_urls=image_urls)
            history = format_messages(self.store.get_history(thread_key), max_messages=self.max_history_messages)

            logger.info(f"Processing message for {thread_key} (channel={channel_id}, user={user_id})")
            result = await self.orchestrator.run(text, history)

            try:
                self.store.append_assistant_message(thread_key, result.reply)
            except ContextNotFoundError:
                logger.warning(f"Conversation {thread_key} was removed during its run; reply not recorded")

        elapsed = time.perf_counter() - started
        metadata = {**result.metadata, "processing_time": elapsed}
        if metadata.get("total_input_tokens"):
            logger.info(
                f"Token usage - Input: {metadata['total_input_tokens']}, Output: {metadata['total_output_tokens']}"
            )
        return IncomingResult(reply_text=result.reply, function_results=result.results, metadata=metadata)

    def _validate_message(self, text: str) -> None:
        if not text or not text.strip():
            raise ValueError("Message cannot be empty.")
        if len(text) > self.max_message_chars:
            raise ValueError(f"Your message is too long. Please keep messages under {self.max_message_chars} characters.")


def friendly_error_message(error: Exception) -> str:
    """User-facing text for a failed run, listing anything that did complete."""
    if isinstance(error, ValueError):
        return str(error)

    if isinstance(error, OrchestrationError):
        completed = [record for record in error.partial_results if record.success]
        if completed:
            steps = "\n".join(
                f"• {record.result.get('message') or record.function_name}" for record in completed
            )
            return f"I completed part of your request before running into a problem:\n{steps}\n\nPlease try again."
        return "I couldn't reach the AI model just now. Please try again in a moment."

    return GENERIC_ERROR_MESSAGE
