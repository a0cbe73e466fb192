"""In-memory conversation context store."""

import threading
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

from bridge.errors import ContextNotFoundError
from bridge.models.conversation import Conversation
from bridge.models.messages import ConversationMessage
from bridge.services.formatter import (
    DEFAULT_SYSTEM_PROMPT,
    create_assistant_message,
    create_multimodal_user_message,
    create_system_message,
    create_user_message,
)
from bridge.utils.logging import get_logger

logger = get_logger(__name__)


class InMemoryContextStore:
    """Process-local store of conversations keyed by thread key.

    Capacity is bounded: creating a conversation while the store is full evicts
    the idle conversation with the oldest ``last_activity``. Conversations idle
    for longer than the idle timeout are expired as well. A conversation whose
    run lock is held is never removed. Evicted conversations lose
    all history.
    """

    def __init__(
        self,
        max_conversations: int = 1000,
        idle_timeout_minutes: int | None = 60,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ):
        """Initialize the store.

        Args:
            max_conversations: Maximum number of live conversations
            idle_timeout_minutes: Minutes of inactivity before a conversation
                expires, or None to only evict by capacity
            system_prompt: Instructions seeded into every new conversation
        """
        if max_conversations < 1:
            raise ValueError("max_conversations must be at least 1")

        self.max_conversations = max_conversations
        self.idle_timeout = timedelta(minutes=idle_timeout_minutes) if idle_timeout_minutes else None
        self.system_prompt = system_prompt
        self._conversations: dict[str, Conversation] = {}
        # Guards the key map only; message lists have per-conversation locks
        self._lock = threading.Lock()

    def create_context(self, thread_key: str, channel_id: str, user_id: str) -> Conversation:
        """Get the conversation for a thread key, creating it if needed.

        Args:
            thread_key: Stable thread or session identifier
            channel_id: Channel the conversation lives in
            user_id: User who started the conversation

        Returns:
            The existing conversation unchanged, or a new one seeded with the
            default system message
        """
        with self._lock:
            self._cleanup_expired_conversations()

            conversation = self._conversations.get(thread_key)
            if conversation is not None:
                return conversation

            self._evict_to_capacity()

            conversation = Conversation(thread_key=thread_key, channel_id=channel_id, user_id=user_id)
            conversation.messages.append(create_system_message(self.system_prompt))
            self._conversations[thread_key] = conversation

        logger.info(f"Created conversation {thread_key} (channel={channel_id}, user={user_id})")
        return conversation

    def get_context(self, thread_key: str) -> Conversation | None:
        """Get a conversation by thread key.

        Returns:
            Conversation if found and not expired, None otherwise
        """
        with self._lock:
            self._cleanup_expired_conversations()
            return self._conversations.get(thread_key)

    def has_context(self, thread_key: str) -> bool:
        return self.get_context(thread_key) is not None

    def append_user_message(
        self,
        thread_key: str,
        text: str,
        name: str | None = None,
        image_urls: Sequence[str] | None = None,
    ) -> ConversationMessage:
        """Append a user message to a conversation.

        Raises:
            ContextNotFoundError: If the thread key is unknown
        """
        if image_urls:
            message = create_multimodal_user_message(text, image_urls, name=name)
        else:
            message = create_user_message(text, name=name)
        return self._append(thread_key, message)

    def append_assistant_message(self, thread_key: str, text: str) -> ConversationMessage:
        """Append an assistant message, converting Markdown emphasis to Slack mrkdwn.

        Raises:
            ContextNotFoundError: If the thread key is unknown
        """
        return self._append(thread_key, create_assistant_message(text))

    def get_history(self, thread_key: str) -> list[ConversationMessage]:
        """Return the full ordered history of a conversation.

        Raises:
            ContextNotFoundError: If the thread key is unknown or was evicted
        """
        conversation = self._require(thread_key)
        with conversation.lock:
            return list(conversation.messages)

    def update_system_message(self, thread_key: str, instructions: str) -> None:
        """Replace the system message content in place.

        A conversation without a system message gets one inserted at the front.

        Raises:
            ContextNotFoundError: If the thread key is unknown
        """
        conversation = self._require(thread_key)
        with conversation.lock:
            for index, message in enumerate(conversation.messages):
                if message.role == "system":
                    conversation.messages[index] = message.model_copy(update={"content": instructions})
                    break
            else:
                conversation.messages.insert(0, create_system_message(instructions))
            conversation.update_activity()

        logger.info(f"Updated system message for conversation {thread_key}")

    def count(self) -> int:
        """Get current number of live conversations."""
        with self._lock:
            self._cleanup_expired_conversations()
            return len(self._conversations)

    def _append(self, thread_key: str, message: ConversationMessage) -> ConversationMessage:
        conversation = self._require(thread_key)
        with conversation.lock:
            message = message.model_copy(update={"timestamp": conversation.next_timestamp()})
            conversation.messages.append(message)
            conversation.update_activity()
        return message

    def _require(self, thread_key: str) -> Conversation:
        conversation = self.get_context(thread_key)
        if conversation is None:
            raise ContextNotFoundError(thread_key)
        return conversation

    def _evict_to_capacity(self) -> None:
        """Make room for one more conversation. Caller holds the lock.

        Conversations with a run in progress are never evicted, so the store
        may briefly exceed capacity when every conversation is busy.
        """
        while len(self._conversations) >= self.max_conversations:
            idle = [key for key, conversation in self._conversations.items() if not conversation.run_lock.locked()]
            if not idle:
                logger.warning(f"All {len(self._conversations)} conversations are busy; exceeding capacity")
                return
            thread_key = min(idle, key=lambda key: self._conversations[key].last_activity)
            del self._conversations[thread_key]
            logger.info(f"Evicted conversation {thread_key} (capacity {self.max_conversations} reached)")

    def _cleanup_expired_conversations(self) -> None:
        """Remove idle conversations. Caller holds the lock."""
        if self.idle_timeout is None:
            return

        current_time = datetime.now(UTC)
        expired = [
            thread_key
            for thread_key, conversation in self._conversations.items()
            if current_time - conversation.last_activity > self.idle_timeout and not conversation.run_lock.locked()
        ]
        for thread_key in expired:
            del self._conversations[thread_key]

        if expired:
            logger.info(f"Expired {len(expired)} idle conversation(s)")
