"""Per-thread conversation state."""

import asyncio
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime

from bridge.models.messages import ConversationMessage


@dataclass
class Conversation:
    """Message history and provenance for one chat thread or API session."""

    thread_key: str
    channel_id: str
    user_id: str
    messages: list[ConversationMessage] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_activity: datetime = field(default_factory=lambda: datetime.now(UTC))

    # Guards `messages`; held only for the duration of a single mutation.
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)
    # Serialises whole orchestration runs for this thread.
    run_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def update_activity(self) -> None:
        """Update the last activity timestamp."""
        self.last_activity = datetime.now(UTC)

    def next_timestamp(self) -> datetime:
        """Timestamp for a message appended now, never earlier than the last one."""
        now = datetime.now(UTC)
        if self.messages and self.messages[-1].timestamp > now:
            return self.messages[-1].timestamp
        return now
