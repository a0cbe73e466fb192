"""Slack Events API handling: request verification and event dispatch."""

import hashlib
import hmac
import re
import time
from typing import Any

from bridge.clients.slack import SlackClient
from bridge.errors import SlackAPIError
from bridge.services.context_store import InMemoryContextStore
from bridge.services.conversation import ConversationService, friendly_error_message
from bridge.services.formatter import DEFAULT_SYSTEM_PROMPT
from bridge.utils.logging import get_logger

logger = get_logger(__name__)

THINKING_MESSAGE = "Thinking..."
WELCOME_MESSAGE = "Hello! I'm your AI assistant. How can I help you today?"
SIGNATURE_VERSION = "v0"
MAX_REQUEST_AGE_SECONDS = 60 * 5
THREAD_HISTORY_LIMIT = 100

_MENTION = re.compile(r"<@[A-Z0-9]+>")


def verify_slack_signature(
    signing_secret: str, timestamp: str, body: bytes, signature: str, now: float | None = None
) -> bool:
    """Check a request's ``X-Slack-Signature`` against the signing secret.

    Requests older than five minutes are rejected to prevent replays.
    """
    if not signing_secret or not timestamp or not signature:
        return False
    try:
        request_time = int(timestamp)
    except ValueError:
        return False
    if abs((now if now is not None else time.time()) - request_time) > MAX_REQUEST_AGE_SECONDS:
        return False

    base = f"{SIGNATURE_VERSION}:{timestamp}:".encode() + body
    expected = f"{SIGNATURE_VERSION}=" + hmac.new(signing_secret.encode(), base, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def thread_key_for(channel_id: str, thread_ts: str) -> str:
    return f"{channel_id}:{thread_ts}"


def response_blocks(text: str, model: str | None = None) -> list[dict[str, Any]]:
    """Block Kit layout for a reply: a mrkdwn section plus a model footer."""
    blocks: list[dict[str, Any]] = [{"type": "section", "text": {"type": "mrkdwn", "text": text[:3000]}}]
    if model:
        blocks.append({"type": "context", "elements": [{"type": "mrkdwn", "text": f"Model: `{model}`"}]})
    return blocks


class SlackEventHandler:
    """Routes Slack events to the conversation service and posts replies."""

    def __init__(self, slack: SlackClient, conversations: ConversationService, store: InMemoryContextStore):
        self.slack = slack
        self.conversations = conversations
        self.store = store
        self._bot_user_id: str | None = None

    async def handle_event(self, event: dict[str, Any]) -> None:
        """Handle one ``event_callback`` payload's inner event.

        Errors are logged and reported in the thread, never raised, since the
        event has already been acknowledged to Slack.
        """
        event_type = event.get("type")
        logger.debug(f"Received Slack event: {event_type}")

        try:
            if event_type == "app_mention":
                await self._handle_message(event)
            elif event_type == "message":
                # Channel messages that mention the bot also arrive as app_mention
                if event.get("channel_type") == "im":
                    await self._handle_message(event)
            elif event_type == "assistant_thread_started":
                await self._handle_thread_started(event)
            elif event_type == "assistant_thread_context_changed":
                self._handle_thread_context_changed(event)
            else:
                logger.debug(f"Ignoring unsupported event type: {event_type}")
        except SlackAPIError as e:
            logger.error(f"Slack API error while handling {event_type}: {e}")

    async def bot_user_id(self) -> str | None:
        if self._bot_user_id is None:
            try:
                auth = await self.slack.call("auth.test")
            except SlackAPIError as e:
                logger.warning(f"Could not resolve bot user id: {e}")
                return None
            self._bot_user_id = auth.get("user_id")
            logger.info(f"Bot user ID initialized: {self._bot_user_id}")
        return self._bot_user_id

    async def _handle_message(self, event: dict[str, Any]) -> None:
        user_id = event.get("user")
        text = _MENTION.sub("", event.get("text") or "").strip()

        if event.get("bot_id") or event.get("subtype") or not user_id or not text:
            logger.debug("Ignoring bot, subtype or empty message")
            return
        if user_id == await self.bot_user_id():
            return

        channel_id = event["channel"]
        thread_ts = event.get("thread_ts") or event["ts"]
        thread_key = thread_key_for(channel_id, thread_ts)
        if thread_ts != event["ts"] and not self.store.has_context(thread_key):
            await self._seed_from_thread(thread_key, channel_id, thread_ts, user_id, current_ts=event["ts"])
        await self._respond(thread_key, channel_id, thread_ts, user_id, text)

    async def _seed_from_thread(
        self, thread_key: str, channel_id: str, thread_ts: str, user_id: str, current_ts: str
    ) -> None:
        """Start the conversation for a thread the bot joins midway with the thread's earlier messages."""
        try:
            replies = await self.slack.call(
                "conversations.replies", {"channel": channel_id, "ts": thread_ts, "limit": THREAD_HISTORY_LIMIT}
            )
        except SlackAPIError as e:
            logger.warning(f"Could not load thread history for {thread_key}: {e}")
            return

        bot_user_id = await self.bot_user_id()
        self.store.create_context(thread_key, channel_id, user_id)
        seeded = 0
        for message in replies.get("messages", []):
            text = _MENTION.sub("", message.get("text") or "").strip()
            if message.get("ts") == current_ts or not text or text == THINKING_MESSAGE:
                continue
            if message.get("bot_id") or message.get("user") == bot_user_id:
                self.store.append_assistant_message(thread_key, text)
            else:
                self.store.append_user_message(thread_key, text, name=message.get("user"))
            seeded += 1

        logger.info(f"Seeded {thread_key} with {seeded} earlier thread message(s)")

    async def _respond(self, thread_key: str, channel_id: str, thread_ts: str, user_id: str, text: str) -> None:
        thinking = await self.slack.call(
            "chat.postMessage", {"channel": channel_id, "thread_ts": thread_ts, "text": THINKING_MESSAGE}
        )

        try:
            result = await self.conversations.handle_incoming(thread_key, channel_id, user_id, text)
        except Exception as e:
            logger.error(f"Failed to process message in {thread_key}: {e}", exc_info=True)
            reply, model = friendly_error_message(e), None
        else:
            reply, model = result.reply_text, result.metadata.get("model")

        await self.slack.call(
            "chat.update",
            {"channel": channel_id, "ts": thinking["ts"], "text": reply, "blocks": response_blocks(reply, model)},
        )

    async def _handle_thread_started(self, event: dict[str, Any]) -> None:
        thread = event.get("assistant_thread", {})
        channel_id = thread.get("channel_id") or event.get("channel")
        thread_ts = thread.get("thread_ts") or event.get("ts")
        user_id = thread.get("user_id") or event.get("user", "")
        if not channel_id or not thread_ts:
            logger.warning("Missing channel or thread info in assistant_thread_started event")
            return

        self.store.create_context(thread_key_for(channel_id, thread_ts), channel_id, user_id)
        await self.slack.call(
            "chat.postMessage",
            {
                "channel": channel_id,
                "thread_ts": thread_ts,
                "text": WELCOME_MESSAGE,
                "blocks": response_blocks(WELCOME_MESSAGE),
            },
        )

    def _handle_thread_context_changed(self, event: dict[str, Any]) -> None:
        thread = event.get("assistant_thread", {})
        channel_id = thread.get("channel_id") or event.get("channel")
        thread_ts = thread.get("thread_ts") or event.get("thread_ts")
        context = thread.get("context") or event.get("context_payload")
        if not channel_id or not thread_ts or not context:
            logger.warning("Missing channel, thread or context in assistant_thread_context_changed event")
            return

        instructions = context if isinstance(context, str) else _describe_context(context)
        thread_key = thread_key_for(channel_id, thread_ts)
        if not self.store.has_context(thread_key):
            self.store.create_context(thread_key, channel_id, thread.get("user_id", ""))
        self.store.update_system_message(thread_key, instructions)


def _describe_context(context: dict[str, Any]) -> str:
    """System instructions for a structured assistant thread context."""
    details = ", ".join(f"{key}={value}" for key, value in context.items() if value)
    return f"{DEFAULT_SYSTEM_PROMPT}\n\nThe user is currently viewing: {details}" if details else DEFAULT_SYSTEM_PROMPT
