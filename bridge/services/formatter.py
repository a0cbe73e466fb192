"""Message formatting for model providers and for Slack.

Two concerns live here:

* shaping a conversation's message list to the structural constraints of the
  target model family (history length, role alternation, system role support);
* converting the Markdown emphasis models like to produce into Slack mrkdwn.

Both are pure functions over their input.
"""

import re
from collections.abc import Sequence
from enum import StrEnum

from bridge.models.messages import ConversationMessage, ContentPart, ImageContent, ImageURL, TextContent

SYSTEM_DELIMITER_OPEN = "<system>"
SYSTEM_DELIMITER_CLOSE = "</system>"
MERGE_SEPARATOR = "\n\n"

# Content some providers return when they have nothing to say
PLACEHOLDER_RESPONSE = "I don't have a response at this time."

SLACK_FORMATTING_RULES = """CRITICAL FORMATTING INSTRUCTIONS:
ALL responses MUST use Slack formatting, NOT Markdown. Format all responses using Slack syntax:

*bold text* for emphasis (ONE ASTERISK ONLY)
_italic text_ for definitions
~strikethrough~ when needed
`code snippets` for technical terms
• Use manual bullet points (not - or *)
<URL|text> for links with custom text
>text for quotes or important callouts

SACROSANCT: ONLY USE SLACK MARKUP - all responses must be formatted for Slack display only."""

DEFAULT_SYSTEM_PROMPT = f"""You are a Slack AI assistant. Be helpful, concise, and friendly.

{SLACK_FORMATTING_RULES}

TASKS: For multi-step tasks: 1) Break into steps, 2) Execute sequentially with functions, \
3) For meeting summaries, create the summary then post it to the appropriate channel, \
4) No explanations - just execute, 5) Be token-efficient.

Call functions when needed to perform actions."""


class ModelFamily(StrEnum):
    """Structural constraints shared by a group of models."""

    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    DEFAULT = "default"

    @classmethod
    def from_model(cls, model: "str | ModelFamily | None") -> "ModelFamily":
        """Infer the family from a model id such as ``anthropic/claude-3.5-sonnet``."""
        if isinstance(model, ModelFamily):
            return model
        model_id = (model or "").lower()
        if model_id.startswith("anthropic/") or model_id.startswith("claude"):
            return cls.ANTHROPIC
        if model_id.startswith("google/") or model_id.startswith("gemini"):
            return cls.GOOGLE
        return cls.DEFAULT

    @property
    def requires_alternation(self) -> bool:
        return self is ModelFamily.ANTHROPIC

    @property
    def supports_system_role(self) -> bool:
        return self is not ModelFamily.GOOGLE


def format_messages(
    messages: Sequence[ConversationMessage],
    model: str | ModelFamily | None = None,
    max_messages: int | None = None,
) -> list[ConversationMessage]:
    """Adapt a message list to the constraints of the target model.

    Args:
        messages: Conversation history in order
        model: Model id or family the messages are sent to
        max_messages: Keep only this many of the most recent messages. A leading
            system message is always kept and counts toward the limit, so ``2``
            yields the system message plus the latest message.

    Returns:
        A new list; the input messages are never mutated. Ordering is preserved
        and no text is dropped beyond what truncation removes.
    """
    family = ModelFamily.from_model(model)
    formatted = _truncate(list(messages), max_messages)

    if not family.supports_system_role:
        formatted = [_system_as_user(message) if message.role == "system" else message for message in formatted]

    if family.requires_alternation:
        formatted = _merge_consecutive_roles(formatted)

    return formatted


def _truncate(messages: list[ConversationMessage], max_messages: int | None) -> list[ConversationMessage]:
    if max_messages is None or len(messages) <= max_messages:
        return messages
    if max_messages < 1:
        raise ValueError("max_messages must be at least 1")

    if messages[0].role == "system":
        recent = messages[1:][-(max_messages - 1) :] if max_messages > 1 else []
        return [messages[0], *recent]
    return messages[-max_messages:]


def _system_as_user(message: ConversationMessage) -> ConversationMessage:
    return message.model_copy(
        update={
            "role": "user",
            "content": f"{SYSTEM_DELIMITER_OPEN}\n{message.text}\n{SYSTEM_DELIMITER_CLOSE}",
        }
    )


def _merge_consecutive_roles(messages: list[ConversationMessage]) -> list[ConversationMessage]:
    merged: list[ConversationMessage] = []
    for message in messages:
        previous = merged[-1] if merged else None
        if previous is not None and previous.role == message.role:
            merged[-1] = previous.model_copy(update={"content": _join_content(previous, message)})
        else:
            merged.append(message)
    return merged


def _join_content(first: ConversationMessage, second: ConversationMessage) -> str | list[ContentPart]:
    if isinstance(first.content, str) and isinstance(second.content, str):
        return f"{first.content}{MERGE_SEPARATOR}{second.content}"
    return [*_as_parts(first.content), TextContent(text=MERGE_SEPARATOR), *_as_parts(second.content)]


def _as_parts(content: str | list[ContentPart]) -> list[ContentPart]:
    if isinstance(content, str):
        return [TextContent(text=content)] if content else []
    return list(content)


# Message constructors


def create_system_message(instructions: str = DEFAULT_SYSTEM_PROMPT) -> ConversationMessage:
    return ConversationMessage(role="system", content=instructions)


def create_user_message(content: str | list[ContentPart], name: str | None = None) -> ConversationMessage:
    return ConversationMessage(role="user", content=content, name=name)


def create_multimodal_user_message(
    text: str, image_urls: Sequence[str], name: str | None = None, detail: str = "auto"
) -> ConversationMessage:
    """Create a user message carrying text followed by one part per image."""
    parts: list[ContentPart] = [TextContent(text=text)]
    parts.extend(ImageContent(image_url=ImageURL(url=url, detail=detail)) for url in image_urls)
    return ConversationMessage(role="user", content=parts, name=name)


def create_assistant_message(content: str) -> ConversationMessage:
    """Create an assistant message with its Markdown converted to Slack mrkdwn."""
    return ConversationMessage(role="assistant", content=to_slack_markdown(content))


# Markdown -> Slack mrkdwn
#
# Every pattern only matches Markdown-only constructs and none of the
# replacements produce text another pattern matches, which keeps the
# conversion idempotent. Code spans and fenced blocks are left untouched.

_CODE = re.compile(r"```[\s\S]*?```|`[^`\n]+`")
_LINK = re.compile(r"\[([^\[\]<>|`\n]+)\]\(([^()\[\]\s<>|`]+)\)")
_BOLD = re.compile(r"(?<!\*)\*\*([^*\n]+)\*\*(?!\*)")
_STRIKE = re.compile(r"(?<!~)~~([^~\n]+)~~(?!~)")
_BULLET = re.compile(r"^[ \t]*[-*][ \t]+", re.MULTILINE)
_QUOTE = re.compile(r"^>[ \t]+", re.MULTILINE)


def to_slack_markdown(text: str) -> str:
    """Convert Markdown emphasis, links, bullets and quotes to Slack mrkdwn.

    Text already in Slack syntax (``*bold*``, ``_italic_``, ``~strike~``,
    ``<url|text>``, ``•`` bullets) is left as is, so applying the conversion
    to its own output changes nothing.
    """
    if not text:
        return text

    pieces: list[str] = []
    cursor = 0
    for match in _CODE.finditer(text):
        pieces.append(_convert_segment(text[cursor : match.start()], _at_line_start(text, cursor)))
        pieces.append(match.group(0))
        cursor = match.end()
    pieces.append(_convert_segment(text[cursor:], _at_line_start(text, cursor)))
    return "".join(pieces)


def _at_line_start(text: str, index: int) -> bool:
    return index == 0 or text[index - 1] == "\n"


def _convert_segment(segment: str, at_line_start: bool) -> str:
    if not segment:
        return segment

    segment = _LINK.sub(r"<\2|\1>", segment)
    segment = _BOLD.sub(r"*\1*", segment)
    segment = _STRIKE.sub(r"~\1~", segment)

    if at_line_start:
        return _convert_line_starts(segment)

    # The segment continues a line that began before a code span
    first_line, newline, rest = segment.partition("\n")
    return first_line + newline + _convert_line_starts(rest) if newline else segment


def _convert_line_starts(segment: str) -> str:
    segment = _QUOTE.sub(">", segment)
    return _BULLET.sub("• ", segment)
