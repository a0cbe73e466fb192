"""Decides whether a request needs another model round after a batch of calls.

The default strategy is a keyword heuristic over the user's original text. It
is best-effort: the orchestrator's cap on follow-up rounds is what guarantees
termination, so false positives only cost a bounded number of model calls.
"""

import json
import re
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from bridge.models.llm import DispatchRecord, FunctionCall
from bridge.services.formatter import SLACK_FORMATTING_RULES
from bridge.utils.logging import get_logger

logger = get_logger(__name__)

MAX_FOLLOW_UP_FUNCTIONS = 3
FALLBACK_FOLLOW_UP_FUNCTIONS: tuple[str, ...] = ("sendMessage",)

# First step of a known two-step pattern -> its plausible next steps
FOLLOW_UP_FUNCTIONS: dict[str, tuple[str, ...]] = {
    "searchChannels": ("sendMessage",),
    "searchMessages": ("sendMessage",),
    "createChannel": ("inviteToChannel", "sendMessage"),
    "inviteToChannel": ("sendMessage",),
    "createChannelAndInviteUsers": ("sendMessage",),
}

# Words in the user's text that ask for a given next step
NEXT_STEP_CUES: dict[str, tuple[str, ...]] = {
    "inviteToChannel": ("invite", "add"),
    "sendMessage": ("send", "post", "share", "message", "welcome", "announce"),
}

TEMPORAL_CONNECTIVES: tuple[str, ...] = ("then", "after", "next", "finally", "afterwards")

# Payload fields carried into the follow-up prompt
RESULT_FIELD_WHITELIST: tuple[str, ...] = (
    "message",
    "channelId",
    "channelName",
    "channels",
    "userId",
    "messageTs",
    "invitedUsers",
)
MAX_SERIALIZED_CHANNELS = 10

_GENERIC_INSTRUCTIONS = "Complete multi-step task. Be concise and execute the next logical function without explanations."
_CONTINUATION_INSTRUCTIONS: dict[str, str] = {
    "searchChannels": (
        "After finding channels, send a message to the appropriate channel. "
        "No explanations - just execute the sendMessage function."
    ),
    "searchMessages": (
        "After finding messages, send a message to the appropriate channel. "
        "No explanations - just execute the sendMessage function."
    ),
    "createChannel": (
        "After creating a channel, either invite users or send a welcome message. "
        "No explanations - just execute the next function."
    ),
    "inviteToChannel": (
        "After inviting users to a channel, send a welcome message. "
        "No explanations - just execute the sendMessage function."
    ),
    "createChannelAndInviteUsers": (
        "After creating a channel and inviting users, send a welcome message. "
        "No explanations - just execute the sendMessage function."
    ),
}


class ContinuationStrategy(Protocol):
    """Decides whether the orchestrator should run another model round."""

    def should_continue(
        self, last_call: DispatchRecord, user_text: str, prior_results: Sequence[DispatchRecord]
    ) -> bool: ...

    def follow_up_functions(self, first_call: "FunctionCall | DispatchRecord | str", user_text: str) -> list[str]: ...


def _words(text: str) -> set[str]:
    return set(re.findall(r"[a-z]+", text.lower()))


class KeywordContinuationStrategy:
    """Keyword heuristic over the last dispatched function and the user's text.

    Continues when:

    * the text pairs ``summary``/``summarize`` with ``meeting``; or
    * the last function is the first step of a known two-step pattern and the
      text carries a cue for one of its next steps or a temporal connective.

    A failed last call always stops the run.
    """

    def __init__(
        self,
        follow_ups: Mapping[str, Sequence[str]] | None = None,
        cues: Mapping[str, Sequence[str]] | None = None,
        connectives: Sequence[str] = TEMPORAL_CONNECTIVES,
    ):
        self.follow_ups = dict(follow_ups if follow_ups is not None else FOLLOW_UP_FUNCTIONS)
        self.cues = dict(cues if cues is not None else NEXT_STEP_CUES)
        self.connectives = tuple(connectives)

    def should_continue(
        self, last_call: DispatchRecord, user_text: str, prior_results: Sequence[DispatchRecord]
    ) -> bool:
        if not last_call.success:
            logger.debug(f"Not continuing: {last_call.function_name} failed")
            return False

        words = _words(user_text)

        if words & {"summary", "summarize", "summarise"} and "meeting" in words:
            return True

        next_steps = self.follow_ups.get(last_call.function_name)
        if not next_steps:
            return False

        if self.cued_functions(next_steps, user_text):
            return True
        return bool(words & set(self.connectives))

    def cued_functions(self, candidates: Sequence[str], user_text: str) -> list[str]:
        """Return the candidates whose cue words appear in the text, in order."""
        words = _words(user_text)
        return [name for name in candidates if words & set(self.cues.get(name, ()))]

    def follow_up_functions(self, first_call: FunctionCall | DispatchRecord | str, user_text: str) -> list[str]:
        """Function names offered to the model in a follow-up round.

        Derived from the first function dispatched in the round. When the text
        names some of the candidates explicitly only those are offered.
        """
        name = _function_name(first_call)
        candidates = list(self.follow_ups.get(name, FALLBACK_FOLLOW_UP_FUNCTIONS))
        cued = self.cued_functions(candidates, user_text)
        return (cued or candidates)[:MAX_FOLLOW_UP_FUNCTIONS]


def _function_name(call: FunctionCall | DispatchRecord | str) -> str:
    if isinstance(call, str):
        return call
    if isinstance(call, DispatchRecord):
        return call.function_name
    return call.name


def continuation_system_prompt(first_function: str | None) -> str:
    """System instructions for a follow-up round, keyed by the round's first function."""
    instructions = _CONTINUATION_INSTRUCTIONS.get(first_function or "", _GENERIC_INSTRUCTIONS)
    return f"{instructions}\n\n{SLACK_FORMATTING_RULES}"


def compact_result(result: Mapping[str, Any]) -> dict[str, Any]:
    """Reduce a function result to success, error and whitelisted payload fields."""
    compact: dict[str, Any] = {"success": bool(result.get("success"))}
    if not compact["success"]:
        compact["error"] = result.get("error", "Unknown error")
        return compact

    for key in RESULT_FIELD_WHITELIST:
        if key not in result:
            continue
        value = result[key]
        if key == "channels" and isinstance(value, list):
            value = [
                {"id": channel.get("id"), "name": channel.get("name")} if isinstance(channel, Mapping) else channel
                for channel in value[:MAX_SERIALIZED_CHANNELS]
            ]
        compact[key] = value
    return compact


def build_follow_up_prompt(user_text: str, results: Sequence[DispatchRecord]) -> str:
    """Prompt for a follow-up round embedding the request and prior results."""
    serialized = "; ".join(
        f"{record.function_name}: {json.dumps(compact_result(record.result), default=str)}" for record in results
    )
    return (
        f'Original request: "{user_text}". Function results: {serialized}. '
        "What's the next step to complete the user's request?"
    )
