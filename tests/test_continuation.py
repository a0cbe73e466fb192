"""Tests for the continuation heuristic and follow-up prompts."""

import json

import pytest

from bridge.models.llm import DispatchRecord, FunctionCall
from bridge.services.continuation import (
    KeywordContinuationStrategy,
    build_follow_up_prompt,
    compact_result,
    continuation_system_prompt,
)
from bridge.services.formatter import SLACK_FORMATTING_RULES


def _ok(name: str, **payload) -> DispatchRecord:
    return DispatchRecord(function_name=name, result={**payload, "success": True})


def _failed(name: str, error: str = "boom") -> DispatchRecord:
    return DispatchRecord(function_name=name, result={"success": False, "error": error})


class TestShouldContinue:
    """Tests for deciding whether another model round is needed."""

    @pytest.fixture
    def strategy(self):
        return KeywordContinuationStrategy()

    def test_no_cue_stops(self, strategy):
        """Test that a plain request stops after the first function."""
        assert not strategy.should_continue(_ok("createChannel"), "create a channel called launch-prep", [])

    def test_invite_cue_continues(self, strategy):
        """Test that an invite cue after createChannel asks for another round."""
        text = "create a channel called launch-prep and invite U1, U2"
        assert strategy.should_continue(_ok("createChannel"), text, [])

    def test_temporal_connective_continues(self, strategy):
        """Test that 'then' after a two-step first function continues."""
        assert strategy.should_continue(_ok("searchChannels"), "find the design channel then do the rest", [])

    def test_meeting_summary_continues(self, strategy):
        """Test that meeting summaries continue regardless of the function."""
        assert strategy.should_continue(_ok("getChannelMembers"), "Summarize the meeting for the team", [])

    def test_function_without_follow_ups_stops(self, strategy):
        """Test that functions outside the two-step patterns stop the run."""
        assert not strategy.should_continue(_ok("addReaction"), "add a reaction then send a message", [])

    def test_failed_call_stops(self, strategy):
        """Test that a failed last call never continues."""
        text = "create a channel called launch-prep and invite U1"
        assert not strategy.should_continue(_failed("createChannel"), text, [])

    def test_cue_must_be_a_whole_word(self, strategy):
        """Test that cue words inside other words do not match."""
        assert not strategy.should_continue(_ok("createChannel"), "create a channel called address-book", [])


class TestFollowUpFunctions:
    """Tests for the functions offered in a follow-up round."""

    @pytest.fixture
    def strategy(self):
        return KeywordContinuationStrategy()

    def test_cued_function_narrows_the_set(self, strategy):
        """Test that only the cued next step is offered."""
        functions = strategy.follow_up_functions(_ok("createChannel"), "create launch-prep and invite U1")
        assert functions == ["inviteToChannel"]

    def test_uncued_returns_all_candidates(self, strategy):
        """Test that all next steps are offered when none is named."""
        functions = strategy.follow_up_functions("createChannel", "create launch-prep then finish up")
        assert functions == ["inviteToChannel", "sendMessage"]

    def test_unknown_first_function_falls_back(self, strategy):
        """Test the fallback for functions without a known pattern."""
        functions = strategy.follow_up_functions(FunctionCall(name="listUsers"), "summarize the meeting")
        assert functions == ["sendMessage"]

    def test_custom_follow_ups_are_capped(self):
        """Test that at most three functions are offered."""
        strategy = KeywordContinuationStrategy(follow_ups={"a": ["b", "c", "d", "e"]}, cues={})
        assert strategy.follow_up_functions("a", "a then b") == ["b", "c", "d"]


class TestFollowUpPrompt:
    """Tests for the prompt and instructions of a follow-up round."""

    def test_compact_result_keeps_whitelisted_fields(self):
        """Test that only success and whitelisted fields survive."""
        result = {"success": True, "channelId": "C1", "channelName": "x", "raw": {"huge": "payload"}}
        assert compact_result(result) == {"success": True, "channelId": "C1", "channelName": "x"}

    def test_compact_result_trims_channels(self):
        """Test that channel lists are reduced to ids and names and capped."""
        channels = [{"id": f"C{i}", "name": f"chan-{i}", "isPrivate": False} for i in range(15)]

        compact = compact_result({"success": True, "channels": channels})

        assert len(compact["channels"]) == 10
        assert compact["channels"][0] == {"id": "C0", "name": "chan-0"}

    def test_compact_result_for_failure(self):
        """Test that failures carry their error only."""
        assert compact_result({"success": False, "error": "nope", "channelId": "C1"}) == {
            "success": False,
            "error": "nope",
        }

    def test_build_follow_up_prompt(self):
        """Test that the prompt embeds the request and every prior result."""
        records = [_ok("createChannel", channelId="C1", channelName="launch-prep")]

        prompt = build_follow_up_prompt("create launch-prep and invite U1", records)

        expected_result = json.dumps({"success": True, "channelId": "C1", "channelName": "launch-prep"})
        assert prompt == (
            'Original request: "create launch-prep and invite U1". '
            f"Function results: createChannel: {expected_result}. "
            "What's the next step to complete the user's request?"
        )

    def test_continuation_system_prompt(self):
        """Test per-function instructions and the generic fallback."""
        prompt = continuation_system_prompt("inviteToChannel")
        assert prompt.startswith("After inviting users to a channel")
        assert prompt.endswith(SLACK_FORMATTING_RULES)

        assert continuation_system_prompt("listUsers").startswith("Complete multi-step task.")
