"""Slack AI bridge: conversation state and function-call orchestration."""

__version__ = "0.1.0"
