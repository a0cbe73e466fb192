"""Conversation state, formatting, continuation and inbound handling."""
