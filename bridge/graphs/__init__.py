"""Orchestration graph built on LangGraph."""
