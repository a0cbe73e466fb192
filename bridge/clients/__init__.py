"""Clients for the model providers and the Slack Web API."""
