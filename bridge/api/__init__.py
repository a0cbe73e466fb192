"""HTTP API and Slack Events endpoints."""
