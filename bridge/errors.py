"""Error hierarchy for the bridge.

Per-function failures never use these types: the dispatcher turns them into
``{"success": False, "error": ...}`` results. These exceptions mark the
failures that do cross a component boundary.
"""

from typing import Any


class BridgeError(Exception):
    """Base for all bridge errors."""


class ConfigurationError(BridgeError):
    """Missing or invalid startup configuration (env vars, duplicate functions)."""


class ContextNotFoundError(BridgeError, KeyError):
    """A conversation operation referenced an unknown thread key."""

    def __init__(self, thread_key: str) -> None:
        self.thread_key = thread_key
        super().__init__(f"No conversation for thread key: {thread_key}")

    def __str__(self) -> str:
        return self.args[0]


class ProviderError(BridgeError):
    """The model provider call failed."""


class ProviderAuthError(ProviderError):
    """Authentication with the model provider failed (401/403)."""


class ProviderRateLimitError(ProviderError):
    """Rate limited by the model provider (429).

    Attributes:
        retry_after: Seconds to wait before retrying, if the provider said so.
    """

    def __init__(self, message: str = "Rate limited", retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        if retry_after is not None:
            message = f"{message} (retry after {retry_after}s)"
        super().__init__(message)


class ProviderResponseError(ProviderError):
    """The provider answered with a payload we cannot interpret."""


class SlackAPIError(BridgeError):
    """A Slack Web API call returned ``ok: false`` or failed at the HTTP level.

    ``str(error)`` is the Slack error code (e.g. ``channel_not_found``) so it can
    be surfaced verbatim in function results.
    """

    def __init__(self, code: str, method: str | None = None, response: dict[str, Any] | None = None) -> None:
        self.code = code
        self.method = method
        self.response = response or {}
        super().__init__(code)


class OrchestrationError(BridgeError):
    """A run-level failure of the orchestration loop.

    Attributes:
        partial_results: Function results dispatched before the failure, in
            call order, so callers can report partial progress.
    """

    def __init__(self, message: str, partial_results: list | None = None) -> None:
        self.partial_results = list(partial_results or [])
        super().__init__(message)
