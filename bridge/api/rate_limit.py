"""Per-client rate limiting for the HTTP API."""

from dataclasses import dataclass

from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from bridge.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitStatus:
    """Outcome of one rate limit check."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: int  # Unix seconds when the oldest counted request leaves the window

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }


class ApiRateLimiter:
    """Moving-window limit of requests per minute for each client."""

    def __init__(self, requests_per_minute: int = 60):
        self.limiter = MovingWindowRateLimiter(MemoryStorage())
        self.limit = parse(f"{requests_per_minute}/minute")

    def hit(self, client_id: str) -> RateLimitStatus:
        """Count a request for a client and report whether it is allowed."""
        allowed = self.limiter.hit(self.limit, "api", client_id)
        stats = self.limiter.get_window_stats(self.limit, "api", client_id)
        if not allowed:
            logger.warning(f"Rate limit exceeded for {client_id}")
        return RateLimitStatus(
            allowed=allowed,
            limit=self.limit.amount,
            remaining=max(0, stats.remaining),
            reset_at=int(stats.reset_time),
        )
