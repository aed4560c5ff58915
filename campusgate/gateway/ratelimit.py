"""
CampusGate - Request Rate Limiting

Fixed-window limit keyed by client IP and path, backed by the limits
library. In-process memory by default; point RATE_LIMIT_STORAGE_URI at
redis:// to share counts across workers.
"""

import math
import time
from dataclasses import dataclass
from typing import Optional

from limits import RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter

from campusgate.logging import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float  # epoch seconds

    def retry_after(self, now: Optional[float] = None) -> int:
        """Whole seconds until the window resets, never less than 1."""
        if now is None:
            now = time.time()
        return max(1, math.ceil(self.reset_at - now))


class RequestRateLimiter:
    """
    Usage:
        limiter = RequestRateLimiter(max_requests=100, window_seconds=60)
        result = limiter.hit(f"{ip}:{path}")
        if not result.allowed:
            ...  # 429 with Retry-After
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        storage_uri: str = "memory://",
    ):
        if window_seconds <= 0:
            logger.warning("rate_limit_invalid_window", window_seconds=window_seconds)
            window_seconds = 60
        self.item = RateLimitItemPerSecond(max_requests, window_seconds)
        self.storage = storage_from_string(storage_uri)
        self.strategy = FixedWindowRateLimiter(self.storage)

    def hit(self, key: str) -> RateLimitResult:
        """Count one request against key and report whether it may proceed."""
        allowed = self.strategy.hit(self.item, key)
        stats = self.strategy.get_window_stats(self.item, key)
        return RateLimitResult(
            allowed=allowed,
            remaining=stats.remaining,
            reset_at=stats.reset_time,
        )
