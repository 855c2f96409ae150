"""
Rate Limiting Module

Fixed-window rate limiting keyed by (action, identity), stored in an
injected ExpiringStore (Redis when available, otherwise process memory).

SECURITY: Rate limiting protects the public intake endpoints:
- Application start (prevents mass sign-ups from one address)
- Upload slot requests (prevents storage abuse)
- Verification code resends (prevents email bombing)

Semantics:
- A window starts on the first request, or on the first request after the
  previous window's reset time has passed.
- Every call is charged, including rejected ones.
- The limiter never raises: if the shared store fails it logs a warning and
  serves the request from a process-local fallback store.
"""

import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from fastapi import HTTPException, Request, status

from intake.core.kv_store import Clock, ExpiringStore, InMemoryExpiringStore, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """Window length in milliseconds and the allowed calls per window."""

    window_ms: int
    max_requests: int


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    remaining: int
    reset_at: datetime


# Presets for the public endpoints (per client IP)
RATE_LIMITS: dict[str, RateLimitConfig] = {
    "application": RateLimitConfig(window_ms=60 * 60 * 1000, max_requests=3),
    "presign": RateLimitConfig(window_ms=10 * 60 * 1000, max_requests=10),
    "email_verification": RateLimitConfig(window_ms=60 * 60 * 1000, max_requests=5),
}


class RateLimiter:
    """
    Fixed-window counter over an ExpiringStore.

    Each window is one counter bumped with the store's atomic ``increment``,
    so concurrent requests can never read the same count. Counters expire at
    the end of their window and the store's own sweep cleans them up.
    """

    def __init__(self, store: ExpiringStore, clock: Clock = utc_now):
        self._store = store
        self._clock = clock
        self._fallback = InMemoryExpiringStore(clock)

    @property
    def store(self) -> ExpiringStore:
        return self._store

    def now(self) -> datetime:
        return self._clock()

    async def check(self, identity: str, config: RateLimitConfig) -> RateLimitResult:
        """
        Count one call for ``identity`` and report whether it is within limits.

        Args:
            identity: Key such as ``"application:203.0.113.7"``
            config: Window and ceiling to apply

        Returns:
            RateLimitResult with the post-increment remaining budget
        """
        try:
            return await self._check(self._store, identity, config)
        except Exception as e:
            logger.warning(f"Rate limit store failed, using in-memory fallback: {e}")
            return await self._check(self._fallback, identity, config)

    async def sweep(self) -> int:
        """Evict expired windows from the primary and fallback stores."""
        return await self._store.sweep() + await self._fallback.sweep()

    async def _check(
        self,
        store: ExpiringStore,
        identity: str,
        config: RateLimitConfig,
    ) -> RateLimitResult:
        now = self._clock()
        count, reset_at = await store.increment(
            identity, now + timedelta(milliseconds=config.window_ms)
        )

        return RateLimitResult(
            success=count <= config.max_requests,
            remaining=max(0, config.max_requests - count),
            reset_at=reset_at,
        )


class RateLimitExceeded(HTTPException):
    """Exception raised when rate limit is exceeded."""

    def __init__(self, reset_at: datetime, now: datetime):
        retry_after_seconds = max(1, math.ceil((reset_at - now).total_seconds()))
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": "Too many requests. Please try again later.",
                "retry_after": reset_at.isoformat(),
            },
            headers={"Retry-After": str(retry_after_seconds)},
        )


def get_rate_limit_identifier(request: Request) -> str:
    """
    Identify the caller for rate limiting.

    Prefers the first hop of X-Forwarded-For, then X-Real-IP, then the
    socket peer address.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


def rate_limit(action: str) -> Callable[[Request], Awaitable[RateLimitResult]]:
    """
    Build a FastAPI dependency enforcing the named preset.

    Usage:
        @router.post("/start")
        async def start(_: RateLimitResult = Depends(rate_limit("application"))):
            ...

    Raises:
        RateLimitExceeded: When the caller is over the limit (HTTP 429)
    """
    config = RATE_LIMITS[action]

    async def dependency(request: Request) -> RateLimitResult:
        limiter: RateLimiter = request.app.state.rate_limiter
        identifier = get_rate_limit_identifier(request)
        result = await limiter.check(f"{action}:{identifier}", config)

        if not result.success:
            logger.warning(f"Rate limit exceeded for {action}:{identifier}")
            raise RateLimitExceeded(result.reset_at, limiter.now())

        return result

    return dependency


__all__ = [
    "RATE_LIMITS",
    "RateLimitConfig",
    "RateLimitExceeded",
    "RateLimitResult",
    "RateLimiter",
    "get_rate_limit_identifier",
    "rate_limit",
]
