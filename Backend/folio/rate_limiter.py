"""
Rate Limiting

Fixed-window counters keyed by client IP and bucket name, stored in an
injectable TTL store. The in-memory store serves a single worker; a shared
cache (Redis and friends) only has to implement ``TTLStore`` to make the
limits hold across instances.

Limits in use:
- contact form:  CONTACT_RATE_LIMIT per CONTACT_RATE_WINDOW_SECONDS per IP
- admin login:   LOGIN_RATE_LIMIT per LOGIN_RATE_WINDOW_SECONDS per IP

Usage:
    from .rate_limiter import contact_limiter, rate_limit_dependency

    @router.post("/api/contact", dependencies=[Depends(rate_limit_dependency(contact_limiter, "contact"))])
    async def submit_contact(...):
        ...
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from fastapi import HTTPException, Request, status

from .core.config import get_settings
from .core.responses import ErrorCodes, error_response

logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────────
# TTL Stores
# ────────────────────────────────────────────────────────────────

class TTLStore(Protocol):
    def incr(self, key: str, ttl_seconds: int) -> tuple[int, float]:
        """Increment ``key``; start a fresh window of ``ttl_seconds`` if absent or expired.

        Returns (count, expires_at) where expires_at is a ``time.time()`` timestamp.
        """
        ...

    def clear(self, key: Optional[str] = None) -> None:
        ...


class InMemoryTTLStore:
    """Process-local counters with explicit expiry."""

    def __init__(self, clock: Callable[[], float] = time.time, sweep_interval: int = 300):
        self._entries: dict[str, tuple[int, float]] = {}
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._last_sweep = clock()

    def incr(self, key: str, ttl_seconds: int) -> tuple[int, float]:
        now = self._clock()
        self._sweep(now)
        count, expires_at = self._entries.get(key, (0, 0.0))
        if expires_at <= now:
            count, expires_at = 0, now + ttl_seconds
        count += 1
        self._entries[key] = (count, expires_at)
        return count, expires_at

    def clear(self, key: Optional[str] = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def _sweep(self, now: float) -> None:
        """Drop expired windows so idle IPs do not accumulate."""
        if now - self._last_sweep < self._sweep_interval:
            return
        for key in [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]:
            del self._entries[key]
        self._last_sweep = now
        logger.debug("Rate limiter sweep: %d keys tracked", len(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


# ────────────────────────────────────────────────────────────────
# Limiter
# ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after: int


class RateLimiter:
    def __init__(self, store: TTLStore, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.time):
        if max_requests < 1 or window_seconds < 1:
            raise ValueError("max_requests and window_seconds must be >= 1")
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock

    def hit(self, bucket: str, client: str) -> RateLimitResult:
        count, expires_at = self.store.incr(f"{bucket}:{client}", self.window_seconds)
        retry_after = max(0, math.ceil(expires_at - self._clock()))
        return RateLimitResult(
            allowed=count <= self.max_requests,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_at=int(expires_at),
            retry_after=retry_after,
        )


def get_client_ip(request: Request) -> str:
    """
    Extract client IP from request.

    Checks X-Forwarded-For header first (for proxied requests),
    then falls back to client.host.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


# ────────────────────────────────────────────────────────────────
# FastAPI Dependencies
# ────────────────────────────────────────────────────────────────

def rate_limit_dependency(limiter: RateLimiter, bucket: str, message: str = "Too many requests. Please try again later."):
    """
    Create a rate limit dependency for FastAPI routes.

    Raises HTTPException 429 with Retry-After and X-RateLimit-* headers when
    the client has used up its window.
    """
    async def dependency(request: Request):
        client_ip = get_client_ip(request)
        result = limiter.hit(bucket, client_ip)
        if not result.allowed:
            logger.warning(
                "[RATE_LIMIT] Blocked %s on %s: limit %d per %ds",
                client_ip,
                bucket,
                result.limit,
                limiter.window_seconds,
            )
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=error_response(message, ErrorCodes.RATE_LIMITED),
                headers={
                    "Retry-After": str(result.retry_after),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(result.reset_at),
                },
            )
        return None

    return dependency


_settings = get_settings()
_store = InMemoryTTLStore()

contact_limiter = RateLimiter(_store, _settings.contact_rate_limit, _settings.contact_rate_window_seconds)
login_limiter = RateLimiter(_store, _settings.login_rate_limit, _settings.login_rate_window_seconds)


def clear_rate_limits() -> None:
    """Reset every window (tests, or an operator unblocking a client)."""
    _store.clear()
