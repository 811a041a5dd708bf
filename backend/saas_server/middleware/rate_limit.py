"""Fixed-window rate limiting for authentication endpoints.

Each limiter counts requests per client identity in discrete windows: the
first request opens a window, later requests within `window_seconds`
increment the count, and a request arriving after the window has elapsed
starts a new one. This is a fixed-window counter, not a sliding log or
token bucket.

One limiter instance exists per endpoint class; instances are never shared
between classes with different (window, limit) pairs.
"""

import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from email.utils import format_datetime
from typing import Optional

from fastapi import HTTPException, Request, status

from saas_server.core.config import settings
from saas_server.core.logging import log_security_event
from saas_server.core.request_utils import get_client_ip


@dataclass
class RateLimitWindow:
    """Request count for one client in its current window."""

    count: int
    window_start: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    count: int
    retry_after: datetime | None = None

    @property
    def retry_after_header(self) -> str | None:
        """Retry-After as an HTTP-date."""
        if self.retry_after is None:
            return None
        return format_datetime(self.retry_after, usegmt=True)


class FixedWindowRateLimiter:
    """In-memory fixed-window counter keyed by client identity.

    All reads and writes of the window map happen under a single lock that
    is never held across I/O.
    """

    def __init__(
        self,
        name: str,
        window_seconds: float,
        max_requests: int,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.name = name
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._wall_clock = wall_clock
        self._windows: dict[str, RateLimitWindow] = {}
        self._lock = threading.Lock()

    def admit(self, identity: str) -> RateLimitDecision:
        """Count a request and decide whether it may proceed.

        Rejected requests still count toward the current window.
        """
        with self._lock:
            now = self._clock()
            window = self._windows.get(identity)
            if window is None or now - window.window_start > self.window_seconds:
                self._windows[identity] = RateLimitWindow(count=1, window_start=now)
                return RateLimitDecision(allowed=True, count=1)

            window.count += 1
            count = window.count

        if count > self.max_requests:
            retry_after = self._wall_clock() + timedelta(seconds=self.window_seconds)
            return RateLimitDecision(allowed=False, count=count, retry_after=retry_after)
        return RateLimitDecision(allowed=True, count=count)

    def sweep(self) -> int:
        """Drop windows that have aged past `window_seconds`. Returns count removed."""
        with self._lock:
            now = self._clock()
            expired = [
                identity
                for identity, window in self._windows.items()
                if now - window.window_start > self.window_seconds
            ]
            for identity in expired:
                del self._windows[identity]
        return len(expired)

    def reset(self, identity: str | None = None) -> None:
        """Reset counters for one client, or for everyone."""
        with self._lock:
            if identity is None:
                self._windows.clear()
            else:
                self._windows.pop(identity, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


class RateLimiterRegistry:
    """The per-endpoint-class limiters of this process."""

    _instance: Optional["RateLimiterRegistry"] = None
    _instance_lock: threading.Lock = threading.Lock()

    def __init__(self) -> None:
        self.auth = FixedWindowRateLimiter(
            "auth",
            window_seconds=settings.auth_rate_limit_window_seconds,
            max_requests=settings.auth_rate_limit_max_requests,
        )
        self.refresh = FixedWindowRateLimiter(
            "refresh",
            window_seconds=settings.refresh_rate_limit_window_seconds,
            max_requests=settings.refresh_rate_limit_max_requests,
        )

    @classmethod
    def get_instance(cls) -> "RateLimiterRegistry":
        """Get the singleton instance (thread-safe)."""
        if cls._instance is None:
            with cls._instance_lock:
                # Double-check locking pattern
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def all(self) -> list[FixedWindowRateLimiter]:
        return [self.auth, self.refresh]

    def reset(self) -> None:
        for limiter in self.all():
            limiter.reset()


def get_rate_limiters() -> RateLimiterRegistry:
    return RateLimiterRegistry.get_instance()


def rate_limited(limiter: FixedWindowRateLimiter) -> Callable[[Request], Awaitable[None]]:
    """Build a route dependency that admits requests through `limiter`.

    Usage:
        @router.post("/login", dependencies=[Depends(rate_limited(limiters.auth))])
    """

    async def dependency(request: Request) -> None:
        client_ip = get_client_ip(request)
        decision = limiter.admit(client_ip)
        if not decision.allowed:
            log_security_event(
                "rate_limited",
                f"{limiter.name} limit {decision.count}/{limiter.max_requests}",
                client=client_ip,
                path=request.url.path,
            )
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests",
                headers={"Retry-After": decision.retry_after_header or ""},
            )

    return dependency
