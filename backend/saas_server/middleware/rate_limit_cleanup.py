"""Background sweep of idle rate limiter windows."""

import asyncio
import logging
from collections.abc import Callable, Iterable

from saas_server.middleware.rate_limit import FixedWindowRateLimiter, get_rate_limiters

logger = logging.getLogger(__name__)


async def rate_limit_cleanup_loop(
    limiters: Callable[[], Iterable[FixedWindowRateLimiter]] = lambda: get_rate_limiters().all(),
    interval: float = 3600,
) -> None:
    """Periodic cleanup of expired rate limit windows to prevent memory leaks."""
    while True:
        try:
            await asyncio.sleep(interval)
            for limiter in limiters():
                removed = limiter.sweep()
                if removed > 0:
                    logger.debug(f"Rate limiter cleanup ({limiter.name}): removed {removed} windows")
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.warning(f"Rate limiter cleanup error: {e}")
