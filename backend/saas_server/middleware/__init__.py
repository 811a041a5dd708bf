"""Request-level guards: rate limiting and authentication."""

from saas_server.middleware.auth import require_auth
from saas_server.middleware.rate_limit import FixedWindowRateLimiter, get_rate_limiters, rate_limited
from saas_server.middleware.rate_limit_cleanup import rate_limit_cleanup_loop

__all__ = [
    "FixedWindowRateLimiter",
    "get_rate_limiters",
    "rate_limit_cleanup_loop",
    "rate_limited",
    "require_auth",
]
