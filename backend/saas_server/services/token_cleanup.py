"""Hourly removal of expired tokens."""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from saas_server.services.subscription_cache import SubscriptionStatusCache
from saas_server.services.token_store import SqlAlchemyTokenStore

logger = logging.getLogger(__name__)


async def cleanup_expired_tokens(session: AsyncSession) -> dict[str, int]:
    """Delete expired refresh tokens, blacklist entries and reset tokens.

    Returns per-table counts of removed rows.
    """
    store = SqlAlchemyTokenStore(session)
    return {
        "refresh_tokens": await store.delete_expired_refresh_tokens(),
        "blacklist_entries": await store.delete_expired_blacklist_entries(),
        "password_reset_tokens": await store.delete_expired_password_reset_tokens(),
    }


async def token_cleanup_loop(
    session_factory: async_sessionmaker[AsyncSession],
    interval: float = 3600,
) -> None:
    """Periodically purge expired tokens and stale subscription cache entries."""
    while True:
        try:
            await asyncio.sleep(interval)
            async with session_factory() as session:
                await cleanup_expired_tokens(session)
            swept = SubscriptionStatusCache.get_instance().sweep_expired()
            if swept > 0:
                logger.debug(f"Subscription cache cleanup: removed {swept} entries")
        except asyncio.CancelledError:
            break
        except Exception:
            logger.exception("Error cleaning up expired tokens")
