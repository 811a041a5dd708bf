"""In-process cache of users' subscription status.

Lookups that miss the cache run the loader as a detached task. The caller
waits a bounded time; a loader still running after the timeout keeps going
and fills the cache for later requests.
"""

import asyncio
import logging
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from saas_server.core.config import settings
from saas_server.models.user import User

logger = logging.getLogger(__name__)

TTL_SECONDS = 300


@dataclass(frozen=True)
class SubscriptionStatus:
    status: str | None
    product_id: int | None
    variant_id: int | None


class SubscriptionLookupTimeout(Exception):
    """The status lookup did not finish within the caller's timeout."""

    pass


class SubscriptionStatusCache:
    _instance: Optional["SubscriptionStatusCache"] = None
    _instance_lock: threading.Lock = threading.Lock()

    def __init__(self, ttl_seconds: float = TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[UUID, tuple[SubscriptionStatus, float]] = {}
        self._lock = threading.Lock()
        self._pending: set[asyncio.Task] = set()

    @classmethod
    def get_instance(cls) -> "SubscriptionStatusCache":
        """Get the singleton instance (thread-safe)."""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls(ttl_seconds=settings.subscription_cache_ttl_seconds)
        return cls._instance

    def get(self, user_id: UUID) -> SubscriptionStatus | None:
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            status, stored_at = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[user_id]
                return None
            return status

    def put(self, user_id: UUID, status: SubscriptionStatus) -> None:
        with self._lock:
            self._entries[user_id] = (status, self._clock())

    def invalidate(self, user_id: UUID) -> None:
        """Drop a user's entry, e.g. after their subscription changed."""
        with self._lock:
            self._entries.pop(user_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep_expired(self) -> int:
        """Remove expired entries. Returns count removed."""
        now = self._clock()
        with self._lock:
            expired = [
                user_id
                for user_id, (_, stored_at) in self._entries.items()
                if now - stored_at >= self.ttl_seconds
            ]
            for user_id in expired:
                del self._entries[user_id]
        return len(expired)

    async def lookup(
        self,
        user_id: UUID,
        loader: Callable[[], Awaitable[SubscriptionStatus]],
        timeout: float = 5.0,
    ) -> SubscriptionStatus:
        """Return the cached status or load it, waiting at most `timeout` seconds.

        Raises SubscriptionLookupTimeout if the loader is still running; the
        loader is not cancelled.
        """
        cached = self.get(user_id)
        if cached is not None:
            return cached

        task = asyncio.create_task(self._load(user_id, loader))
        self._pending.add(task)
        task.add_done_callback(self._on_load_done)

        done, _ = await asyncio.wait({task}, timeout=timeout)
        if task not in done:
            logger.warning(f"Subscription status lookup for user {user_id} timed out")
            raise SubscriptionLookupTimeout("Request timeout")
        return task.result()

    def _on_load_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Subscription status load failed: {task.exception()}")

    async def _load(
        self,
        user_id: UUID,
        loader: Callable[[], Awaitable[SubscriptionStatus]],
    ) -> SubscriptionStatus:
        status = await loader()
        self.put(user_id, status)
        return status


async def load_subscription_status(
    session_factory: async_sessionmaker[AsyncSession],
    user_id: UUID,
) -> SubscriptionStatus:
    """Read the subscription snapshot columns of a user.

    Opens its own session since it may outlive the request that started it.
    """
    async with session_factory() as session:
        result = await session.execute(
            select(User.latest_status, User.latest_product_id, User.latest_variant_id).where(
                User.id == user_id
            )
        )
        row = result.one_or_none()
    if row is None:
        return SubscriptionStatus(status=None, product_id=None, variant_id=None)
    return SubscriptionStatus(status=row[0], product_id=row[1], variant_id=row[2])


def get_subscription_cache() -> SubscriptionStatusCache:
    return SubscriptionStatusCache.get_instance()
