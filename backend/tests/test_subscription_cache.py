"""Tests for the subscription status cache."""

import asyncio
from uuid import uuid4

import pytest

from saas_server.services.subscription_cache import (
    SubscriptionLookupTimeout,
    SubscriptionStatus,
    SubscriptionStatusCache,
    load_subscription_status,
)

ACTIVE = SubscriptionStatus(status="active", product_id=1, variant_id=2)


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def cache_clock():
    return Clock()


@pytest.fixture
def cache(cache_clock):
    return SubscriptionStatusCache(ttl_seconds=300, clock=cache_clock)


class TestCacheEntries:
    def test_put_then_get(self, cache):
        user_id = uuid4()
        cache.put(user_id, ACTIVE)

        assert cache.get(user_id) == ACTIVE

    def test_entry_expires_after_ttl(self, cache, cache_clock):
        user_id = uuid4()
        cache.put(user_id, ACTIVE)

        cache_clock.now += 300

        assert cache.get(user_id) is None

    def test_invalidate(self, cache):
        user_id = uuid4()
        cache.put(user_id, ACTIVE)

        cache.invalidate(user_id)

        assert cache.get(user_id) is None

    def test_sweep_expired(self, cache, cache_clock):
        stale, fresh = uuid4(), uuid4()
        cache.put(stale, ACTIVE)
        cache_clock.now += 200
        cache.put(fresh, ACTIVE)
        cache_clock.now += 150

        assert cache.sweep_expired() == 1
        assert cache.get(fresh) == ACTIVE


class TestLookup:
    @pytest.mark.asyncio
    async def test_miss_runs_loader_and_caches(self, cache):
        user_id = uuid4()
        calls = 0

        async def loader():
            nonlocal calls
            calls += 1
            return ACTIVE

        assert await cache.lookup(user_id, loader) == ACTIVE
        assert await cache.lookup(user_id, loader) == ACTIVE
        assert calls == 1

    @pytest.mark.asyncio
    async def test_timeout_leaves_loader_running(self, cache):
        user_id = uuid4()
        release = asyncio.Event()

        async def slow_loader():
            await release.wait()
            return ACTIVE

        with pytest.raises(SubscriptionLookupTimeout):
            await cache.lookup(user_id, slow_loader, timeout=0.01)

        release.set()
        for _ in range(100):
            if cache.get(user_id) is not None:
                break
            await asyncio.sleep(0.01)

        assert cache.get(user_id) == ACTIVE

    @pytest.mark.asyncio
    async def test_loader_error_propagates(self, cache):
        async def failing_loader():
            raise RuntimeError("database down")

        with pytest.raises(RuntimeError):
            await cache.lookup(uuid4(), failing_loader)


@pytest.mark.asyncio
async def test_load_subscription_status_reads_user_snapshot(session_factory, user_factory):
    user = await user_factory(latest_status="active", latest_product_id=7, latest_variant_id=9)

    status = await load_subscription_status(session_factory, user.id)

    assert status == SubscriptionStatus(status="active", product_id=7, variant_id=9)


@pytest.mark.asyncio
async def test_load_subscription_status_unknown_user(session_factory):
    status = await load_subscription_status(session_factory, uuid4())

    assert status == SubscriptionStatus(status=None, product_id=None, variant_id=None)


@pytest.mark.asyncio
async def test_verify_user_endpoint(logged_in_client, test_user, db_session):
    test_user.latest_status = "on_trial"
    test_user.latest_product_id = 3
    await db_session.commit()

    response = await logged_in_client.get("/user/verify-user")

    assert response.status_code == 200
    assert response.json() == {"status": "on_trial", "product_id": 3, "variant_id": None}


@pytest.mark.asyncio
async def test_verify_user_requires_auth(async_client):
    response = await async_client.get("/user/verify-user")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_verify_user_timeout_returns_504(logged_in_client):
    from saas_server.main import app
    from saas_server.services.subscription_cache import get_subscription_cache

    class StalledCache:
        async def lookup(self, user_id, loader, timeout=5.0):
            raise SubscriptionLookupTimeout("Request timeout")

    app.dependency_overrides[get_subscription_cache] = lambda: StalledCache()

    response = await logged_in_client.get("/user/verify-user")

    assert response.status_code == 504
    assert response.json()["detail"] == "Request timeout"
