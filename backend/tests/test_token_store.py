"""Tests for the SQLAlchemy token store and the expired-token cleanup."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from saas_server.models.base import as_utc, utcnow
from saas_server.models.password_reset_token import PasswordResetToken
from saas_server.models.refresh_token import RefreshToken
from saas_server.models.token_blacklist import TokenBlacklist
from saas_server.services.errors import StoreError
from saas_server.services.token_cleanup import cleanup_expired_tokens, token_cleanup_loop
from saas_server.services.token_store import (
    UNKNOWN_ADDRESS,
    UNKNOWN_DEVICE,
    SqlAlchemyTokenStore,
)


@pytest.fixture
def store(db_session):
    return SqlAlchemyTokenStore(db_session)


async def _refresh_token(store, user_id, expires_in=timedelta(days=7)):
    return await store.create_refresh_token(
        user_id=user_id,
        token_id=str(uuid4()),
        device_info="",
        origin_address="",
        expires_at=utcnow() + expires_in,
    )


class TestRefreshTokens:
    @pytest.mark.asyncio
    async def test_create_fills_unknown_device_metadata(self, store, test_user):
        record = await _refresh_token(store, test_user.id)

        assert record.device_info == UNKNOWN_DEVICE
        assert record.ip_address == UNKNOWN_ADDRESS
        assert record.is_blocked is False

    @pytest.mark.asyncio
    async def test_get_by_token_id(self, store, test_user):
        record = await _refresh_token(store, test_user.id)

        found = await store.get_refresh_token(record.token_hash)

        assert found is not None
        assert found.id == record.id
        assert await store.get_refresh_token("missing") is None

    @pytest.mark.asyncio
    async def test_touch_updates_last_used(self, db_session, test_user):
        now = utcnow()
        store = SqlAlchemyTokenStore(db_session, clock=lambda: now)
        record = await _refresh_token(store, test_user.id)

        later = SqlAlchemyTokenStore(db_session, clock=lambda: now + timedelta(minutes=10))
        await later.touch_refresh_token(record.token_hash)

        found = await store.get_refresh_token(record.token_hash)
        assert as_utc(found.last_used_at) == now + timedelta(minutes=10)

    @pytest.mark.asyncio
    async def test_block_all_only_touches_the_user(self, store, test_user, user_factory):
        other = await user_factory()
        mine = [await _refresh_token(store, test_user.id) for _ in range(2)]
        theirs = await _refresh_token(store, other.id)

        assert await store.block_all_refresh_tokens(test_user.id) == 2
        assert await store.block_all_refresh_tokens(test_user.id) == 0

        for record in mine:
            assert (await store.get_refresh_token(record.token_hash)).is_blocked is True
        assert (await store.get_refresh_token(theirs.token_hash)).is_blocked is False


class TestBlacklist:
    @pytest.mark.asyncio
    async def test_blacklisted_until_expiry(self, db_session):
        now = utcnow()
        store = SqlAlchemyTokenStore(db_session, clock=lambda: now)
        await store.add_to_blacklist("jti-1", str(uuid4()), now + timedelta(minutes=5))

        assert await store.is_blacklisted("jti-1") is True
        assert await store.is_blacklisted("jti-2") is False

        after_expiry = SqlAlchemyTokenStore(db_session, clock=lambda: now + timedelta(minutes=5))
        assert await after_expiry.is_blacklisted("jti-1") is False

    @pytest.mark.asyncio
    async def test_add_is_idempotent(self, store, db_session):
        expires_at = utcnow() + timedelta(minutes=5)

        await store.add_to_blacklist("jti-1", "user", expires_at)
        await store.add_to_blacklist("jti-1", "user", expires_at)

        result = await db_session.execute(select(TokenBlacklist))
        assert len(result.scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_database_failure_raises_store_error(self, store):
        failure = OperationalError("SELECT", {}, Exception("connection lost"))
        with patch.object(store.session, "execute", AsyncMock(side_effect=failure)):
            with pytest.raises(StoreError):
                await store.is_blacklisted("jti-1")


class TestCleanup:
    @pytest.mark.asyncio
    async def test_deletes_only_expired_rows(self, db_session, store, test_user):
        now = utcnow()
        await _refresh_token(store, test_user.id, expires_in=timedelta(seconds=-1))
        live = await _refresh_token(store, test_user.id)
        await store.add_to_blacklist("old", "user", now - timedelta(seconds=1))
        await store.add_to_blacklist("new", "user", now + timedelta(minutes=5))
        db_session.add_all(
            [
                PasswordResetToken(
                    user_id=test_user.id, token="old", expires_at=now - timedelta(seconds=1)
                ),
                PasswordResetToken(
                    user_id=test_user.id, token="new", expires_at=now + timedelta(hours=1)
                ),
            ]
        )
        await db_session.commit()

        removed = await cleanup_expired_tokens(db_session)

        assert removed == {
            "refresh_tokens": 1,
            "blacklist_entries": 1,
            "password_reset_tokens": 1,
        }
        remaining = (await db_session.execute(select(RefreshToken.id))).scalars().all()
        assert remaining == [live.id]
        assert await store.is_blacklisted("new") is True

    @pytest.mark.asyncio
    async def test_loop_survives_errors_and_stops_on_cancel(self, session_factory):
        calls = 0

        async def flaky_cleanup(session):
            nonlocal calls
            calls += 1
            raise RuntimeError("database unavailable")

        with patch("saas_server.services.token_cleanup.cleanup_expired_tokens", flaky_cleanup):
            task = asyncio.create_task(token_cleanup_loop(session_factory, interval=0.01))
            await asyncio.sleep(0.05)
            task.cancel()
            await task

        assert calls >= 2
        assert task.done()
