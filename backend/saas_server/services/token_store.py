"""Durable storage for refresh tokens and the access-token blacklist."""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saas_server.models.base import utcnow
from saas_server.models.password_reset_token import PasswordResetToken
from saas_server.models.refresh_token import RefreshToken
from saas_server.models.token_blacklist import TokenBlacklist
from saas_server.services.errors import StoreError

logger = logging.getLogger(__name__)

UNKNOWN_DEVICE = "Unknown Device"
UNKNOWN_ADDRESS = "0.0.0.0"


class TokenStore(Protocol):
    """Persistence operations the session manager depends on.

    Every method may raise StoreError.
    """

    async def create_refresh_token(
        self,
        user_id: UUID,
        token_id: str,
        device_info: str,
        origin_address: str,
        expires_at: datetime,
    ) -> RefreshToken: ...

    async def get_refresh_token(self, token_id: str) -> RefreshToken | None: ...

    async def touch_refresh_token(self, token_id: str) -> None: ...

    async def block_all_refresh_tokens(self, user_id: UUID) -> int: ...

    async def add_to_blacklist(self, token_id: str, user_id: str, expires_at: datetime) -> None: ...

    async def is_blacklisted(self, token_id: str) -> bool: ...

    async def delete_expired_blacklist_entries(self) -> int: ...


class SqlAlchemyTokenStore:
    """TokenStore backed by an AsyncSession. Each write commits."""

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self._clock = clock

    async def _commit(self, action: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreError(f"Failed to {action}") from e

    async def _execute(self, statement: Any, action: str) -> Any:
        try:
            return await self.session.execute(statement)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreError(f"Failed to {action}") from e

    async def create_refresh_token(
        self,
        user_id: UUID,
        token_id: str,
        device_info: str,
        origin_address: str,
        expires_at: datetime,
    ) -> RefreshToken:
        """Persist a refresh token record, filling in unknown device metadata."""
        record = RefreshToken(
            user_id=user_id,
            token_hash=token_id,
            device_info=device_info or UNKNOWN_DEVICE,
            ip_address=origin_address or UNKNOWN_ADDRESS,
            expires_at=expires_at,
            last_used_at=self._clock(),
        )
        self.session.add(record)
        await self._commit("create refresh token")
        return record

    async def get_refresh_token(self, token_id: str) -> RefreshToken | None:
        """Return the record for `token_id` whatever its blocked/expiry state."""
        result = await self._execute(
            select(RefreshToken).where(RefreshToken.token_hash == token_id),
            "load refresh token",
        )
        return result.scalar_one_or_none()

    async def touch_refresh_token(self, token_id: str) -> None:
        await self._execute(
            update(RefreshToken)
            .where(RefreshToken.token_hash == token_id)
            .values(last_used_at=self._clock()),
            "update refresh token",
        )
        await self._commit("update refresh token")

    async def block_all_refresh_tokens(self, user_id: UUID) -> int:
        """Block every refresh token of a user. Returns the number of rows touched."""
        result: CursorResult[Any] = await self._execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.is_blocked.is_(False))
            .values(is_blocked=True),
            "block refresh tokens",
        )
        await self._commit("block refresh tokens")
        return result.rowcount

    async def add_to_blacklist(self, token_id: str, user_id: str, expires_at: datetime) -> None:
        """Blacklist a JTI until `expires_at`. Re-adding an existing JTI is a no-op."""
        existing = await self._execute(
            select(TokenBlacklist.jti).where(TokenBlacklist.jti == token_id),
            "check token blacklist",
        )
        if existing.scalar_one_or_none() is not None:
            return
        self.session.add(TokenBlacklist(jti=token_id, user_id=user_id, expires_at=expires_at))
        await self._commit("blacklist token")

    async def is_blacklisted(self, token_id: str) -> bool:
        result = await self._execute(
            select(TokenBlacklist.jti).where(
                TokenBlacklist.jti == token_id,
                TokenBlacklist.expires_at > self._clock(),
            ),
            "check token blacklist",
        )
        return result.scalar_one_or_none() is not None

    async def delete_expired_blacklist_entries(self) -> int:
        """Remove expired entries from the token blacklist. Returns count removed."""
        return await self._delete_expired(TokenBlacklist, "blacklist entries")

    async def delete_expired_refresh_tokens(self) -> int:
        return await self._delete_expired(RefreshToken, "refresh tokens")

    async def delete_expired_password_reset_tokens(self) -> int:
        return await self._delete_expired(PasswordResetToken, "password reset tokens")

    async def _delete_expired(self, model: Any, label: str) -> int:
        result: CursorResult[Any] = await self._execute(
            delete(model).where(model.expires_at < self._clock()),
            f"delete expired {label}",
        )
        await self._commit(f"delete expired {label}")
        if result.rowcount:
            logger.info(f"Deleted {result.rowcount} expired {label}")
        return result.rowcount
