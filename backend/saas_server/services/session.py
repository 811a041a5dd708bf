"""Session lifecycle: issuing, authenticating, refreshing and revoking tokens.

A device session moves through

    Unauthenticated -> Authenticated -> AccessExpired -> Revoked/Expired

Access tokens are stateless apart from the blacklist. Refresh tokens are
backed by a RefreshToken row which must exist, be unblocked and unexpired.
Rotation issues a fresh pair and leaves the presented refresh token usable
until it expires or all of the user's sessions are revoked.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from saas_server.core.logging import log_security_event
from saas_server.models.base import as_utc
from saas_server.services.csrf import CSRFGuard
from saas_server.services.errors import (
    RefreshTokenBlockedError,
    RefreshTokenExpiredError,
    RefreshTokenNotFoundError,
    TokenBlacklistedError,
)
from saas_server.services.token_codec import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    TokenClaims,
    TokenCodec,
)
from saas_server.services.token_store import TokenStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthContext:
    """Identity of the caller, attached to a single request."""

    user_id: UUID
    token_id: str
    expires_at: datetime


@dataclass(frozen=True)
class IssuedSession:
    """Artifacts handed to the client as cookies.

    expires_at is the refresh token's expiry, shared by all three cookies.
    """

    user_id: UUID
    access_token: str
    refresh_token: str
    csrf_token: str
    expires_at: datetime


class SessionManager:
    """Owns token issuance, validation and revocation.

    Holds no locks; every store call may suspend.
    """

    def __init__(self, codec: TokenCodec, store: TokenStore, csrf_guard: CSRFGuard | None = None):
        self.codec = codec
        self.store = store
        self.csrf_guard = csrf_guard or CSRFGuard()

    async def issue_session(
        self,
        user_id: UUID,
        device_info: str = "",
        origin_address: str = "",
    ) -> IssuedSession:
        """Mint an access/refresh/CSRF triple and persist the refresh token."""
        subject = str(user_id)
        access_claims = self.codec.new_claims(subject, ACCESS_TOKEN_TYPE)
        refresh_claims = self.codec.new_claims(subject, REFRESH_TOKEN_TYPE)

        access_token = self.codec.issue(access_claims)
        refresh_token = self.codec.issue(refresh_claims)

        await self.store.create_refresh_token(
            user_id=user_id,
            token_id=refresh_claims.token_id,
            device_info=device_info,
            origin_address=origin_address,
            expires_at=refresh_claims.expires_at,
        )

        return IssuedSession(
            user_id=user_id,
            access_token=access_token,
            refresh_token=refresh_token,
            csrf_token=self.csrf_guard.generate(),
            expires_at=refresh_claims.expires_at,
        )

    async def authenticate(self, access_token: str) -> AuthContext:
        """Validate an access token and return the caller's identity.

        Raises a TokenError subclass on any failure. Read-only.
        """
        claims = self.codec.parse(access_token, ACCESS_TOKEN_TYPE)
        if await self.store.is_blacklisted(claims.token_id):
            log_security_event(
                "blacklisted_token", "revoked access token presented", user_id=claims.subject
            )
            raise TokenBlacklistedError("Token has been revoked")
        return self._context(claims)

    async def validate_refresh_token(self, refresh_token: str) -> TokenClaims:
        """Check a refresh token against its stored record.

        Raises a TokenError subclass if the token itself does not verify, or
        RefreshTokenNotFoundError / RefreshTokenBlockedError /
        RefreshTokenExpiredError for the stored record.
        """
        claims = self.codec.parse(refresh_token, REFRESH_TOKEN_TYPE)
        record = await self.store.get_refresh_token(claims.token_id)
        if record is None or str(record.user_id) != claims.subject:
            raise RefreshTokenNotFoundError("Refresh token not found")
        if record.is_blocked:
            raise RefreshTokenBlockedError("Refresh token has been blocked")
        if as_utc(record.expires_at) <= self.codec.now():
            raise RefreshTokenExpiredError("Refresh token has expired")
        return claims

    async def refresh(
        self,
        refresh_token: str,
        device_info: str = "",
        origin_address: str = "",
    ) -> IssuedSession:
        """Rotate: validate the refresh token and issue a brand-new session."""
        claims = await self.validate_refresh_token(refresh_token)
        await self.store.touch_refresh_token(claims.token_id)
        return await self.issue_session(UUID(claims.subject), device_info, origin_address)

    async def revoke_access_token(self, access_token: str) -> AuthContext:
        """Blacklist an access token until its natural expiry.

        Raises TokenError if the token does not verify, since there is no
        trustworthy JTI to revoke.
        """
        claims = self.codec.parse(access_token, ACCESS_TOKEN_TYPE)
        await self.store.add_to_blacklist(claims.token_id, claims.subject, claims.expires_at)
        return self._context(claims)

    async def revoke_context(self, context: AuthContext) -> None:
        """Blacklist an already-authenticated access token."""
        await self.store.add_to_blacklist(
            context.token_id, str(context.user_id), context.expires_at
        )

    async def revoke_all_sessions(self, user_id: UUID) -> int:
        """Block every refresh token of the user (logout, password change)."""
        blocked = await self.store.block_all_refresh_tokens(user_id)
        logger.info(f"Blocked {blocked} refresh tokens for user {user_id}")
        return blocked

    @staticmethod
    def _context(claims: TokenClaims) -> AuthContext:
        return AuthContext(
            user_id=UUID(claims.subject),
            token_id=claims.token_id,
            expires_at=claims.expires_at,
        )
