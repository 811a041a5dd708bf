"""User directory, password handling and single-use token flows."""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError
from sqlalchemy import select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saas_server.core.config import Settings, settings
from saas_server.models.base import as_utc, utcnow
from saas_server.models.email_verification_token import EmailVerificationToken
from saas_server.models.password_reset_token import PasswordResetToken
from saas_server.models.user import User
from saas_server.services.email import EmailSender
from saas_server.services.errors import (
    AuthError,
    EmailAlreadyRegisteredError,
    EmailAlreadyVerifiedError,
    InvalidCredentialsError,
    OneTimeTokenInvalidError,
    OneTimeTokenUsedError,
    StoreError,
)
from saas_server.services.session import SessionManager

logger = logging.getLogger(__name__)

# Argon2 password hasher with recommended parameters
# Memory: 64 MiB, Time: 3 iterations, Parallelism: 4
ph = PasswordHasher(
    time_cost=3,
    memory_cost=65536,
    parallelism=4,
    hash_len=32,
    salt_len=16,
)


def hash_password(password: str) -> str:
    """Hash a password using Argon2id."""
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash using constant-time comparison."""
    try:
        ph.verify(password_hash, password)
        return True
    except (VerifyMismatchError, InvalidHashError):
        return False


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    """Service for account operations.

    Session revocation after a credential change is best-effort: the
    password update has already been committed when it runs.
    """

    def __init__(
        self,
        session: AsyncSession,
        sessions: SessionManager | None = None,
        email_sender: EmailSender | None = None,
        config: Settings = settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.sessions = sessions
        self.email_sender = email_sender
        self.config = config
        self._clock = clock

    async def _commit(self, action: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreError(f"Failed to {action}") from e

    # ------------------------------------------------------------------
    # User lookups
    # ------------------------------------------------------------------

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> User | None:
        result = await self.session.execute(
            select(User).where(User.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    async def register(self, email: str, password: str, name: str) -> User:
        """Create an unverified user. Raises EmailAlreadyRegisteredError."""
        email = normalize_email(email)
        if await self.get_user_by_email(email) is not None:
            raise EmailAlreadyRegisteredError("Email already registered")

        user = User(
            email=email,
            password_hash=hash_password(password),
            name=name.strip(),
            email_verified=False,
        )
        self.session.add(user)
        try:
            await self.session.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent registration for the same email
            await self.session.rollback()
            raise EmailAlreadyRegisteredError("Email already registered") from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreError("Failed to create user") from e

        logger.info(f"Registered user {user.id}")
        return user

    async def authenticate(self, email: str, password: str) -> User:
        """Return the user for valid credentials.

        Raises InvalidCredentialsError for unknown email, password-less
        (OAuth) accounts, deactivated accounts and wrong passwords alike.
        """
        user = await self.get_user_by_email(email)

        if user is None or not user.password_hash:
            # Perform a dummy hash to prevent timing attacks
            verify_password(password, hash_password("dummy"))
            raise InvalidCredentialsError("Invalid credentials")

        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError("Invalid credentials")

        if not user.is_active:
            logger.warning(f"Login attempt for deactivated user {user.id}")
            raise InvalidCredentialsError("Invalid credentials")

        return user

    async def change_password(self, user: User, current_password: str, new_password: str) -> None:
        """Change a user's password and sign out every device."""
        if not user.password_hash or not verify_password(current_password, user.password_hash):
            raise InvalidCredentialsError("Current password is incorrect")

        user.password_hash = hash_password(new_password)
        await self._commit("update password")
        logger.info(f"Password changed for user {user.id}")

        await self._revoke_sessions_best_effort(user.id)

    async def _revoke_sessions_best_effort(self, user_id: UUID) -> None:
        if self.sessions is None:
            return
        try:
            await self.sessions.revoke_all_sessions(user_id)
        except StoreError:
            logger.exception(f"Error invalidating refresh tokens for user {user_id}")

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    async def request_password_reset(self, email: str) -> str | None:
        """Create and mail a reset token when `email` belongs to a user.

        Returns the token, or None for an unknown email. Callers must answer
        identically in both cases.
        """
        user = await self.get_user_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return None

        token = str(uuid.uuid4())
        expires_at = self._clock() + timedelta(
            minutes=self.config.password_reset_token_expire_minutes
        )
        self.session.add(PasswordResetToken(user_id=user.id, token=token, expires_at=expires_at))
        await self._commit("create password reset token")

        if self.email_sender is not None:
            reset_url = f"{self.config.frontend_url}/auth/reset-password?token={token}"
            await self.email_sender.send_password_reset(user.email, reset_url)
        return token

    async def reset_password(self, token: str, new_password: str) -> User:
        """Consume a reset token and set a new password.

        Marking the token used and storing the new hash commit together; if
        either fails, neither applies and the token stays usable.

        Raises:
            OneTimeTokenInvalidError: token unknown, or expired
            OneTimeTokenUsedError: token already consumed
        """
        now = self._clock()
        result = await self.session.execute(
            select(PasswordResetToken).where(PasswordResetToken.token == token)
        )
        record = result.scalar_one_or_none()
        if record is None or as_utc(record.expires_at) <= now:
            raise OneTimeTokenInvalidError("Invalid or expired reset token")
        if record.used_at is not None:
            raise OneTimeTokenUsedError("Token has already been used")

        user = await self.get_user_by_id(record.user_id)
        if user is None:
            raise OneTimeTokenInvalidError("Invalid or expired reset token")
        password_hash = hash_password(new_password)

        # Conditional update: a concurrent reset with the same token matches zero rows
        try:
            consumed: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
                update(PasswordResetToken)
                .where(
                    PasswordResetToken.token == token,
                    PasswordResetToken.used_at.is_(None),
                    PasswordResetToken.expires_at > now,
                )
                .values(used_at=now)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreError("Failed to consume password reset token") from e
        if consumed.rowcount == 0:
            await self.session.rollback()
            raise OneTimeTokenUsedError("Token has already been used")

        user.password_hash = password_hash
        await self._commit("reset password")
        await self.session.refresh(record)
        logger.info(f"Password reset for user {user.id}")

        await self._revoke_sessions_best_effort(user.id)
        return user

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    async def create_email_verification(self, user: User) -> str:
        """Create and mail a 24h verification token for the user's current email."""
        if user.email_verified:
            raise EmailAlreadyVerifiedError("Email already verified")

        token = str(uuid.uuid4())
        expires_at = self._clock() + timedelta(
            hours=self.config.email_verification_token_expire_hours
        )
        self.session.add(
            EmailVerificationToken(
                user_id=user.id,
                token=token,
                email=user.email,
                expires_at=expires_at,
            )
        )
        await self._commit("create email verification token")

        if self.email_sender is not None:
            verification_url = f"{self.config.frontend_url}/auth/verify-email?token={token}"
            await self.email_sender.send_email_verification(user.email, verification_url)
        return token

    async def verify_email(self, token: str) -> User:
        """Consume a verification token and mark the user's email verified.

        Both updates commit together or not at all. Verifying an already
        verified user succeeds without consuming anything.
        """
        result = await self.session.execute(
            select(EmailVerificationToken, User)
            .join(User, User.id == EmailVerificationToken.user_id)
            .where(EmailVerificationToken.token == token)
        )
        row = result.one_or_none()
        if row is None:
            raise OneTimeTokenInvalidError("Invalid or expired verification token")
        record, user = row

        if user.email_verified:
            return user
        if record.used_at is not None:
            raise OneTimeTokenUsedError("Token has already been used")
        now = self._clock()
        if as_utc(record.expires_at) <= now:
            raise OneTimeTokenInvalidError("Invalid or expired verification token")

        record.used_at = now
        user.email_verified = True
        await self._commit("verify email")
        logger.info(f"Email verified for user {user.id}")
        return user


__all__ = [
    "AuthError",
    "AuthService",
    "hash_password",
    "normalize_email",
    "verify_password",
]
