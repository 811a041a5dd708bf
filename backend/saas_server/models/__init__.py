"""Database models."""

from saas_server.models.base import BaseModel
from saas_server.models.email_verification_token import EmailVerificationToken
from saas_server.models.password_reset_token import PasswordResetToken
from saas_server.models.refresh_token import RefreshToken
from saas_server.models.token_blacklist import TokenBlacklist
from saas_server.models.user import User

__all__ = [
    "BaseModel",
    "EmailVerificationToken",
    "PasswordResetToken",
    "RefreshToken",
    "TokenBlacklist",
    "User",
]
