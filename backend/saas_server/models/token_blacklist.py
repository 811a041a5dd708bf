"""Blacklisted JWT identifiers - survives process restarts."""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from saas_server.core.database import Base


class TokenBlacklist(Base):
    """A revoked token identified by its JTI claim.

    expires_at mirrors the revoked token's own expiry, so a row is inert once
    that passes and the cleanup task may delete it.
    """

    __tablename__ = "token_blacklist"

    jti: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
