"""Shared route dependencies."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from saas_server.core.database import async_session_maker, get_db
from saas_server.middleware.auth import get_session_manager
from saas_server.services.auth import AuthService
from saas_server.services.email import EmailSender
from saas_server.services.session import SessionManager

_email_sender: EmailSender | None = None


def get_email_sender() -> EmailSender:
    global _email_sender
    if _email_sender is None:
        _email_sender = EmailSender.from_settings()
    return _email_sender


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that outlives the request (background lookups)."""
    return async_session_maker


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    sessions: SessionManager = Depends(get_session_manager),
    email_sender: EmailSender = Depends(get_email_sender),
) -> AuthService:
    """Dependency to get auth service."""
    return AuthService(db, sessions=sessions, email_sender=email_sender)
