"""Pytest configuration and fixtures for backend tests.

Database Handling:
- Uses TEST_DATABASE_URL when set (any async SQLAlchemy URL)
- Otherwise uses an in-memory SQLite database via aiosqlite, fresh per test
"""

import os
from collections.abc import AsyncGenerator
from datetime import timedelta
from typing import Any
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

# Set test environment variables before importing app modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-access-secret-0123456789abcdefghijklmnop"
os.environ["JWT_REFRESH_SECRET_KEY"] = ""
os.environ["COOKIE_SECURE"] = "false"
os.environ["EMAIL_API_KEY"] = "test-email-key"

TEST_PASSWORD = "Str0ng!Passw0rd"


def _get_database_url() -> str:
    return os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


class FakeClock:
    """Controllable time source (seconds since the epoch)."""

    def __init__(self, start: float | None = None):
        import time

        self.now = time.time() if start is None else start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingEmailSender:
    """Stands in for EmailSender; records instead of calling the email API."""

    def __init__(self):
        self.sent: list[dict[str, str]] = []
        self.fail = False

    async def send(self, to: str, subject: str, html_body: str) -> None:
        from saas_server.services.email import EmailDeliveryError

        if self.fail:
            raise EmailDeliveryError("Email API returned HTTP 500")
        self.sent.append({"to": to, "subject": subject, "body": html_body})

    async def send_password_reset(self, to: str, reset_url: str) -> None:
        await self.send(to, "Password Reset Request", reset_url)

    async def send_email_verification(self, to: str, verification_url: str) -> None:
        await self.send(to, "Verify Your Email Address", verification_url)


# --- Singleton Reset Fixture ---


def _reset_singletons() -> None:
    """Clear rate limiter windows and the subscription status cache.

    Routes hold references to the limiter instances, so the instances are
    cleared rather than replaced.
    """
    from saas_server.middleware.rate_limit import get_rate_limiters
    from saas_server.services.subscription_cache import SubscriptionStatusCache

    get_rate_limiters().reset()
    SubscriptionStatusCache.get_instance().clear()


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset process-wide state before and after each test."""
    _reset_singletons()
    yield
    _reset_singletons()


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a database engine with all tables for one test."""
    from saas_server.core.database import Base
    from saas_server import models  # noqa: F401

    url = _get_database_url()
    if url.startswith("sqlite"):
        engine = create_async_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_async_engine(url, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token_codec(clock):
    from saas_server.services.token_codec import TokenCodec

    return TokenCodec(
        access_secret=os.environ["JWT_SECRET_KEY"],
        refresh_secret=os.environ["JWT_SECRET_KEY"],
        access_ttl=timedelta(minutes=5),
        refresh_ttl=timedelta(days=7),
        clock=clock,
    )


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest_asyncio.fixture(scope="function")
async def async_client(
    db_session: AsyncSession,
    session_factory,
    token_codec,
    email_sender,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database, codec and email overrides."""
    from saas_server.api.deps import get_email_sender, get_session_factory
    from saas_server.core.database import get_db
    from saas_server.main import app
    from saas_server.middleware.auth import get_token_codec

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_codec] = lambda: token_codec
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# --- Test Factories ---


@pytest.fixture
def user_factory(db_session):
    """Factory for creating test User rows."""
    from saas_server.models.user import User
    from saas_server.services.auth import hash_password

    async def _create_user(
        email: str | None = None,
        password: str | None = TEST_PASSWORD,
        name: str = "Test User",
        **kwargs: Any,
    ) -> User:
        user = User(
            email=email or f"user-{uuid4().hex[:8]}@example.com",
            password_hash=hash_password(password) if password else None,
            name=name,
            **kwargs,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create_user


@pytest_asyncio.fixture
async def test_user(user_factory):
    return await user_factory(email="alice@example.com", name="Alice")


@pytest_asyncio.fixture
async def logged_in_client(async_client, test_user) -> AsyncClient:
    """Client holding the access, refresh and CSRF cookies of test_user."""
    response = await async_client.post(
        "/auth/login",
        json={"email": test_user.email, "password": TEST_PASSWORD},
    )
    assert response.status_code == 200
    return async_client
