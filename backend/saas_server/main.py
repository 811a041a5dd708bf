"""SaaS Server Backend - FastAPI Application Factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from saas_server.api.router import api_router
from saas_server.core import settings
from saas_server.core.lifespan import shutdown, startup

# Import all models to ensure they're registered with Base
from saas_server.models import (  # noqa: F401
    EmailVerificationToken,
    PasswordResetToken,
    RefreshToken,
    TokenBlacklist,
    User,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    tasks = await startup(logger)

    yield

    logger.info("Shutting down...")
    await shutdown(tasks)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="SaaS backend: accounts, sessions and subscription status",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    # Credentials are required for the cookie-based session transport
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "Accept",
            "X-CSRF-Token",
            "X-Request-ID",
        ],
    )

    app.include_router(api_router)

    return app


app = create_app()
