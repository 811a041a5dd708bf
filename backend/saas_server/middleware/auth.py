"""Cookie-based session transport and the authentication dependency.

Access and refresh tokens travel in HttpOnly cookies; the refresh cookie is
only sent to the refresh endpoint. The CSRF cookie is readable by scripts so
the client can echo it in the X-CSRF-Token header.
"""

import logging
from datetime import datetime

from fastapi import Depends, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from saas_server.core.config import settings
from saas_server.core.database import get_db
from saas_server.core.logging import log_security_event
from saas_server.core.request_utils import get_client_ip
from saas_server.services.csrf import CSRF_COOKIE_NAME, CSRFGuard
from saas_server.services.errors import StoreError, TokenError
from saas_server.services.session import AuthContext, IssuedSession, SessionManager
from saas_server.services.token_codec import TokenCodec
from saas_server.services.token_store import SqlAlchemyTokenStore

logger = logging.getLogger(__name__)

ACCESS_COOKIE_NAME = "access_token"
REFRESH_COOKIE_NAME = "refresh_token"

_codec: TokenCodec | None = None


def get_token_codec() -> TokenCodec:
    global _codec
    if _codec is None:
        _codec = TokenCodec.from_settings(settings)
    return _codec


def get_session_manager(
    db: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
) -> SessionManager:
    """Dependency to get a session manager bound to the request's DB session."""
    return SessionManager(codec, SqlAlchemyTokenStore(db), CSRFGuard())


def set_session_cookies(response: Response, session: IssuedSession) -> None:
    """Attach the access, refresh and CSRF cookies, all expiring with the refresh token."""
    expires = session.expires_at
    common = {
        "expires": expires,
        "secure": settings.cookie_secure,
        "samesite": settings.cookie_samesite,
    }
    response.set_cookie(ACCESS_COOKIE_NAME, session.access_token, path="/", httponly=True, **common)
    response.set_cookie(
        REFRESH_COOKIE_NAME,
        session.refresh_token,
        path=settings.refresh_cookie_path,
        httponly=True,
        **common,
    )
    response.set_cookie(CSRF_COOKIE_NAME, session.csrf_token, path="/", httponly=False, **common)


def clear_session_cookies(response: Response) -> None:
    common = {
        "secure": settings.cookie_secure,
        "samesite": settings.cookie_samesite,
    }
    response.delete_cookie(ACCESS_COOKIE_NAME, path="/", httponly=True, **common)
    response.delete_cookie(
        REFRESH_COOKIE_NAME, path=settings.refresh_cookie_path, httponly=True, **common
    )
    response.delete_cookie(CSRF_COOKIE_NAME, path="/", httponly=False, **common)


def unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_auth(
    request: Request,
    sessions: SessionManager = Depends(get_session_manager),
) -> AuthContext:
    """Authenticate the access token cookie.

    The resulting AuthContext is stored on request.state.auth and lives
    only as long as the request.
    """
    token = request.cookies.get(ACCESS_COOKIE_NAME)
    if not token:
        raise unauthorized()

    try:
        context = await sessions.authenticate(token)
    except TokenError as e:
        log_security_event(
            "access_token_rejected",
            f"{type(e).__name__}: {e}",
            client=get_client_ip(request),
            path=request.url.path,
        )
        raise unauthorized() from e
    except StoreError as e:
        logger.exception("Token store failure during authentication")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from e

    request.state.auth = context
    return context
