"""Authentication API endpoints.

Session artifacts travel as cookies. Failure responses are deliberately
generic; the specific reason is logged.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from saas_server.api.deps import get_auth_service
from saas_server.core.logging import log_security_event
from saas_server.core.request_utils import get_client_ip, get_device_info
from saas_server.middleware.auth import (
    ACCESS_COOKIE_NAME,
    REFRESH_COOKIE_NAME,
    clear_session_cookies,
    get_session_manager,
    require_auth,
    set_session_cookies,
)
from saas_server.middleware.rate_limit import get_rate_limiters, rate_limited
from saas_server.models.user import User
from saas_server.schemas.auth import (
    AccountPasswordResetRequest,
    LoginRequest,
    MessageResponse,
    PasswordResetRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    UserResponse,
    VerifyEmailRequest,
)
from saas_server.services.auth import AuthService
from saas_server.services.csrf import CSRF_COOKIE_NAME, CSRF_HEADER_NAME
from saas_server.services.email import EmailDeliveryError
from saas_server.services.errors import (
    CSRFMismatchError,
    EmailAlreadyRegisteredError,
    EmailAlreadyVerifiedError,
    InvalidCredentialsError,
    OneTimeTokenInvalidError,
    OneTimeTokenUsedError,
    RefreshTokenError,
    StoreError,
    TokenError,
)
from saas_server.services.session import AuthContext, SessionManager

logger = logging.getLogger(__name__)

PASSWORD_RESET_REQUESTED_MESSAGE = (
    "If your email exists in our system, you will receive password reset instructions."
)

router = APIRouter(prefix="/auth", tags=["auth"])

_limiters = get_rate_limiters()
auth_rate_limit = Depends(rate_limited(_limiters.auth))
refresh_rate_limit = Depends(rate_limited(_limiters.refresh))


def _internal_error(e: Exception) -> HTTPException:
    logger.error(f"Token store failure: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error",
    )


def _invalid_refresh_token() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid refresh token",
    )


async def _current_user(context: AuthContext, auth_service: AuthService) -> User:
    user = await auth_service.get_user_by_id(context.user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[auth_rate_limit],
)
async def register(
    body: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> RegisterResponse:
    """Create an account. Returns 409 Conflict if the email is taken."""
    try:
        user = await auth_service.register(body.email, body.password, body.name)
    except EmailAlreadyRegisteredError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        ) from e
    except StoreError as e:
        raise _internal_error(e) from e
    return RegisterResponse(message="User registered successfully", id=user.id)


@router.post("/login", response_model=UserResponse, dependencies=[auth_rate_limit])
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
    sessions: SessionManager = Depends(get_session_manager),
) -> UserResponse:
    """Authenticate with email and password and start a session."""
    try:
        user = await auth_service.authenticate(body.email, body.password)
        device_info, origin = get_device_info(request)
        session = await sessions.issue_session(user.id, device_info, origin)
    except InvalidCredentialsError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        ) from e
    except StoreError as e:
        raise _internal_error(e) from e

    set_session_cookies(response, session)
    logger.info(f"User logged in: {user.id}")
    return UserResponse.model_validate(user)


@router.post("/refresh", response_model=UserResponse, dependencies=[refresh_rate_limit])
async def refresh_session(
    request: Request,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
    sessions: SessionManager = Depends(get_session_manager),
) -> UserResponse:
    """Rotate the session using the refresh token cookie.

    Requires the X-CSRF-Token header to match the csrf_token cookie; the
    old access token is only revoked once that check passes. The presented
    refresh token stays valid after rotation.
    """
    refresh_token = request.cookies.get(REFRESH_COOKIE_NAME)
    if not refresh_token:
        raise _invalid_refresh_token()

    try:
        sessions.csrf_guard.check(
            request.headers.get(CSRF_HEADER_NAME),
            request.cookies.get(CSRF_COOKIE_NAME),
        )
    except CSRFMismatchError as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid CSRF token",
        ) from e

    old_access_token = request.cookies.get(ACCESS_COOKIE_NAME)
    if old_access_token:
        try:
            await sessions.revoke_access_token(old_access_token)
        except (TokenError, StoreError) as e:
            # Usually the old token has simply expired
            logger.info(f"Old access token not blacklisted on refresh: {e}")

    try:
        device_info, origin = get_device_info(request)
        session = await sessions.refresh(refresh_token, device_info, origin)
    except (TokenError, RefreshTokenError) as e:
        log_security_event(
            "refresh_rejected",
            f"{type(e).__name__}: {e}",
            client=get_client_ip(request),
            path=request.url.path,
        )
        raise _invalid_refresh_token() from e
    except StoreError as e:
        raise _internal_error(e) from e

    user = await auth_service.get_user_by_id(session.user_id)
    if user is None or not user.is_active:
        raise _invalid_refresh_token()

    set_session_cookies(response, session)
    return UserResponse.model_validate(user)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    context: AuthContext = Depends(require_auth),
    sessions: SessionManager = Depends(get_session_manager),
) -> MessageResponse:
    """Revoke the current access token and every refresh token of the user."""
    try:
        await sessions.revoke_context(context)
    except StoreError:
        logger.exception(f"Error blacklisting access token for user {context.user_id}")

    try:
        await sessions.revoke_all_sessions(context.user_id)
    except StoreError:
        logger.exception(f"Error invalidating refresh tokens for user {context.user_id}")

    clear_session_cookies(response)
    logger.info(f"User logged out: {context.user_id}")
    return MessageResponse(message="Successfully logged out")


@router.get("/me", response_model=UserResponse)
async def get_me(
    context: AuthContext = Depends(require_auth),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """Get current user info."""
    user = await _current_user(context, auth_service)
    return UserResponse.model_validate(user)


@router.post(
    "/reset-password/request",
    response_model=MessageResponse,
    dependencies=[auth_rate_limit],
)
async def request_password_reset(
    body: PasswordResetRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Send a reset link. The answer is the same whether or not the email exists."""
    try:
        await auth_service.request_password_reset(body.email)
    except EmailDeliveryError:
        logger.exception("Error sending password reset email")
    except StoreError as e:
        raise _internal_error(e) from e
    return MessageResponse(message=PASSWORD_RESET_REQUESTED_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse, dependencies=[auth_rate_limit])
async def reset_password(
    body: ResetPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Set a new password with a single-use reset token."""
    try:
        await auth_service.reset_password(body.token, body.new_password)
    except OneTimeTokenUsedError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Token has already been used",
        ) from e
    except OneTimeTokenInvalidError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired reset token",
        ) from e
    except StoreError as e:
        raise _internal_error(e) from e
    return MessageResponse(
        message="Password updated successfully. Please log in again with your new password."
    )


@router.post("/account-password/reset", response_model=MessageResponse)
async def change_password(
    body: AccountPasswordResetRequest,
    context: AuthContext = Depends(require_auth),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Change the password of the signed-in user and sign out all devices."""
    user = await _current_user(context, auth_service)
    try:
        await auth_service.change_password(user, body.current_password, body.new_password)
    except InvalidCredentialsError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Current password is incorrect",
        ) from e
    except StoreError as e:
        raise _internal_error(e) from e
    return MessageResponse(message="Password updated successfully.")


@router.post("/verify-email", response_model=MessageResponse)
async def send_verification_email(
    context: AuthContext = Depends(require_auth),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Email a verification link to the signed-in user."""
    user = await _current_user(context, auth_service)
    try:
        await auth_service.create_email_verification(user)
    except EmailAlreadyVerifiedError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email is already verified",
        ) from e
    except EmailDeliveryError as e:
        logger.error(f"Error sending verification email: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error sending verification email",
        ) from e
    except StoreError as e:
        raise _internal_error(e) from e
    return MessageResponse(message="Verification email sent")


@router.post("/verify", response_model=MessageResponse)
async def verify_email(
    body: VerifyEmailRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Consume an email verification token."""
    try:
        await auth_service.verify_email(body.token)
    except (OneTimeTokenInvalidError, OneTimeTokenUsedError) as e:
        logger.info(f"Email verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired verification token",
        ) from e
    except StoreError as e:
        raise _internal_error(e) from e
    return MessageResponse(message="Email verified successfully")
