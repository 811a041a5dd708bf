# saas_server Pydantic Schemas
from saas_server.schemas.auth import (
    AccountPasswordResetRequest,
    LoginRequest,
    MessageResponse,
    PasswordResetRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    SubscriptionStatusResponse,
    UserResponse,
    VerifyEmailRequest,
)

__all__ = [
    "AccountPasswordResetRequest",
    "LoginRequest",
    "MessageResponse",
    "PasswordResetRequest",
    "RegisterRequest",
    "RegisterResponse",
    "ResetPasswordRequest",
    "SubscriptionStatusResponse",
    "UserResponse",
    "VerifyEmailRequest",
]
