"""Pydantic schemas for authentication API."""

import re
from typing import Annotated
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field


def check_password_strength(password: str) -> str:
    """Require upper-case, lower-case, digit and symbol characters."""
    if not re.search(r"[A-Z]", password):
        raise ValueError("password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise ValueError("password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        raise ValueError("password must contain at least one number")
    if not re.search(r"[^A-Za-z0-9]", password):
        raise ValueError("password must contain at least one special character")
    return password


NewPassword = Annotated[
    str,
    Field(
        min_length=8,
        max_length=128,
        description="Password (8-128 chars with upper, lower, digit and symbol)",
    ),
    AfterValidator(check_password_strength),
]


class RegisterRequest(BaseModel):
    """Request for account registration."""

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: NewPassword


class RegisterResponse(BaseModel):
    message: str
    id: UUID


class LoginRequest(BaseModel):
    """Request for login."""

    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


class PasswordResetRequest(BaseModel):
    """Request a password reset link."""

    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Consume a password reset token."""

    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(..., min_length=1, max_length=64)
    new_password: NewPassword = Field(..., alias="password")


class AccountPasswordResetRequest(BaseModel):
    """Change the password of the signed-in account."""

    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(..., alias="currentPassword", min_length=1, max_length=128)
    new_password: NewPassword = Field(..., alias="newPassword")


class VerifyEmailRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=64)


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str


class UserResponse(BaseModel):
    """Public user fields returned by login, refresh and /auth/me."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    email_verified: bool


class SubscriptionStatusResponse(BaseModel):
    status: str | None
    product_id: int | None
    variant_id: int | None
