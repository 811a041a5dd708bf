"""Authentication error hierarchy.

Routes translate these into generic HTTP responses; the specific subclass
is only ever logged server-side.
"""


class AuthError(Exception):
    """Base authentication error."""

    pass


# --- Token parsing / validation ---


class TokenError(AuthError):
    """Access or refresh token failed validation."""

    pass


class MalformedTokenError(TokenError):
    """Token is not a well-formed signed token or lacks required claims."""

    pass


class InvalidSignatureError(TokenError):
    """Token signature does not verify against the configured secret."""

    pass


class TokenExpiredError(TokenError):
    """Token has expired."""

    pass


class WrongTokenTypeError(TokenError):
    """Token type claim does not match the expected type."""

    pass


class TokenBlacklistedError(TokenError):
    """Token was explicitly revoked."""

    pass


# --- Refresh ---


class RefreshTokenError(AuthError):
    """Refresh token cannot be used to mint a new session."""

    pass


class RefreshTokenNotFoundError(RefreshTokenError):
    pass


class RefreshTokenBlockedError(RefreshTokenError):
    pass


class RefreshTokenExpiredError(RefreshTokenError):
    pass


# --- Request-level checks ---


class CSRFMismatchError(AuthError):
    """CSRF header does not match the CSRF cookie."""

    pass


class InvalidCredentialsError(AuthError):
    """Invalid email or password."""

    pass


class EmailAlreadyRegisteredError(AuthError):
    pass


class EmailAlreadyVerifiedError(AuthError):
    pass


# --- Single-use tokens (password reset, email verification) ---


class OneTimeTokenError(AuthError):
    """Password reset or email verification token rejected."""

    pass


class OneTimeTokenInvalidError(OneTimeTokenError):
    """Token is unknown or expired."""

    pass


class OneTimeTokenUsedError(OneTimeTokenError):
    """Token has already been consumed."""

    pass


class StoreError(Exception):
    """Persistence failure in the token store."""

    pass
