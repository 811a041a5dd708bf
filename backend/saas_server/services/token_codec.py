"""Signing and parsing of access and refresh tokens (HS256 JWTs)."""

import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt.exceptions import DecodeError, InvalidSignatureError as JWTInvalidSignatureError
from jwt.exceptions import PyJWTError

from saas_server.core.config import Settings, settings
from saas_server.services.errors import (
    InvalidSignatureError,
    MalformedTokenError,
    TokenExpiredError,
    WrongTokenTypeError,
)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

_REQUIRED_CLAIMS = ["sub", "exp", "jti", "type"]


@dataclass(frozen=True)
class TokenClaims:
    """Decoded token claims.

    expires_at is whole-second precision, matching the encoded `exp` claim.
    """

    subject: str
    expires_at: datetime
    token_id: str
    token_type: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "sub": self.subject,
            "exp": int(self.expires_at.timestamp()),
            "jti": self.token_id,
            "type": self.token_type,
        }


class TokenCodec:
    """Issues and parses signed tokens.

    Access and refresh tokens are signed with independent secrets (which may
    be equal). Expiry is checked against the injected clock rather than by
    PyJWT so callers can control time.
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=5),
        refresh_ttl: timedelta = timedelta(days=7),
        clock: Callable[[], float] = time.time,
    ):
        self._secrets = {
            ACCESS_TOKEN_TYPE: access_secret,
            REFRESH_TOKEN_TYPE: refresh_secret,
        }
        self._ttls = {
            ACCESS_TOKEN_TYPE: access_ttl,
            REFRESH_TOKEN_TYPE: refresh_ttl,
        }
        self.algorithm = algorithm
        self._clock = clock

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "TokenCodec":
        return cls(
            access_secret=config.jwt_secret_key,
            refresh_secret=config.effective_jwt_refresh_secret_key,
            algorithm=config.jwt_algorithm,
            access_ttl=timedelta(minutes=config.access_token_expire_minutes),
            refresh_ttl=timedelta(days=config.refresh_token_expire_days),
        )

    @property
    def access_ttl(self) -> timedelta:
        return self._ttls[ACCESS_TOKEN_TYPE]

    @property
    def refresh_ttl(self) -> timedelta:
        return self._ttls[REFRESH_TOKEN_TYPE]

    def now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=UTC)

    def new_claims(self, subject: str, token_type: str) -> TokenClaims:
        """Build claims with a fresh JTI and the policy lifetime for `token_type`."""
        expires_at = self.now() + self._ttls[token_type]
        return TokenClaims(
            subject=subject,
            expires_at=expires_at.replace(microsecond=0),
            token_id=str(uuid.uuid4()),
            token_type=token_type,
        )

    def issue(self, claims: TokenClaims) -> str:
        """Sign claims with the secret for their token type."""
        token = jwt.encode(
            claims.to_payload(),
            self._secrets[claims.token_type],
            algorithm=self.algorithm,
        )
        return str(token)

    def parse(self, token: str, expected_type: str) -> TokenClaims:
        """Verify a token and return its claims.

        Raises:
            MalformedTokenError: not a JWT, or required claims are missing
            InvalidSignatureError: signature does not verify
            WrongTokenTypeError: `type` claim is not `expected_type`
            TokenExpiredError: `exp` is not in the future
        """
        try:
            payload = jwt.decode(
                token,
                self._secrets[expected_type],
                algorithms=[self.algorithm],
                options={"require": _REQUIRED_CLAIMS, "verify_exp": False},
            )
        except JWTInvalidSignatureError as e:
            raise InvalidSignatureError("Token signature is invalid") from e
        except DecodeError as e:
            raise MalformedTokenError(f"Malformed token: {e}") from e
        except PyJWTError as e:
            raise MalformedTokenError(f"Invalid token: {e}") from e

        if payload["type"] != expected_type:
            raise WrongTokenTypeError(f"Expected {expected_type} token, got {payload['type']!r}")

        try:
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=UTC)
        except (TypeError, ValueError, OverflowError) as e:
            raise MalformedTokenError("Token has an invalid exp claim") from e

        if expires_at <= self.now():
            raise TokenExpiredError("Token has expired")

        return TokenClaims(
            subject=str(payload["sub"]),
            expires_at=expires_at,
            token_id=str(payload["jti"]),
            token_type=payload["type"],
        )
