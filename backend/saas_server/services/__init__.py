"""Business logic services."""

from saas_server.services.auth import AuthService, hash_password, verify_password
from saas_server.services.csrf import CSRFGuard
from saas_server.services.email import EmailDeliveryError, EmailSender
from saas_server.services.session import AuthContext, IssuedSession, SessionManager
from saas_server.services.subscription_cache import (
    SubscriptionLookupTimeout,
    SubscriptionStatus,
    SubscriptionStatusCache,
)
from saas_server.services.token_codec import TokenClaims, TokenCodec
from saas_server.services.token_store import SqlAlchemyTokenStore, TokenStore

__all__ = [
    "AuthContext",
    "AuthService",
    "CSRFGuard",
    "EmailDeliveryError",
    "EmailSender",
    "IssuedSession",
    "SessionManager",
    "SqlAlchemyTokenStore",
    "SubscriptionLookupTimeout",
    "SubscriptionStatus",
    "SubscriptionStatusCache",
    "TokenClaims",
    "TokenCodec",
    "TokenStore",
    "hash_password",
    "verify_password",
]
