"""User account endpoints."""

import functools
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from saas_server.api.deps import get_session_factory
from saas_server.core.config import settings
from saas_server.middleware.auth import require_auth
from saas_server.schemas.auth import SubscriptionStatusResponse
from saas_server.services.session import AuthContext
from saas_server.services.subscription_cache import (
    SubscriptionLookupTimeout,
    SubscriptionStatusCache,
    get_subscription_cache,
    load_subscription_status,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["user"])


@router.get("/verify-user", response_model=SubscriptionStatusResponse)
async def verify_user(
    context: AuthContext = Depends(require_auth),
    cache: SubscriptionStatusCache = Depends(get_subscription_cache),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> SubscriptionStatusResponse:
    """Return the caller's subscription status.

    Served from a 5 minute cache. Returns 504 if the database does not
    answer in time; the lookup then finishes in the background.
    """
    try:
        subscription = await cache.lookup(
            context.user_id,
            functools.partial(load_subscription_status, session_factory, context.user_id),
            timeout=settings.subscription_lookup_timeout_seconds,
        )
    except SubscriptionLookupTimeout as e:
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Request timeout",
        ) from e

    return SubscriptionStatusResponse(
        status=subscription.status,
        product_id=subscription.product_id,
        variant_id=subscription.variant_id,
    )
