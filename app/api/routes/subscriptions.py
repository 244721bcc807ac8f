"""
Subscription routes: RevenueCat webhook plus the authenticated status/link/restore
endpoints used by the mobile app.
"""
import json
import logging

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import BadRequestError
from app.core.plan_limits import USER_DATA_CACHE_TTL_SECONDS, subscription_cache_key
from app.core.rate_limit import WEBHOOK_RATE_LIMIT, limiter
from app.db.session import get_db, store_operation
from app.dependencies.auth import get_current_user_id
from app.dependencies.state import get_cache, get_settings
from app.schemas.subscription import LinkSubscriberRequest, SubscriptionStatusResponse
from app.services import entitlement_store
from app.services.entitlement_cache import EntitlementCache, invalidate_subscription_cache
from app.services.webhook_ingestor import WebhookIngestor

logger = logging.getLogger(__name__)

router = APIRouter()

SIGNATURE_HEADERS = ("x-signature", "x-revenuecat-signature")


def _load_status(db: Session, cache: EntitlementCache, user_id: str) -> SubscriptionStatusResponse:
    cache_key = subscription_cache_key(user_id)
    cached = cache.get(cache_key)
    if cached:
        return SubscriptionStatusResponse.model_validate(cached)

    with store_operation(db, "Subscription store"):
        entitlement = entitlement_store.get_or_create_entitlement(db, user_id)
        result = SubscriptionStatusResponse.model_validate(entitlement_store.build_status(entitlement))

    cache.set(cache_key, result.model_dump(mode="json"), USER_DATA_CACHE_TTL_SECONDS)
    return result


@router.get("/status")
def get_subscription_status(
    db: Session = Depends(get_db),
    cache: EntitlementCache = Depends(get_cache),
    user_id: str = Depends(get_current_user_id),
):
    """Current tier, expiry, trial state and the feature flags derived from the tier."""
    result = _load_status(db, cache, user_id)
    return {"success": True, "data": result.model_dump(mode="json", by_alias=True)}


@router.post("/link", status_code=status.HTTP_204_NO_CONTENT)
def link_revenuecat_user(
    body: LinkSubscriberRequest,
    db: Session = Depends(get_db),
    cache: EntitlementCache = Depends(get_cache),
    user_id: str = Depends(get_current_user_id),
):
    """Link the RevenueCat app_user_id to the caller so webhooks can find them."""
    with store_operation(db, "Subscription store"):
        entitlement_store.link_subscriber(db, user_id, body.revenuecat_user_id)
    invalidate_subscription_cache(cache, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/restore")
def restore_purchases(
    db: Session = Depends(get_db),
    cache: EntitlementCache = Depends(get_cache),
    user_id: str = Depends(get_current_user_id),
):
    """
    Restore purchases. The provider's webhooks are the source of truth, so this
    returns the stored state, bypassing the cache.
    """
    invalidate_subscription_cache(cache, user_id)
    result = _load_status(db, cache, user_id)
    return {"success": True, "data": result.model_dump(mode="json", by_alias=True)}


@router.post("/webhook")
@limiter.limit(WEBHOOK_RATE_LIMIT)
async def revenuecat_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    cache: EntitlementCache = Depends(get_cache),
):
    """
    RevenueCat webhook. Register this URL in the RevenueCat dashboard:
    https://your-backend.com/api/subscriptions/webhook
    """
    body = await request.body()
    signature = next(
        (request.headers.get(name) for name in SIGNATURE_HEADERS if request.headers.get(name)),
        None,
    )

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise BadRequestError("Invalid JSON")
    if not isinstance(payload, dict):
        raise BadRequestError("Webhook body must be a JSON object")

    outcome = WebhookIngestor(db, settings, cache).handle(payload, signature)
    logger.info("[RevenueCat webhook] delivery handled: %s", outcome.value)
    return {"received": True}
