"""
Entitlement Store: one UserEntitlement row per user.

Rows are created lazily on first access with the free tier and a trial window.
Callers own the transaction; functions here flush but only commit where noted.
"""
import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError
from app.core.plan_limits import TIER_FREE, TRIAL_DURATION_DAYS, is_premium
from app.models.user_entitlement import UserEntitlement
from app.services.entitlement_state import UNCHANGED, EntitlementChange
from app.utils.timezones import as_utc, utcnow

logger = logging.getLogger(__name__)


def get_entitlement(db: Session, user_id: str) -> Optional[UserEntitlement]:
    return db.query(UserEntitlement).filter(UserEntitlement.user_id == user_id).first()


def require_entitlement(db: Session, user_id: str) -> UserEntitlement:
    entitlement = get_entitlement(db, user_id)
    if not entitlement:
        raise NotFoundError("User profile not found")
    return entitlement


def get_or_create_entitlement(db: Session, user_id: str) -> UserEntitlement:
    """
    Return the user's entitlement, creating a free-tier record on first access.
    Commits the insert. A concurrent creator winning the race is not an error.
    """
    if not user_id:
        raise ValueError("user_id is required")

    entitlement = get_entitlement(db, user_id)
    if entitlement:
        return entitlement

    now = utcnow()
    entitlement = UserEntitlement(
        user_id=user_id,
        tier=TIER_FREE,
        daily_usage_count=0,
        timezone="UTC",
        trial_ends_at=now + timedelta(days=TRIAL_DURATION_DAYS),
    )
    db.add(entitlement)
    try:
        db.commit()
        logger.info("[Entitlements] Created entitlement for user %s", user_id)
    except IntegrityError:
        db.rollback()

    return require_entitlement(db, user_id)


def find_by_subscriber(db: Session, provider_subscriber_id: str) -> Optional[UserEntitlement]:
    if not provider_subscriber_id:
        return None
    return (
        db.query(UserEntitlement)
        .filter(UserEntitlement.provider_subscriber_id == provider_subscriber_id)
        .first()
    )


def link_subscriber(db: Session, user_id: str, provider_subscriber_id: str) -> UserEntitlement:
    """
    Attach a RevenueCat subscriber id to the user's entitlement. Linking the same id
    again is a no-op. Raises ConflictError if the id belongs to another user or the
    user is already linked to a different id.
    """
    entitlement = get_or_create_entitlement(db, user_id)

    if entitlement.provider_subscriber_id == provider_subscriber_id:
        return entitlement

    if entitlement.provider_subscriber_id:
        raise ConflictError("Account is already linked to a different subscriber")

    owner = find_by_subscriber(db, provider_subscriber_id)
    if owner and owner.user_id != user_id:
        raise ConflictError("Subscriber is already linked to another account")

    entitlement.provider_subscriber_id = provider_subscriber_id
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Subscriber is already linked to another account")

    db.refresh(entitlement)
    logger.info("[Entitlements] Linked user %s to subscriber %s", user_id, provider_subscriber_id)
    return entitlement


def apply_change(entitlement: UserEntitlement, change: EntitlementChange) -> bool:
    """Write the non-UNCHANGED fields of change onto entitlement. Returns True if anything was set."""
    if change.is_noop:
        return False
    if change.tier is not UNCHANGED:
        entitlement.tier = change.tier
    if change.expires_at is not UNCHANGED:
        entitlement.expires_at = change.expires_at
    if change.product_id is not UNCHANGED:
        entitlement.product_id = change.product_id
    entitlement.updated_at = utcnow()
    return True


def build_status(entitlement: UserEntitlement) -> dict:
    premium = is_premium(entitlement.tier)
    trial_ends_at = as_utc(entitlement.trial_ends_at)
    return {
        "status": entitlement.tier,
        "expires_at": as_utc(entitlement.expires_at),
        "trial_ends_at": trial_ends_at,
        "is_trial_active": trial_ends_at is not None and trial_ends_at > utcnow(),
        "features": {
            "unlimited_affirmations": premium,
            "premium_affirmations": premium,
            "download_backgrounds": premium,
        },
    }


def update_timezone(db: Session, user_id: str, tz_name: str) -> UserEntitlement:
    entitlement = get_or_create_entitlement(db, user_id)
    entitlement.timezone = tz_name
    entitlement.updated_at = utcnow()
    db.commit()
    db.refresh(entitlement)
    return entitlement


def delete_entitlement(db: Session, user_id: str) -> bool:
    """Delete the user's record. Ledger and view rows keep their history with a NULL user."""
    entitlement = get_entitlement(db, user_id)
    if not entitlement:
        return False

    from app.models.affirmation_view import AffirmationView
    from app.models.subscription_event import SubscriptionEvent

    # SET NULL is declared on the FKs; do it explicitly for backends that do not enforce FKs
    db.query(AffirmationView).filter(AffirmationView.user_id == user_id).update(
        {"user_id": None}, synchronize_session=False
    )
    db.query(SubscriptionEvent).filter(SubscriptionEvent.resolved_user_id == user_id).update(
        {"resolved_user_id": None}, synchronize_session=False
    )
    db.delete(entitlement)
    db.commit()
    logger.info("[Entitlements] Deleted entitlement for user %s", user_id)
    return True
