from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.db.session import get_db, store_operation
from app.dependencies.auth import get_current_user_id
from app.dependencies.state import get_cache
from app.schemas.user import ProfileResponse, ProfileUpdate, StreakResponse
from app.services import entitlement_store
from app.services.entitlement_cache import EntitlementCache, invalidate_subscription_cache
from app.services.quota_gate import QuotaGate
from app.services.streaks import StreakCalculator
from app.utils.timezones import as_utc

router = APIRouter()


def _profile(db: Session, user_id: str) -> dict:
    snapshot = QuotaGate(db).peek(user_id)
    entitlement = entitlement_store.require_entitlement(db, user_id)
    profile = ProfileResponse(
        user_id=entitlement.user_id,
        subscription_status=entitlement.tier,
        subscription_expires_at=as_utc(entitlement.expires_at),
        trial_ends_at=as_utc(entitlement.trial_ends_at),
        timezone=entitlement.timezone,
        daily_affirmation_count=snapshot.used_today,
        daily_limit=snapshot.ceiling,
        remaining_views=snapshot.remaining,
        can_view_more_affirmations=snapshot.can_view_more,
        created_at=as_utc(entitlement.created_at),
    )
    return profile.model_dump(mode="json", by_alias=True)


@router.get("/me")
def get_current_user(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Get current user profile, creating it on first access"""
    return {"success": True, "data": _profile(db, user_id)}


@router.patch("/me")
def update_user_profile(
    body: ProfileUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Update profile settings (currently the timezone used for daily limits and streaks)"""
    if body.timezone is not None:
        with store_operation(db, "Profile store"):
            entitlement_store.update_timezone(db, user_id, body.timezone)
    return {"success": True, "data": _profile(db, user_id)}


@router.get("/me/streak")
def get_user_streak(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    with store_operation(db, "View log"):
        stats = StreakCalculator(db).compute(user_id)
    result = StreakResponse(
        current_streak=stats.current_streak,
        longest_streak=stats.longest_streak,
        view_dates=[d.isoformat() for d in stats.view_dates],
    )
    return {"success": True, "data": result.model_dump(by_alias=True)}


@router.delete("/me", status_code=status.HTTP_200_OK)
def delete_user_account(
    db: Session = Depends(get_db),
    cache: EntitlementCache = Depends(get_cache),
    user_id: str = Depends(get_current_user_id),
):
    """Delete the user's entitlement record. Ledger and view history keep a NULL user."""
    with store_operation(db, "Profile store"):
        entitlement_store.delete_entitlement(db, user_id)
    invalidate_subscription_cache(cache, user_id)
    return {"success": True}
