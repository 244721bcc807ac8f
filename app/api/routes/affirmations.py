"""
Quota-consuming content path. Serving the affirmation itself is handled by the
content service; this route decides whether the user may view one more today and
records the view for streaks.
"""
import logging

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.errors import PremiumRequiredError
from app.db.session import get_db, store_operation
from app.dependencies.auth import get_current_user_id
from app.schemas.user import AffirmationViewRequest, AffirmationViewResponse
from app.services.quota_gate import QuotaGate
from app.services.streaks import record_view

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{affirmation_id}/view")
def view_affirmation(
    affirmation_id: str,
    body: Optional[AffirmationViewRequest] = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    decision = QuotaGate(db).check_and_consume(user_id)
    if not decision.allowed:
        raise PremiumRequiredError()

    with store_operation(db, "View log"):
        record_view(db, user_id, affirmation_id, body.source if body else "app")

    result = AffirmationViewResponse(
        affirmation_id=affirmation_id,
        allowed=decision.allowed,
        remaining=decision.remaining,
    )
    return {"success": True, "data": result.model_dump(by_alias=True)}
