"""
Event Ledger: deduplicated, append-only record of processed RevenueCat events.

record() only flushes. The caller commits it together with the entitlement
mutation so the unique constraint on event_id decides which delivery wins.
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.subscription_event import SubscriptionEvent
from app.schemas.subscription import WebhookEvent
from app.utils.timezones import from_epoch_ms


class DuplicateEventError(Exception):
    """The event id is already in the ledger."""

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Event {event_id} already processed")


def has_processed(db: Session, event_id: str) -> bool:
    return db.query(SubscriptionEvent.id).filter(SubscriptionEvent.event_id == event_id).first() is not None


def _price(value: Optional[float]) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except InvalidOperation:
        return None


def record(
    db: Session,
    event: WebhookEvent,
    resolved_user_id: Optional[str],
    raw_payload: Dict[str, Any],
) -> SubscriptionEvent:
    """Insert the ledger row inside the caller's transaction. Raises DuplicateEventError."""
    row = SubscriptionEvent(
        event_id=event.id,
        event_type=event.type,
        app_user_id=event.app_user_id,
        resolved_user_id=resolved_user_id,
        product_id=event.product_id,
        transaction_id=event.transaction_id,
        original_transaction_id=event.original_transaction_id,
        purchased_at=from_epoch_ms(event.purchased_at_ms),
        expiration_at=from_epoch_ms(event.expiration_at_ms),
        price=_price(event.price),
        currency=event.currency,
        raw_payload=raw_payload,
    )
    db.add(row)
    try:
        db.flush()
    except IntegrityError as e:
        db.rollback()
        raise DuplicateEventError(event.id) from e
    return row
