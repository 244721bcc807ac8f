"""
Closed set of RevenueCat event variants.

Webhook bodies are validated by app.schemas.subscription.WebhookPayload and then
turned into exactly one of the dataclasses below, so the state machine can switch
over a known set of shapes. Anything the provider sends that is not in EventType
becomes UnrecognizedEvent and still reaches the ledger.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from app.schemas.subscription import WebhookEvent
from app.utils.timezones import from_epoch_ms


class EventType(str, Enum):
    INITIAL_PURCHASE = "INITIAL_PURCHASE"
    RENEWAL = "RENEWAL"
    CANCELLATION = "CANCELLATION"
    UNCANCELLATION = "UNCANCELLATION"
    NON_RENEWING_PURCHASE = "NON_RENEWING_PURCHASE"
    SUBSCRIPTION_PAUSED = "SUBSCRIPTION_PAUSED"
    EXPIRATION = "EXPIRATION"
    BILLING_ISSUE = "BILLING_ISSUE"
    PRODUCT_CHANGE = "PRODUCT_CHANGE"
    TRANSFER = "TRANSFER"


ACTIVATING_TYPES = frozenset({
    EventType.INITIAL_PURCHASE,
    EventType.RENEWAL,
    EventType.UNCANCELLATION,
    EventType.PRODUCT_CHANGE,
})

# Subscription may still be live until period end; only the expiry moves
EXPIRY_NOTICE_TYPES = frozenset({
    EventType.CANCELLATION,
    EventType.BILLING_ISSUE,
    EventType.SUBSCRIPTION_PAUSED,
})


@dataclass(frozen=True)
class _BaseEvent:
    event_id: str
    event_type: str
    app_user_id: str
    product_id: Optional[str]


@dataclass(frozen=True)
class SubscriptionActivated(_BaseEvent):
    """INITIAL_PURCHASE, RENEWAL, UNCANCELLATION, PRODUCT_CHANGE"""

    expires_at: Optional[datetime]


@dataclass(frozen=True)
class OneTimePurchase(_BaseEvent):
    """NON_RENEWING_PURCHASE"""


@dataclass(frozen=True)
class SubscriptionExpired(_BaseEvent):
    """EXPIRATION"""


@dataclass(frozen=True)
class ExpiryNotice(_BaseEvent):
    """CANCELLATION, BILLING_ISSUE, SUBSCRIPTION_PAUSED"""

    expires_at: Optional[datetime]


@dataclass(frozen=True)
class SubscriberTransferred(_BaseEvent):
    """TRANSFER. Reconciling subscriber ids is not implemented."""

    transferred_from: tuple = ()
    transferred_to: tuple = ()


@dataclass(frozen=True)
class UnrecognizedEvent(_BaseEvent):
    raw_fields: Dict[str, Any] = field(default_factory=dict)


ProviderEvent = Union[
    SubscriptionActivated,
    OneTimePurchase,
    SubscriptionExpired,
    ExpiryNotice,
    SubscriberTransferred,
    UnrecognizedEvent,
]


def parse_event(event: WebhookEvent) -> ProviderEvent:
    """Map a validated webhook event onto its variant."""
    common = dict(
        event_id=event.id,
        event_type=event.type,
        app_user_id=event.app_user_id,
        product_id=event.product_id,
    )
    try:
        kind = EventType(event.type)
    except ValueError:
        return UnrecognizedEvent(raw_fields=event.model_dump(), **common)

    expires_at = from_epoch_ms(event.expiration_at_ms)

    if kind in ACTIVATING_TYPES:
        return SubscriptionActivated(expires_at=expires_at, **common)
    if kind == EventType.NON_RENEWING_PURCHASE:
        return OneTimePurchase(**common)
    if kind == EventType.EXPIRATION:
        return SubscriptionExpired(**common)
    if kind in EXPIRY_NOTICE_TYPES:
        return ExpiryNotice(expires_at=expires_at, **common)
    if kind == EventType.TRANSFER:
        extra = event.model_extra or {}
        return SubscriberTransferred(
            transferred_from=tuple(extra.get("transferred_from") or ()),
            transferred_to=tuple(extra.get("transferred_to") or ()),
            **common,
        )
    raise AssertionError(f"Unhandled event type {kind}")
