"""
Entitlement state machine.

Pure mapping from (current tier, provider event) to the change that should be
written to the user's entitlement record. Nothing here touches the database.

Tier and expiry are decided independently from the same event and applied
together. Cancellation-type events never downgrade: the provider sends EXPIRATION
when access actually ends.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from app.core.plan_limits import TIER_FREE, TIER_PAID, TIER_LIFETIME
from app.services.provider_events import (
    ExpiryNotice,
    OneTimePurchase,
    ProviderEvent,
    SubscriberTransferred,
    SubscriptionActivated,
    SubscriptionExpired,
    UnrecognizedEvent,
)

logger = logging.getLogger(__name__)


class _Unchanged:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "UNCHANGED"

    def __bool__(self):
        return False


UNCHANGED: Any = _Unchanged()


@dataclass(frozen=True)
class EntitlementChange:
    """
    Fields left as UNCHANGED are not written. expires_at=None means "clear the
    expiry" (does not expire).
    """

    tier: Any = UNCHANGED
    expires_at: Any = UNCHANGED
    product_id: Any = UNCHANGED

    @property
    def is_noop(self) -> bool:
        return self.tier is UNCHANGED and self.expires_at is UNCHANGED and self.product_id is UNCHANGED


NO_CHANGE = EntitlementChange()


def lifetime_matcher(pattern: str) -> Callable[[Optional[str]], bool]:
    """Case-insensitive substring test used to classify lifetime SKUs."""
    needle = pattern.lower()

    def _matches(product_id: Optional[str]) -> bool:
        return bool(product_id) and needle in product_id.lower()

    return _matches


def _product(event: ProviderEvent) -> Any:
    return event.product_id if event.product_id else UNCHANGED


def next_entitlement(
    current_tier: str,
    event: ProviderEvent,
    is_lifetime_product: Callable[[Optional[str]], bool],
) -> EntitlementChange:
    if isinstance(event, SubscriptionActivated):
        tier = TIER_LIFETIME if is_lifetime_product(event.product_id) else TIER_PAID
        if event.expires_at is not None:
            expires_at = event.expires_at
        elif tier == TIER_LIFETIME:
            expires_at = None
        else:
            expires_at = UNCHANGED
        return EntitlementChange(tier=tier, expires_at=expires_at, product_id=_product(event))

    if isinstance(event, OneTimePurchase):
        return EntitlementChange(tier=TIER_LIFETIME, expires_at=None, product_id=_product(event))

    if isinstance(event, SubscriptionExpired):
        return EntitlementChange(tier=TIER_FREE, expires_at=None, product_id=_product(event))

    if isinstance(event, ExpiryNotice):
        if event.expires_at is None:
            return EntitlementChange(product_id=_product(event))
        return EntitlementChange(expires_at=event.expires_at, product_id=_product(event))

    if isinstance(event, SubscriberTransferred):
        logger.warning(
            "[RevenueCat webhook] TRANSFER %s (from=%s to=%s) is not handled; "
            "subscriber ids need manual reconciliation (current tier %s)",
            event.event_id,
            list(event.transferred_from),
            list(event.transferred_to),
            current_tier,
        )
        return NO_CHANGE

    if isinstance(event, UnrecognizedEvent):
        logger.info(
            "[RevenueCat webhook] Unrecognized event type %s (%s); ledgered without effect",
            event.event_type,
            event.event_id,
        )
        return NO_CHANGE

    raise TypeError(f"Unknown provider event variant: {type(event).__name__}")
