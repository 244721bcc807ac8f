"""
RevenueCat webhook ingestion.

verify secret/signature -> validate -> dedupe -> resolve user -> state machine ->
persist ledger row and entitlement in one transaction -> invalidate cache.

Only configuration and signature problems are errors (the provider retries those).
Unmatched users, unrecognized types and redeliveries complete successfully so the
provider stops retrying.
"""
import logging
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import BadRequestError, UnauthorizedError
from app.db.session import store_operation
from app.schemas.subscription import WebhookPayload
from app.services import entitlement_store, event_ledger
from app.services.entitlement_cache import EntitlementCache, invalidate_subscription_cache
from app.services.entitlement_state import lifetime_matcher, next_entitlement
from app.services.provider_events import parse_event
from app.services.signature import verify_signature

logger = logging.getLogger(__name__)


class IngestOutcome(str, Enum):
    APPLIED = "applied"  # Ledgered and the user's entitlement was mutated
    LEDGERED = "ledgered"  # Ledgered only (no linked user, or the event has no effect)
    DUPLICATE = "duplicate"  # Event id already processed


class WebhookIngestor:
    def __init__(self, db: Session, settings: Settings, cache: EntitlementCache):
        self.db = db
        self.settings = settings
        self.cache = cache
        self._is_lifetime_product = lifetime_matcher(settings.lifetime_product_pattern)

    def authenticate(self, payload: Mapping[str, Any], signature: Optional[str]) -> None:
        secret = self.settings.revenuecat_webhook_secret
        if not secret:
            if self.settings.webhook_test_mode and not self.settings.is_production:
                logger.warning("[RevenueCat webhook] WEBHOOK_TEST_MODE on: signature not verified")
                return
            logger.error("[RevenueCat webhook] REVENUECAT_WEBHOOK_SECRET is not configured")
            raise UnauthorizedError("Webhook secret not configured")

        if not verify_signature(payload, signature, secret):
            logger.warning("[RevenueCat webhook] Rejected delivery with invalid signature")
            raise UnauthorizedError("Invalid webhook signature")

    def handle(self, payload: Mapping[str, Any], signature: Optional[str]) -> IngestOutcome:
        self.authenticate(payload, signature)

        try:
            validated = WebhookPayload.model_validate(payload)
        except ValidationError as e:
            raise BadRequestError(f"Invalid webhook payload: {e.errors()[0].get('msg', 'invalid')}")

        with store_operation(self.db, "Subscription store"):
            return self._process(validated, dict(payload))

    def _process(self, validated: WebhookPayload, raw_payload: dict) -> IngestOutcome:
        event = validated.event

        if event_ledger.has_processed(self.db, event.id):
            logger.info("[RevenueCat webhook] %s %s already processed, skipping", event.type, event.id)
            return IngestOutcome.DUPLICATE

        provider_event = parse_event(event)
        entitlement = entitlement_store.find_by_subscriber(self.db, event.app_user_id)
        resolved_user_id = entitlement.user_id if entitlement else None

        try:
            event_ledger.record(self.db, event, resolved_user_id, raw_payload)
        except event_ledger.DuplicateEventError:
            logger.info("[RevenueCat webhook] %s lost the race to a concurrent delivery", event.id)
            return IngestOutcome.DUPLICATE

        mutated = False
        if entitlement is None:
            logger.info(
                "[RevenueCat webhook] %s %s: no user linked to subscriber %s, ledgered only",
                event.type,
                event.id,
                event.app_user_id,
            )
        else:
            change = next_entitlement(entitlement.tier, provider_event, self._is_lifetime_product)
            mutated = entitlement_store.apply_change(entitlement, change)

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info("[RevenueCat webhook] %s committed concurrently, skipping", event.id)
            return IngestOutcome.DUPLICATE

        if not mutated:
            return IngestOutcome.LEDGERED

        logger.info(
            "[RevenueCat webhook] %s %s applied to user %s: tier=%s expires_at=%s",
            event.type,
            event.id,
            resolved_user_id,
            entitlement.tier,
            entitlement.expires_at,
        )
        # Fire-and-forget: the entitlement row is committed, a stale entry expires on its own
        invalidate_subscription_cache(self.cache, resolved_user_id)
        return IngestOutcome.APPLIED
