"""
Daily affirmation quota.

The counter lives on UserEntitlement and is reset lazily when the user's local
date moves past usage_window_date. Both the rollover and the consumption are
single conditional UPDATE statements, so concurrent requests for the same user
can never admit more views than the ceiling allows.

Store failures fail closed: they raise TransientError and the content is not
served.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy import case, or_, update
from sqlalchemy.orm import Session

from app.core.plan_limits import (
    PREMIUM_TIERS,
    TIER_FREE,
    TIER_PAID,
    UNLIMITED,
    get_daily_ceiling,
    is_premium,
)
from app.db.session import store_operation
from app.models.user_entitlement import UserEntitlement
from app.services.entitlement_store import get_or_create_entitlement
from app.utils.timezones import local_today, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    remaining: int  # -1 = unlimited


@dataclass(frozen=True)
class QuotaSnapshot:
    tier: str
    used_today: int
    ceiling: int
    remaining: int  # -1 = unlimited

    @property
    def can_view_more(self) -> bool:
        return self.used_today < self.ceiling


def _ceiling_expression():
    return case(
        (UserEntitlement.tier.in_(PREMIUM_TIERS), get_daily_ceiling(TIER_PAID)),
        else_=get_daily_ceiling(TIER_FREE),
    )


def _reported_remaining(tier: str, used: int) -> int:
    if is_premium(tier):
        return UNLIMITED
    return max(0, get_daily_ceiling(tier) - used)


class QuotaGate:
    def __init__(self, db: Session):
        self.db = db

    def _today(self, entitlement: UserEntitlement, now: Optional[datetime]) -> date:
        return local_today(entitlement.timezone, now)

    def check_and_consume(self, user_id: str, now: Optional[datetime] = None) -> QuotaDecision:
        """Consume one view if the user is under today's ceiling."""
        with store_operation(self.db, "Quota store"):
            entitlement = get_or_create_entitlement(self.db, user_id)
            today = self._today(entitlement, now)

            # Lazy rollover, forward only. A window later than today (the user moved
            # west across the date line) keeps counting until today catches up.
            self.db.execute(
                update(UserEntitlement)
                .where(
                    UserEntitlement.user_id == user_id,
                    or_(
                        UserEntitlement.usage_window_date.is_(None),
                        UserEntitlement.usage_window_date < today,
                    ),
                )
                .values(daily_usage_count=0, usage_window_date=today, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )

            row = self.db.execute(
                update(UserEntitlement)
                .where(
                    UserEntitlement.user_id == user_id,
                    UserEntitlement.usage_window_date >= today,
                    UserEntitlement.daily_usage_count < _ceiling_expression(),
                )
                .values(daily_usage_count=UserEntitlement.daily_usage_count + 1, updated_at=utcnow())
                .returning(UserEntitlement.daily_usage_count, UserEntitlement.tier)
                .execution_options(synchronize_session=False)
            ).first()
            self.db.commit()

        if row is None:
            logger.info("[Quota] User %s reached the daily ceiling for %s", user_id, today)
            return QuotaDecision(allowed=False, remaining=0)

        used, tier = row
        return QuotaDecision(allowed=True, remaining=_reported_remaining(tier, used))

    def peek(self, user_id: str, now: Optional[datetime] = None) -> QuotaSnapshot:
        """Current usage without consuming or resetting anything."""
        with store_operation(self.db, "Quota store"):
            entitlement = get_or_create_entitlement(self.db, user_id)
            today = self._today(entitlement, now)

        window = entitlement.usage_window_date
        used = entitlement.daily_usage_count if window is not None and window >= today else 0
        ceiling = get_daily_ceiling(entitlement.tier)
        return QuotaSnapshot(
            tier=entitlement.tier,
            used_today=used,
            ceiling=ceiling,
            remaining=0 if used >= ceiling else _reported_remaining(entitlement.tier, used),
        )
