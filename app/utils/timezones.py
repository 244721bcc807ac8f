"""
Time helpers shared by the quota gate and streak calculator.

All timestamps are handled as timezone-aware UTC datetimes. Calendar dates are
always taken in the user's configured zone, falling back to UTC.
"""
import logging
from datetime import date, datetime, timezone
from typing import Optional

import pytz

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (sqlite drops tzinfo) and convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_epoch_ms(value: Optional[float]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)


def is_valid_timezone(name: str) -> bool:
    return name in pytz.all_timezones_set


def resolve_timezone(name: Optional[str]):
    if name:
        try:
            return pytz.timezone(name)
        except pytz.UnknownTimeZoneError:
            logger.warning("[Time] Unknown timezone %r, falling back to UTC", name)
    return pytz.utc


def local_date(moment: datetime, tz_name: Optional[str]) -> date:
    return as_utc(moment).astimezone(resolve_timezone(tz_name)).date()


def local_today(tz_name: Optional[str], now: Optional[datetime] = None) -> date:
    return local_date(now or utcnow(), tz_name)
