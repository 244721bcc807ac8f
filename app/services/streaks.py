"""
Engagement streaks derived from the affirmation view log. Read-only.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from app.models.affirmation_view import AffirmationView
from app.services.entitlement_store import get_entitlement
from app.utils.timezones import local_date, local_today, utcnow


@dataclass(frozen=True)
class StreakStats:
    current_streak: int = 0
    longest_streak: int = 0
    view_dates: List[date] = field(default_factory=list)


def compute_streak(view_dates: Iterable[date], today: date) -> StreakStats:
    """
    current_streak counts consecutive days back from the newest view, provided that
    view is today or yesterday. longest_streak is the longest run anywhere, and is
    never shorter than the current run.
    """
    dates = sorted(set(view_dates), reverse=True)
    if not dates:
        return StreakStats()

    current = 0
    if (today - dates[0]).days in (0, 1):
        current = 1
        for newer, older in zip(dates, dates[1:]):
            if (newer - older).days != 1:
                break
            current += 1

    longest = 1
    run = 1
    for newer, older in zip(dates, dates[1:]):
        if (newer - older).days == 1:
            run += 1
            longest = max(longest, run)
        else:
            run = 1

    return StreakStats(
        current_streak=current,
        longest_streak=max(longest, current),
        view_dates=dates,
    )


class StreakCalculator:
    def __init__(self, db: Session):
        self.db = db

    def view_dates(self, user_id: str, tz_name: Optional[str]) -> List[date]:
        rows = (
            self.db.query(AffirmationView.viewed_at)
            .filter(AffirmationView.user_id == user_id)
            .all()
        )
        return sorted({local_date(viewed_at, tz_name) for (viewed_at,) in rows}, reverse=True)

    def compute(self, user_id: str, now: Optional[datetime] = None) -> StreakStats:
        entitlement = get_entitlement(self.db, user_id)
        tz_name = entitlement.timezone if entitlement else None
        today = local_today(tz_name, now)
        return compute_streak(self.view_dates(user_id, tz_name), today)


def record_view(db: Session, user_id: Optional[str], affirmation_id: str, source: str) -> AffirmationView:
    view = AffirmationView(
        user_id=user_id,
        affirmation_id=affirmation_id,
        source=source,
        viewed_at=utcnow(),
    )
    db.add(view)
    db.commit()
    db.refresh(view)
    return view
