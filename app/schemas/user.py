from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from app.utils.timezones import is_valid_timezone


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProfileResponse(_CamelModel):
    user_id: str
    subscription_status: str
    subscription_expires_at: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    timezone: str
    daily_affirmation_count: int
    daily_limit: int
    remaining_views: int
    can_view_more_affirmations: bool
    created_at: Optional[datetime] = None


class ProfileUpdate(_CamelModel):
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not is_valid_timezone(value):
            raise ValueError(f"Unknown timezone: {value}")
        return value


class StreakResponse(_CamelModel):
    current_streak: int
    longest_streak: int
    view_dates: List[str]


class AffirmationViewRequest(BaseModel):
    source: Literal["app", "widget", "notification"] = "app"


class AffirmationViewResponse(_CamelModel):
    affirmation_id: str
    allowed: bool
    remaining: int
