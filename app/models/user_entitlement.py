"""
Per-user entitlement record: plan tier, expiry, provider link and the daily
affirmation counter used by the quota gate.
"""
from sqlalchemy import Column, Integer, String, DateTime, Date
from sqlalchemy.sql import func
from app.db.base import Base
from app.core.plan_limits import TIER_FREE


class UserEntitlement(Base):
    __tablename__ = "user_entitlements"

    user_id = Column(String, primary_key=True)  # Supabase Auth user ID (JWT sub)
    provider_subscriber_id = Column(String, unique=True, index=True, nullable=True)  # RevenueCat app_user_id
    tier = Column(String, nullable=False, default=TIER_FREE)
    product_id = Column(String, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)  # NULL = does not expire
    daily_usage_count = Column(Integer, nullable=False, default=0)
    usage_window_date = Column(Date, nullable=True)  # Local calendar date daily_usage_count counts against
    timezone = Column(String, nullable=False, default="UTC")
    trial_ends_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<UserEntitlement(user_id={self.user_id}, tier={self.tier}, used_today={self.daily_usage_count})>"
