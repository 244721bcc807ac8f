from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, JSON
from sqlalchemy.sql import func
from app.db.base import Base


class SubscriptionEvent(Base):
    """
    Append-only ledger of processed RevenueCat webhook events.

    event_id is the provider's idempotency key; the unique constraint on it is what
    guarantees a redelivered event is applied at most once. Rows are never updated.
    """

    __tablename__ = "subscription_events"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String, unique=True, nullable=False, index=True)
    event_type = Column(String, nullable=False)
    app_user_id = Column(String, nullable=False, index=True)
    # NULL when no local user was linked to app_user_id at processing time
    resolved_user_id = Column(
        String, ForeignKey("user_entitlements.user_id", ondelete="SET NULL"), nullable=True, index=True
    )

    product_id = Column(String, nullable=True)
    transaction_id = Column(String, nullable=True)
    original_transaction_id = Column(String, nullable=True)
    purchased_at = Column(DateTime(timezone=True), nullable=True)
    expiration_at = Column(DateTime(timezone=True), nullable=True)
    price = Column(Numeric(10, 2), nullable=True)
    currency = Column(String, nullable=True)

    raw_payload = Column(JSON, nullable=False)
    processed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
