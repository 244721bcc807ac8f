from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.db.base import Base


class AffirmationView(Base):
    __tablename__ = "affirmation_views"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        String, ForeignKey("user_entitlements.user_id", ondelete="SET NULL"), nullable=True, index=True
    )  # NULL for anonymous views
    affirmation_id = Column(String, nullable=False)
    source = Column(String, nullable=False)  # 'app', 'widget', 'notification'
    viewed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
