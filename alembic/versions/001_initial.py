"""Create entitlement, subscription ledger and affirmation view tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

Tables may already exist (app startup runs Base.metadata.create_all first), so each
create is guarded and safe to run on repeated deploys.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _has_table(name: str) -> bool:
    return sa.inspect(op.get_bind()).has_table(name)


def upgrade() -> None:
    if not _has_table("user_entitlements"):
        op.create_table(
            "user_entitlements",
            sa.Column("user_id", sa.String(), primary_key=True),
            sa.Column("provider_subscriber_id", sa.String(), nullable=True),
            sa.Column("tier", sa.String(), nullable=False, server_default="free"),
            sa.Column("product_id", sa.String(), nullable=True),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("daily_usage_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("usage_window_date", sa.Date(), nullable=True),
            sa.Column("timezone", sa.String(), nullable=False, server_default="UTC"),
            sa.Column("trial_ends_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        op.create_index(
            "ix_user_entitlements_provider_subscriber_id",
            "user_entitlements",
            ["provider_subscriber_id"],
            unique=True,
        )

    if not _has_table("subscription_events"):
        op.create_table(
            "subscription_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("event_id", sa.String(), nullable=False),
            sa.Column("event_type", sa.String(), nullable=False),
            sa.Column("app_user_id", sa.String(), nullable=False),
            sa.Column(
                "resolved_user_id",
                sa.String(),
                sa.ForeignKey("user_entitlements.user_id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("product_id", sa.String(), nullable=True),
            sa.Column("transaction_id", sa.String(), nullable=True),
            sa.Column("original_transaction_id", sa.String(), nullable=True),
            sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("expiration_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("price", sa.Numeric(10, 2), nullable=True),
            sa.Column("currency", sa.String(), nullable=True),
            sa.Column("raw_payload", sa.JSON(), nullable=False),
            sa.Column("processed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        # The unique index is the idempotency guarantee for webhook redelivery
        op.create_index("ix_subscription_events_event_id", "subscription_events", ["event_id"], unique=True)
        op.create_index("ix_subscription_events_app_user_id", "subscription_events", ["app_user_id"])
        op.create_index("ix_subscription_events_resolved_user_id", "subscription_events", ["resolved_user_id"])

    if not _has_table("affirmation_views"):
        op.create_table(
            "affirmation_views",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "user_id",
                sa.String(),
                sa.ForeignKey("user_entitlements.user_id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("affirmation_id", sa.String(), nullable=False),
            sa.Column("source", sa.String(), nullable=False),
            sa.Column("viewed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        op.create_index("ix_affirmation_views_user_id", "affirmation_views", ["user_id"])
        op.create_index("ix_affirmation_views_viewed_at", "affirmation_views", ["viewed_at"])


def downgrade() -> None:
    op.drop_table("affirmation_views")
    op.drop_table("subscription_events")
    op.drop_table("user_entitlements")
