"""Subscription period accounting and renewal reminders.

Revision ID: 002_subscription_periods
Revises: 001_initial_schema
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "002_subscription_periods"
down_revision: str | None = "001_initial_schema"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        ALTER TABLE subscriptions
            ADD COLUMN IF NOT EXISTS period_months INTEGER NOT NULL DEFAULT 0,
            ADD COLUMN IF NOT EXISTS last_renewal_reminder_on DATE
    """)
    # Existing paid periods: count whole months between start and end.
    op.execute("""
        UPDATE subscriptions
        SET period_months = GREATEST(
            1,
            (EXTRACT(YEAR FROM AGE(period_end_at, period_start_at)) * 12
             + EXTRACT(MONTH FROM AGE(period_end_at, period_start_at)))::INTEGER
        )
        WHERE period_start_at IS NOT NULL AND period_end_at IS NOT NULL
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_subscriptions_renewal_reminder
        ON subscriptions(status, period_end_at, last_renewal_reminder_on)
    """)


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS ix_subscriptions_renewal_reminder")
    op.execute("""
        ALTER TABLE subscriptions
            DROP COLUMN IF EXISTS last_renewal_reminder_on,
            DROP COLUMN IF EXISTS period_months
    """)
