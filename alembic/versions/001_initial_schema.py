"""Initial schema: users, subscriptions, payments, reputation, quizzes, chat.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            phone_number VARCHAR(15) UNIQUE NOT NULL,
            email VARCHAR(255) UNIQUE,
            first_name VARCHAR(100),
            last_name VARCHAR(100),
            current_class VARCHAR(10) NOT NULL DEFAULT 'S1',
            is_banned BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Subscriptions (one row per user) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS subscriptions (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            status VARCHAR(16) NOT NULL DEFAULT 'trial',
            plan VARCHAR(16),
            trial_end_at TIMESTAMPTZ,
            period_start_at TIMESTAMPTZ,
            period_end_at TIMESTAMPTZ,
            cancelled_at TIMESTAMPTZ,
            plan_ever_purchased BOOLEAN NOT NULL DEFAULT false,
            last_trial_reminder_on DATE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            version INTEGER NOT NULL DEFAULT 1,
            CONSTRAINT ck_subscriptions_status
                CHECK (status IN ('trial', 'active', 'expired', 'cancelled'))
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_subscriptions_status_period_end
        ON subscriptions(status, period_end_at)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_subscriptions_status_trial_end
        ON subscriptions(status, trial_end_at)
    """)

    # --- Payments ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS payments (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            transaction_id VARCHAR(64) UNIQUE NOT NULL,
            gateway_ref VARCHAR(128),
            plan_id VARCHAR(16) NOT NULL,
            amount INTEGER NOT NULL,
            currency VARCHAR(3) NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            failure_reason VARCHAR(256),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            completed_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_payments_user_id
        ON payments(user_id, created_at DESC)
    """)

    # --- Reputation ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_reputations (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            total_points INTEGER NOT NULL DEFAULT 0,
            weekly_points INTEGER NOT NULL DEFAULT 0,
            monthly_points INTEGER NOT NULL DEFAULT 0,
            current_level INTEGER NOT NULL DEFAULT 1,
            rank VARCHAR(16) NOT NULL DEFAULT 'learner',
            streak_days INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_activity_date TIMESTAMPTZ,
            week_window_start TIMESTAMPTZ,
            month_window_start TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            version INTEGER NOT NULL DEFAULT 1,
            CONSTRAINT ck_user_reputations_total_points_nonnegative CHECK (total_points >= 0)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_reputations_total_points
        ON user_reputations(total_points DESC)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_badges (
            id BIGSERIAL PRIMARY KEY,
            reputation_id BIGINT NOT NULL REFERENCES user_reputations(id) ON DELETE CASCADE,
            slug VARCHAR(64) NOT NULL,
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT user_badges_reputation_id_slug_key UNIQUE (reputation_id, slug)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            id BIGSERIAL PRIMARY KEY,
            reputation_id BIGINT NOT NULL REFERENCES user_reputations(id) ON DELETE CASCADE,
            slug VARCHAR(64) NOT NULL,
            unlocked_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT user_achievements_reputation_id_slug_key UNIQUE (reputation_id, slug)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS points_ledger (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            amount INTEGER NOT NULL,
            reason VARCHAR(256),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_points_ledger_user_id
        ON points_ledger(user_id, created_at DESC)
    """)

    # --- Quiz attempts ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS quiz_attempts (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            quiz_id VARCHAR(64) NOT NULL,
            quiz_title VARCHAR(255) NOT NULL,
            score INTEGER NOT NULL CHECK (score BETWEEN 0 AND 100),
            passing_score INTEGER NOT NULL DEFAULT 50,
            status VARCHAR(16) NOT NULL DEFAULT 'completed',
            completed_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_quiz_attempts_user_status
        ON quiz_attempts(user_id, status)
    """)

    # --- AI tutor chat ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS chat_sessions (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            subject VARCHAR(64),
            title VARCHAR(255) NOT NULL DEFAULT 'New chat',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_chat_sessions_user_id
        ON chat_sessions(user_id, updated_at DESC)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS chat_messages (
            id BIGSERIAL PRIMARY KEY,
            session_id BIGINT NOT NULL REFERENCES chat_sessions(id) ON DELETE CASCADE,
            role VARCHAR(16) NOT NULL,
            content TEXT NOT NULL,
            tokens_used INTEGER NOT NULL DEFAULT 0,
            model_id VARCHAR(64),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_chat_messages_session_id
        ON chat_messages(session_id, created_at)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS chat_messages CASCADE")
    op.execute("DROP TABLE IF EXISTS chat_sessions CASCADE")
    op.execute("DROP TABLE IF EXISTS quiz_attempts CASCADE")
    op.execute("DROP TABLE IF EXISTS points_ledger CASCADE")
    op.execute("DROP TABLE IF EXISTS user_achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS user_badges CASCADE")
    op.execute("DROP TABLE IF EXISTS user_reputations CASCADE")
    op.execute("DROP TABLE IF EXISTS payments CASCADE")
    op.execute("DROP TABLE IF EXISTS subscriptions CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
