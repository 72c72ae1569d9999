"""ORM models.

Column names follow the snake_case schema created by the Alembic migration in
``alembic/versions``. Only portable column types are used so the same models
run against PostgreSQL in production and SQLite in the test suite.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tutorug.db.base import Base
from tutorug.db.types import BigIntPK, UTCDateTime, utcnow


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """A student account, identified by a Ugandan phone number."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    phone_number: Mapped[str] = mapped_column(String(15), unique=True, nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    current_class: Mapped[str] = mapped_column(String(10), nullable=False, default="S1")
    is_banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    subscription: Mapped[Subscription | None] = relationship(
        "Subscription", back_populates="user", uselist=False, lazy="selectin"
    )

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or f"Student {self.id}"


# ---------------------------------------------------------------------------
# Subscriptions & payments
# ---------------------------------------------------------------------------


class Subscription(Base):
    """Trial / paid access window, one row per user.

    ``version`` is an optimistic-lock counter; a concurrent write raises
    ``StaleDataError`` on flush.
    """

    __tablename__ = "subscriptions"
    __table_args__ = (
        Index("ix_subscriptions_status_period_end", "status", "period_end_at"),
        Index("ix_subscriptions_status_trial_end", "status", "trial_end_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="trial", server_default="trial")
    plan: Mapped[str | None] = mapped_column(String(16), nullable=True)
    trial_end_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    period_start_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    period_end_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    # Months bought since period_start_at; the end is always derived from the start.
    period_months: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    plan_ever_purchased: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    last_trial_reminder_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_renewal_reminder_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}  # noqa: RUF012

    user: Mapped[User] = relationship("User", back_populates="subscription", lazy="selectin")


class Payment(Base):
    """A subscription charge created with the payment gateway."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    transaction_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    gateway_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)
    plan_id: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", server_default="pending")
    failure_reason: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


# ---------------------------------------------------------------------------
# Reputation
# ---------------------------------------------------------------------------


class UserReputation(Base):
    """Denormalized reputation summary, one row per user, created lazily."""

    __tablename__ = "user_reputations"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0", index=True)
    weekly_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    monthly_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    current_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    rank: Mapped[str] = mapped_column(String(16), nullable=False, default="learner", server_default="learner")
    streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_activity_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    week_window_start: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    month_window_start: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}  # noqa: RUF012

    badges: Mapped[list[UserBadge]] = relationship(
        "UserBadge", lazy="selectin", cascade="all, delete-orphan", order_by="UserBadge.id"
    )
    achievements: Mapped[list[UserAchievement]] = relationship(
        "UserAchievement", lazy="selectin", cascade="all, delete-orphan", order_by="UserAchievement.id"
    )

    @property
    def badges_earned(self) -> list[str]:
        return [b.slug for b in self.badges]

    @property
    def achievements_unlocked(self) -> list[str]:
        return [a.slug for a in self.achievements]


class UserBadge(Base):
    """Badges earned. UNIQUE(reputation_id, slug) prevents duplicates."""

    __tablename__ = "user_badges"
    __table_args__ = (UniqueConstraint("reputation_id", "slug", name="user_badges_reputation_id_slug_key"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    reputation_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("user_reputations.id", ondelete="CASCADE"), nullable=False
    )
    slug: Mapped[str] = mapped_column(String(64), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class UserAchievement(Base):
    """Achievements unlocked. UNIQUE(reputation_id, slug) prevents duplicates."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("reputation_id", "slug", name="user_achievements_reputation_id_slug_key"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    reputation_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("user_reputations.id", ondelete="CASCADE"), nullable=False
    )
    slug: Mapped[str] = mapped_column(String(64), nullable=False)
    unlocked_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class PointsLedger(Base):
    """Immutable log of every applied points award."""

    __tablename__ = "points_ledger"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


# ---------------------------------------------------------------------------
# Learning activity
# ---------------------------------------------------------------------------


class QuizAttempt(Base):
    """A scored quiz attempt, counted by the achievement check."""

    __tablename__ = "quiz_attempts"
    __table_args__ = (Index("ix_quiz_attempts_user_status", "user_id", "status"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    quiz_id: Mapped[str] = mapped_column(String(64), nullable=False)
    quiz_title: Mapped[str] = mapped_column(String(255), nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    passing_score: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="completed")
    completed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class ChatSession(Base):
    """An AI-tutor conversation owned by one user."""

    __tablename__ = "chat_sessions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    subject: Mapped[str | None] = mapped_column(String(64), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="New chat")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)


class ChatMessage(Base):
    """A single message in a chat session."""

    __tablename__ = "chat_messages"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    model_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
