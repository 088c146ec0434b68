"""ORM models for users, lessons, assignments and the reward ledger."""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lessonhub.db.base import Base, BigIntPK, JSONType, UTCDateTime, utcnow


class UserRole(str, enum.Enum):
    STUDENT = "STUDENT"
    TEACHER = "TEACHER"
    ADMIN = "ADMIN"


class LessonType(str, enum.Enum):
    STANDARD = "STANDARD"
    MULTI_CHOICE = "MULTI_CHOICE"
    FLASHCARD = "FLASHCARD"
    COMPOSER = "COMPOSER"
    FLIPPER = "FLIPPER"
    NEWS_ARTICLE = "NEWS_ARTICLE"
    ARKANING = "ARKANING"
    LEARNING_SESSION = "LEARNING_SESSION"
    LYRIC = "LYRIC"


class AssignmentNotification(str, enum.Enum):
    NOT_ASSIGNED = "NOT_ASSIGNED"
    ASSIGN_WITHOUT_NOTIFICATION = "ASSIGN_WITHOUT_NOTIFICATION"
    ASSIGN_ON_DATE = "ASSIGN_ON_DATE"
    ASSIGN_AND_NOTIFY = "ASSIGN_AND_NOTIFY"


class AssignmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    GRADED = "GRADED"
    FAILED = "FAILED"


class PointReason(str, enum.Enum):
    ASSIGNMENT_GRADED = "ASSIGNMENT_GRADED"
    ARKANING_GAME = "ARKANING_GAME"
    FLIPPER_MATCH = "FLIPPER_MATCH"
    NEWS_ARTICLE_TAP = "NEWS_ARTICLE_TAP"
    MARKETPLACE_PURCHASE = "MARKETPLACE_PURCHASE"
    BADGE_BONUS = "BADGE_BONUS"
    MANUAL_ADJUSTMENT = "MANUAL_ADJUSTMENT"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Students, teachers and admins. Credentials live in the auth service."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=UserRole.STUDENT.value)
    total_points: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    is_suspended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, server_default=func.now())


# ---------------------------------------------------------------------------
# Lessons
# ---------------------------------------------------------------------------


class Lesson(Base):
    """A teacher-authored lesson. ``config`` holds the type-specific payload."""

    __tablename__ = "lessons"
    __table_args__ = (Index("idx_lessons_teacher", "teacher_id"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    teacher_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"), server_default="0")
    difficulty: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    assignment_notification: Mapped[str] = mapped_column(
        String(32), nullable=False, default=AssignmentNotification.NOT_ASSIGNED.value
    )
    scheduled_assignment_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    config: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    teacher: Mapped[User] = relationship("User", lazy="joined")
    assignments: Mapped[list[Assignment]] = relationship(
        "Assignment",
        back_populates="lesson",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------


class Assignment(Base):
    """One lesson given to one student. Reclaim resets the row in place."""

    __tablename__ = "assignments"
    __table_args__ = (
        UniqueConstraint("lesson_id", "student_id", name="uq_assignments_lesson_student"),
        Index("idx_assignments_student_status", "student_id", "status"),
        Index("idx_assignments_status_deadline", "status", "deadline"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    lesson_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False)
    student_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=AssignmentStatus.PENDING.value)
    assigned_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    start_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    deadline: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    original_deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    answers: Mapped[Any | None] = mapped_column(JSONType, nullable=True)
    student_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    teacher_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    extra_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    submitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    graded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    reminder_sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    notify_on_start_date: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    news_article_tap_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    composer_extra_tries: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    lesson: Mapped[Lesson] = relationship("Lesson", back_populates="assignments", lazy="joined")
    student: Mapped[User] = relationship("User", lazy="joined")


class NewsArticleWordTap(Base):
    """First-tap tracking per (assignment, normalized word)."""

    __tablename__ = "news_article_word_taps"
    __table_args__ = (
        UniqueConstraint("assignment_id", "normalized_word", name="uq_news_taps_assignment_word"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    assignment_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False
    )
    normalized_word: Mapped[str] = mapped_column(String(128), nullable=False)
    tap_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    first_tapped_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    last_tapped_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class LyricLessonAttempt(Base):
    """One playthrough of a lyric lesson."""

    __tablename__ = "lyric_lesson_attempts"
    __table_args__ = (Index("idx_lyric_attempts_lesson_student", "lesson_id", "student_id"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    lesson_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False)
    student_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    assignment_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("assignments.id", ondelete="SET NULL"), nullable=True
    )
    score_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    time_taken_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    answers: Mapped[Any | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


# ---------------------------------------------------------------------------
# Reward ledger
# ---------------------------------------------------------------------------


class PointTransaction(Base):
    """Append-only points/euro ledger. Rows are never updated or deleted."""

    __tablename__ = "point_transactions"
    __table_args__ = (
        Index("idx_point_tx_user_created", "user_id", "created_at"),
        Index("idx_point_tx_assignment_reason", "assignment_id", "reason"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    assignment_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("assignments.id", ondelete="SET NULL"), nullable=True
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_euro: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=Decimal("0"))
    reason: Mapped[str] = mapped_column(String(32), nullable=False)
    note: Mapped[str | None] = mapped_column(String(256), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(256), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------


class BadgeDefinition(Base):
    """Badge catalog, seeded on startup."""

    __tablename__ = "badge_definitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    points_bonus: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")


class UserBadge(Base):
    """Badges earned by users. UNIQUE(user_id, badge_id) prevents duplicates."""

    __tablename__ = "user_badges"
    __table_args__ = (UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    badge_id: Mapped[int] = mapped_column(Integer, ForeignKey("badge_definitions.id"), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    badge: Mapped[BadgeDefinition] = relationship("BadgeDefinition", lazy="joined")


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationLog(Base):
    """Outcome of every email the service attempted to send."""

    __tablename__ = "notification_log"
    __table_args__ = (Index("idx_notification_log_assignment", "assignment_id", "template"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    assignment_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("assignments.id", ondelete="SET NULL"), nullable=True
    )
    template: Mapped[str] = mapped_column(String(64), nullable=False)
    recipient: Mapped[str] = mapped_column(String(320), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
