"""Reward rounds: in-game postings to the ledger while an assignment is played.

A round locks the assignment, computes its reward and appends one ledger
entry, all in one transaction. An optional client idempotency key makes a
retried request return the original result instead of posting twice.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lessonhub.assignments.service import ensure_student_owner, get_assignment
from lessonhub.database import atomic
from lessonhub.db.models import Assignment, LessonType, PointReason, PointTransaction, User
from lessonhub.errors import NotFound
from lessonhub.lessons.catalog import LessonConfig, parse_lesson_config
from lessonhub.ledger import service as ledger
from lessonhub.submissions.base import RewardResult

logger = structlog.get_logger()


@dataclass
class RoundContext:
    db: AsyncSession
    assignment: Assignment
    config: LessonConfig
    now: datetime


@dataclass(frozen=True)
class Reward:
    points: int
    euros: Decimal
    note: str


def scope_idempotency_key(reason: PointReason, assignment_id: int, key: str | None) -> str | None:
    """Client keys are only unique per reason and assignment."""
    if not key:
        return None
    return f"{reason.value}:{assignment_id}:{key}"


async def _replay(db: AsyncSession, entry: PointTransaction, *, with_tap_count: bool) -> RewardResult:
    total = (await db.execute(select(User.total_points).where(User.id == entry.user_id))).scalar_one()
    tap_count = None
    if with_tap_count and entry.assignment_id is not None:
        tap_count = (await db.execute(
            select(Assignment.news_article_tap_count).where(Assignment.id == entry.assignment_id)
        )).scalar_one_or_none()
    logger.info("reward_replayed", assignment_id=entry.assignment_id, reason=entry.reason, ledger_id=entry.id)
    return RewardResult(
        points_delta=entry.points,
        euros_delta=Decimal(entry.amount_euro),
        total_points=int(total),
        tap_count=tap_count,
        replayed=True,
    )


async def run_reward_round(
    db: AsyncSession,
    *,
    assignment_id: int,
    student_id: int,
    lesson_type: LessonType,
    reason: PointReason,
    compute: Callable[[RoundContext], Awaitable[Reward]],
    now: datetime,
    idempotency_key: str | None = None,
) -> RewardResult:
    """Lock, compute, post. Replays return the original entry's deltas."""
    scoped_key = scope_idempotency_key(reason, assignment_id, idempotency_key)
    with_tap_count = lesson_type == LessonType.NEWS_ARTICLE
    try:
        async with atomic(db):
            assignment = await get_assignment(db, assignment_id, for_update=True)
            ensure_student_owner(assignment, student_id)
            if assignment.lesson.type != lesson_type.value:
                raise NotFound(f"{lesson_type.value} assignment not found.")

            if scoped_key is not None:
                existing = await ledger.get_by_idempotency_key(db, scoped_key)
                if existing is not None:
                    return await _replay(db, existing, with_tap_count=with_tap_count)

            config = parse_lesson_config(assignment.lesson)
            reward = await compute(RoundContext(db=db, assignment=assignment, config=config, now=now))
            await ledger.record(
                db,
                user_id=assignment.student_id,
                assignment_id=assignment.id,
                points=reward.points,
                amount_euro=reward.euros,
                reason=reason,
                note=reward.note,
                idempotency_key=scoped_key,
                now=now,
            )
            total_points = assignment.student.total_points
            tap_count = assignment.news_article_tap_count if with_tap_count else None
    except IntegrityError:
        # Lost a race against an identical retry: report the winner's result
        if scoped_key is None:
            raise
        existing = await ledger.get_by_idempotency_key(db, scoped_key)
        if existing is None:
            raise
        return await _replay(db, existing, with_tap_count=with_tap_count)

    return RewardResult(
        points_delta=reward.points,
        euros_delta=reward.euros,
        total_points=total_points,
        tap_count=tap_count,
    )
