"""Badge catalog and award evaluation.

Badges are evaluated inside the grading transaction. Each newly earned badge
inserts a ``user_badges`` row and posts its bonus through the ledger.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lessonhub.db.models import (
    Assignment,
    AssignmentStatus,
    BadgeDefinition,
    PointReason,
    UserBadge,
)
from lessonhub.ledger import service as ledger

logger = structlog.get_logger()

HIGH_SCORE = 9
PERFECT_SCORE = 10


@dataclass(frozen=True)
class BadgeContext:
    total_points: int
    graded_count: int
    high_score_count: int
    perfect_score_count: int
    last_score: float


@dataclass(frozen=True)
class BadgeRule:
    slug: str
    name: str
    description: str
    bonus_points: int
    check: Callable[[BadgeContext], bool]


BADGE_RULES: list[BadgeRule] = [
    BadgeRule(
        slug="first-steps",
        name="First Steps",
        description="Complete your first graded lesson.",
        bonus_points=20,
        check=lambda ctx: ctx.graded_count >= 1,
    ),
    BadgeRule(
        slug="tenacious-learner",
        name="Tenacious Learner",
        description="Earn grades on ten lessons.",
        bonus_points=40,
        check=lambda ctx: ctx.graded_count >= 10,
    ),
    BadgeRule(
        slug="high-flier",
        name="High Flier",
        description="Score 9 or higher on five graded lessons.",
        bonus_points=35,
        check=lambda ctx: ctx.high_score_count >= 5,
    ),
    BadgeRule(
        slug="perfect-10",
        name="Perfect 10",
        description="Achieve a perfect score on any lesson.",
        bonus_points=25,
        check=lambda ctx: ctx.last_score == PERFECT_SCORE or ctx.perfect_score_count >= 1,
    ),
    BadgeRule(
        slug="points-hoarder",
        name="Points Hoarder",
        description="Accumulate 500 total points.",
        bonus_points=50,
        check=lambda ctx: ctx.total_points >= 500,
    ),
]


async def seed_badges(db: AsyncSession) -> int:
    """Upsert the badge catalog. Returns number of badges seeded."""
    existing = {b.slug: b for b in (await db.execute(select(BadgeDefinition))).scalars().all()}
    for order, rule in enumerate(BADGE_RULES, start=1):
        badge = existing.get(rule.slug)
        if badge is None:
            db.add(BadgeDefinition(
                slug=rule.slug,
                name=rule.name,
                description=rule.description,
                points_bonus=rule.bonus_points,
                sort_order=order,
            ))
        else:
            badge.name = rule.name
            badge.description = rule.description
            badge.points_bonus = rule.bonus_points
            badge.sort_order = order
    await db.commit()
    logger.info("badges_seeded", count=len(BADGE_RULES))
    return len(BADGE_RULES)


async def _count_graded(db: AsyncSession, student_id: int, min_score: float | None = None) -> int:
    stmt = select(func.count(Assignment.id)).where(
        Assignment.student_id == student_id,
        Assignment.status == AssignmentStatus.GRADED.value,
    )
    if min_score is not None:
        stmt = stmt.where(Assignment.score >= min_score)
    return int((await db.execute(stmt)).scalar_one())


async def build_context(db: AsyncSession, student_id: int, total_points: int, last_score: float) -> BadgeContext:
    return BadgeContext(
        total_points=total_points,
        graded_count=await _count_graded(db, student_id),
        high_score_count=await _count_graded(db, student_id, HIGH_SCORE),
        perfect_score_count=await _count_graded(db, student_id, PERFECT_SCORE),
        last_score=last_score,
    )


async def award_badges_for_student(
    db: AsyncSession,
    student_id: int,
    assignment_id: int,
    score: float,
    now: datetime,
) -> list[BadgeDefinition]:
    """Award every badge the student now qualifies for. Does not commit.

    The student row lock taken here serializes concurrent gradings for the
    same student, so the earned-badge read below cannot go stale.
    Rules see the running total, bonuses from earlier rules included.
    """
    student = await ledger.lock_user(db, student_id)
    context = await build_context(db, student_id, student.total_points, score)

    catalog = (await db.execute(
        select(BadgeDefinition).where(BadgeDefinition.is_active.is_(True))
    )).scalars().all()
    by_slug = {badge.slug: badge for badge in catalog}
    earned_ids = set((await db.execute(
        select(UserBadge.badge_id).where(UserBadge.user_id == student_id)
    )).scalars().all())

    awarded: list[BadgeDefinition] = []
    for rule in BADGE_RULES:
        badge = by_slug.get(rule.slug)
        if badge is None or badge.id in earned_ids or not rule.check(context):
            continue
        db.add(UserBadge(user_id=student_id, badge_id=badge.id, earned_at=now))
        await db.flush()

        if badge.points_bonus:
            await ledger.record(
                db,
                user_id=student_id,
                assignment_id=assignment_id,
                points=badge.points_bonus,
                reason=PointReason.BADGE_BONUS,
                note=f"Badge unlocked: {badge.name}",
                now=now,
            )
            context = replace(context, total_points=student.total_points)
        awarded.append(badge)
        logger.info("badge_awarded", user_id=student_id, badge=badge.slug, bonus=badge.points_bonus)
    return awarded
