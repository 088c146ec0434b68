"""Assignment reads and teacher-side lifecycle operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lessonhub.assignments.lifecycle import transition
from lessonhub.database import atomic
from lessonhub.db.models import Assignment, AssignmentStatus, PointReason, User, UserRole
from lessonhub.errors import Forbidden, NotFound, ValidationError
from lessonhub.gamification.badges import award_badges_for_student
from lessonhub.gamification.scoring import calculate_assignment_points
from lessonhub.ledger import service as ledger

logger = structlog.get_logger()


@dataclass
class GradeOutcome:
    assignment: Assignment
    points_awarded: int
    badges: list[str] = field(default_factory=list)


async def get_assignment(db: AsyncSession, assignment_id: int, *, for_update: bool = False) -> Assignment:
    """Load an assignment with its lesson and student.

    ``for_update`` takes a row lock on the assignment for the rest of the
    transaction and refreshes any stale copy in the session.
    """
    stmt = select(Assignment).where(Assignment.id == assignment_id)
    if for_update:
        stmt = stmt.with_for_update(of=Assignment).execution_options(populate_existing=True)
    result = await db.execute(stmt)
    assignment = result.unique().scalar_one_or_none()
    if assignment is None:
        raise NotFound("Assignment not found.")
    return assignment


def ensure_student_owner(assignment: Assignment, student_id: int) -> None:
    if assignment.student_id != student_id:
        raise Forbidden("This assignment belongs to another student.")


def ensure_lesson_teacher(assignment: Assignment, user: User) -> None:
    if user.role == UserRole.ADMIN.value:
        return
    if user.role != UserRole.TEACHER.value or assignment.lesson.teacher_id != user.id:
        raise Forbidden("Only the lesson's teacher can do this.")


async def list_for_student(db: AsyncSession, student_id: int, status: AssignmentStatus | None = None) -> list[Assignment]:
    stmt = select(Assignment).where(Assignment.student_id == student_id)
    if status is not None:
        stmt = stmt.where(Assignment.status == status.value)
    result = await db.execute(stmt.order_by(Assignment.deadline.asc(), Assignment.id.asc()))
    return list(result.unique().scalars().all())


async def grade_assignment(
    db: AsyncSession,
    assignment_id: int,
    teacher: User,
    score: float,
    teacher_comments: str | None,
    now: datetime,
) -> GradeOutcome:
    """COMPLETED -> GRADED.

    Score, grading points, and any badge bonuses are written in a single
    transaction. The graded email is the caller's job, after commit.
    """
    async with atomic(db):
        assignment = await get_assignment(db, assignment_id, for_update=True)
        ensure_lesson_teacher(assignment, teacher)
        transition(assignment, AssignmentStatus.GRADED)

        assignment.score = score
        assignment.teacher_comments = teacher_comments
        assignment.graded_at = now

        points = calculate_assignment_points(
            score=score,
            difficulty=assignment.lesson.difficulty,
            deadline=assignment.deadline,
            graded_at=now,
            assigned_at=assignment.assigned_at,
        )
        assignment.points_awarded = points
        await ledger.record(
            db,
            user_id=assignment.student_id,
            assignment_id=assignment.id,
            points=points,
            reason=PointReason.ASSIGNMENT_GRADED,
            note=f"Graded: {assignment.lesson.title}",
            now=now,
        )
        badges = await award_badges_for_student(db, assignment.student_id, assignment.id, score, now)

    logger.info(
        "assignment_graded",
        assignment_id=assignment.id,
        student_id=assignment.student_id,
        score=score,
        points=points,
        badges=[b.slug for b in badges],
    )
    return GradeOutcome(assignment=assignment, points_awarded=points, badges=[b.slug for b in badges])


async def fail_assignment(db: AsyncSession, assignment_id: int, teacher: User, now: datetime) -> Assignment:
    """PENDING -> FAILED by the lesson's teacher."""
    async with atomic(db):
        assignment = await get_assignment(db, assignment_id, for_update=True)
        ensure_lesson_teacher(assignment, teacher)
        transition(assignment, AssignmentStatus.FAILED)
    logger.info("assignment_failed", assignment_id=assignment.id, by="teacher", at=now.isoformat())
    return assignment


async def extend_deadline(
    db: AsyncSession,
    assignment_id: int,
    teacher: User,
    deadline: datetime,
    now: datetime,
) -> Assignment:
    """Move the deadline of a PENDING assignment. ``original_deadline`` is kept."""
    async with atomic(db):
        assignment = await get_assignment(db, assignment_id, for_update=True)
        ensure_lesson_teacher(assignment, teacher)
        if assignment.status != AssignmentStatus.PENDING.value:
            raise ValidationError("Only pending assignments can have their deadline changed.")
        if deadline <= now:
            raise ValidationError("The new deadline must be in the future.")
        if assignment.original_deadline is None:
            assignment.original_deadline = assignment.deadline
        assignment.deadline = deadline
        assignment.reminder_sent_at = None
    return assignment


async def get_for_manual_reminder(db: AsyncSession, assignment_id: int, teacher: User) -> Assignment:
    assignment = await get_assignment(db, assignment_id)
    ensure_lesson_teacher(assignment, teacher)
    if assignment.status != AssignmentStatus.PENDING.value:
        raise ValidationError("Reminders can only be sent for pending assignments.")
    return assignment
