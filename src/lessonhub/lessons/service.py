"""Lesson authoring and assignment creation."""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lessonhub.auth.service import list_students
from lessonhub.config import get_settings
from lessonhub.database import atomic
from lessonhub.db.models import (
    Assignment,
    AssignmentNotification,
    AssignmentStatus,
    Lesson,
    User,
    UserRole,
)
from lessonhub.errors import Forbidden, NotFound, ValidationError
from lessonhub.lessons.catalog import dump_config, validate_config
from lessonhub.lessons.schemas import LessonCreate, LessonUpdate

logger = structlog.get_logger()


async def get_lesson(db: AsyncSession, lesson_id: int) -> Lesson:
    lesson = await db.get(Lesson, lesson_id)
    if lesson is None:
        raise NotFound("Lesson not found.")
    return lesson


def ensure_lesson_owner(lesson: Lesson, user: User) -> None:
    """Teachers may only manage their own lessons. Admins may manage any."""
    if user.role == UserRole.ADMIN.value:
        return
    if lesson.teacher_id != user.id:
        raise Forbidden("You do not own this lesson.")


async def list_teacher_lessons(db: AsyncSession, teacher_id: int) -> list[Lesson]:
    result = await db.execute(
        select(Lesson).where(Lesson.teacher_id == teacher_id).order_by(Lesson.created_at.desc(), Lesson.id.desc())
    )
    return list(result.unique().scalars().all())


async def create_lesson(
    db: AsyncSession,
    teacher: User,
    data: LessonCreate,
    now: datetime,
) -> tuple[Lesson, list[Assignment]]:
    """Create a lesson and run its auto-assign mode in the same transaction."""
    async with atomic(db):
        lesson = Lesson(
            teacher_id=teacher.id,
            type=data.config.type,
            title=data.title,
            price=data.price,
            difficulty=data.difficulty,
            assignment_notification=data.assignment_notification.value,
            scheduled_assignment_date=data.scheduled_assignment_date,
            config=dump_config(data.config),
            created_at=now,
        )
        db.add(lesson)
        await db.flush()
        created = await auto_assign_lesson(db, lesson, now)

    logger.info("lesson_created", lesson_id=lesson.id, type=lesson.type, auto_assigned=len(created))
    return lesson, created


async def update_lesson(db: AsyncSession, lesson: Lesson, data: LessonUpdate, now: datetime) -> Lesson:
    async with atomic(db):
        if data.title is not None:
            lesson.title = data.title
        if data.price is not None:
            lesson.price = data.price
        if data.difficulty is not None:
            lesson.difficulty = data.difficulty
        if data.config is not None:
            payload = {**data.config, "type": lesson.type}
            lesson.config = dump_config(validate_config(payload))
        lesson.updated_at = now
    return lesson


async def delete_lesson(db: AsyncSession, lesson: Lesson) -> None:
    """Delete a lesson. Its assignments go with it; ledger rows stay."""
    async with atomic(db):
        await db.delete(lesson)
    logger.info("lesson_deleted", lesson_id=lesson.id)


async def _existing_student_ids(db: AsyncSession, lesson_id: int, student_ids: list[int]) -> set[int]:
    result = await db.execute(
        select(Assignment.student_id).where(
            Assignment.lesson_id == lesson_id,
            Assignment.student_id.in_(student_ids),
        )
    )
    return set(result.scalars().all())


async def create_assignments(
    db: AsyncSession,
    lesson: Lesson,
    students: list[User],
    *,
    deadline: datetime,
    start_date: datetime,
    now: datetime,
    notify_on_start_date: bool = False,
) -> list[Assignment]:
    """Create one PENDING assignment per student, skipping students who already have one."""
    if not students:
        return []
    existing = await _existing_student_ids(db, lesson.id, [s.id for s in students])
    created: list[Assignment] = []
    for student in students:
        if student.id in existing:
            continue
        assignment = Assignment(
            lesson_id=lesson.id,
            student_id=student.id,
            status=AssignmentStatus.PENDING.value,
            assigned_at=now,
            start_date=start_date,
            deadline=deadline,
            original_deadline=deadline,
            notify_on_start_date=notify_on_start_date,
        )
        assignment.lesson = lesson
        assignment.student = student
        db.add(assignment)
        created.append(assignment)
    await db.flush()
    return created


async def assign_lesson(
    db: AsyncSession,
    lesson: Lesson,
    student_ids: list[int],
    *,
    deadline: datetime,
    start_date: datetime | None,
    now: datetime,
) -> tuple[list[Assignment], int]:
    """Assign a lesson to chosen students. Returns (created, skipped_count)."""
    unique_ids = list(dict.fromkeys(student_ids))
    async with atomic(db):
        result = await db.execute(
            select(User).where(User.id.in_(unique_ids), User.role == UserRole.STUDENT.value)
        )
        students = list(result.scalars().all())
        if len(students) != len(unique_ids):
            found = {s.id for s in students}
            unknown = [sid for sid in unique_ids if sid not in found]
            raise ValidationError(f"Unknown students: {', '.join(str(s) for s in unknown)}")
        created = await create_assignments(
            db,
            lesson,
            students,
            deadline=deadline,
            start_date=start_date or now,
            now=now,
        )
    return created, len(unique_ids) - len(created)


async def auto_assign_lesson(db: AsyncSession, lesson: Lesson, now: datetime) -> list[Assignment]:
    """Assign a lesson to every student according to its notification mode.

    Deadline defaults to the auto-assign window after the start date. For
    ASSIGN_ON_DATE the start date is the scheduled date and the new-assignment
    email waits until then.
    """
    mode = AssignmentNotification(lesson.assignment_notification)
    if mode == AssignmentNotification.NOT_ASSIGNED:
        return []

    start_date = now
    if mode == AssignmentNotification.ASSIGN_ON_DATE and lesson.scheduled_assignment_date is not None:
        start_date = max(now, lesson.scheduled_assignment_date)
    deadline = start_date + timedelta(hours=get_settings().auto_assign_deadline_hours)

    students = await list_students(db)
    return await create_assignments(
        db,
        lesson,
        students,
        deadline=deadline,
        start_date=start_date,
        now=now,
        notify_on_start_date=mode == AssignmentNotification.ASSIGN_ON_DATE,
    )


def should_notify_on_create(lesson: Lesson) -> bool:
    return lesson.assignment_notification == AssignmentNotification.ASSIGN_AND_NOTIFY.value
