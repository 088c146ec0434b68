"""Lesson authoring endpoints (teachers)."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lessonhub.auth.dependencies import CurrentUser, require_any_user, require_teacher
from lessonhub.database import get_session
from lessonhub.db.models import Assignment, Lesson, UserRole
from lessonhub.errors import NotFound
from lessonhub.lessons import service
from lessonhub.lessons.schemas import (
    AssignLessonRequest,
    AssignLessonResponse,
    CreateLessonResponse,
    LessonCreate,
    LessonResponse,
    LessonUpdate,
)
from lessonhub.notifications.service import build_email, deliver_all

router = APIRouter(prefix="/api/v1/lessons", tags=["Lessons"])


def _queue_new_assignment_emails(background: BackgroundTasks, assignments: list[Assignment]) -> None:
    if assignments:
        background.add_task(deliver_all, [build_email("new_assignment", a) for a in assignments])


async def _student_can_view(db: AsyncSession, lesson: Lesson, student_id: int) -> bool:
    result = await db.execute(
        select(Assignment.id).where(Assignment.lesson_id == lesson.id, Assignment.student_id == student_id)
    )
    return result.scalar_one_or_none() is not None


@router.post("", response_model=CreateLessonResponse, status_code=201)
async def create_lesson(
    body: LessonCreate,
    background: BackgroundTasks,
    current: CurrentUser = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> CreateLessonResponse:
    """Create a lesson; auto-assign it according to its notification mode."""
    lesson, created = await service.create_lesson(db, current.user, body, datetime.now(timezone.utc))
    if service.should_notify_on_create(lesson):
        _queue_new_assignment_emails(background, created)
    return CreateLessonResponse(lesson=LessonResponse.model_validate(lesson), assigned=len(created))


@router.get("", response_model=list[LessonResponse])
async def list_my_lessons(
    current: CurrentUser = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> list[Lesson]:
    """Lessons authored by the caller."""
    return await service.list_teacher_lessons(db, current.id)


@router.get("/{lesson_id}", response_model=LessonResponse)
async def get_lesson(
    lesson_id: int,
    current: CurrentUser = Depends(require_any_user),
    db: AsyncSession = Depends(get_session),
) -> Lesson:
    """Owner teachers, admins, and students holding an assignment may read a lesson."""
    lesson = await service.get_lesson(db, lesson_id)
    if current.role == UserRole.STUDENT.value:
        if not await _student_can_view(db, lesson, current.id):
            raise NotFound("Lesson not found.")
    else:
        service.ensure_lesson_owner(lesson, current.user)
    return lesson


@router.patch("/{lesson_id}", response_model=LessonResponse)
async def update_lesson(
    lesson_id: int,
    body: LessonUpdate,
    current: CurrentUser = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> Lesson:
    lesson = await service.get_lesson(db, lesson_id)
    service.ensure_lesson_owner(lesson, current.user)
    return await service.update_lesson(db, lesson, body, datetime.now(timezone.utc))


@router.delete("/{lesson_id}", status_code=204)
async def delete_lesson(
    lesson_id: int,
    current: CurrentUser = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> None:
    lesson = await service.get_lesson(db, lesson_id)
    service.ensure_lesson_owner(lesson, current.user)
    await service.delete_lesson(db, lesson)


@router.post("/{lesson_id}/assign", response_model=AssignLessonResponse)
async def assign_lesson(
    lesson_id: int,
    body: AssignLessonRequest,
    background: BackgroundTasks,
    current: CurrentUser = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> AssignLessonResponse:
    """Assign to chosen students; students who already have the lesson are skipped."""
    lesson = await service.get_lesson(db, lesson_id)
    service.ensure_lesson_owner(lesson, current.user)
    created, skipped = await service.assign_lesson(
        db,
        lesson,
        body.student_ids,
        deadline=body.deadline,
        start_date=body.start_date,
        now=datetime.now(timezone.utc),
    )
    if body.notify:
        _queue_new_assignment_emails(background, created)
    return AssignLessonResponse(
        created=len(created),
        skipped=skipped,
        assignment_ids=[a.id for a in created],
    )
