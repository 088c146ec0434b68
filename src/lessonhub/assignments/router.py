"""Assignment endpoints: submissions, reward rounds and teacher actions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from lessonhub.assignments import service
from lessonhub.assignments.schemas import AssignmentResponse, DeadlineUpdate, GradeRequest, GradeResponse
from lessonhub.auth.dependencies import CurrentUser, require_any_user, require_student, require_teacher
from lessonhub.database import get_session
from lessonhub.db.models import Assignment, AssignmentStatus, UserRole
from lessonhub.notifications.service import build_email, deliver_all
from lessonhub.submissions import games
from lessonhub.submissions.base import RewardResult
from lessonhub.submissions.dispatcher import submit_assignment
from lessonhub.submissions.schemas import ArkaningRound, FlipperRound, NewsArticleTap, RewardResponse

router = APIRouter(prefix="/api/v1/assignments", tags=["Assignments"])


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _reward_response(result: RewardResult) -> RewardResponse:
    return RewardResponse(
        points_delta=result.points_delta,
        euros_delta=float(result.euros_delta),
        total_points=result.total_points,
        tap_count=result.tap_count,
        replayed=result.replayed,
    )


def _queue(background: BackgroundTasks, template: str, assignment: Assignment, **extra: str | None) -> None:
    background.add_task(deliver_all, [build_email(template, assignment, **extra)])


@router.get("", response_model=list[AssignmentResponse])
async def list_my_assignments(
    status: AssignmentStatus | None = None,
    current: CurrentUser = Depends(require_student),
    db: AsyncSession = Depends(get_session),
) -> list[Assignment]:
    return await service.list_for_student(db, current.id, status)


@router.get("/{assignment_id}", response_model=AssignmentResponse)
async def get_assignment(
    assignment_id: int,
    current: CurrentUser = Depends(require_any_user),
    db: AsyncSession = Depends(get_session),
) -> Assignment:
    """The owning student or the lesson's teacher may read an assignment."""
    assignment = await service.get_assignment(db, assignment_id)
    if current.role == UserRole.STUDENT.value:
        service.ensure_student_owner(assignment, current.id)
    else:
        service.ensure_lesson_teacher(assignment, current.user)
    return assignment


@router.post("/{assignment_id}/submit", response_model=AssignmentResponse)
async def submit(
    assignment_id: int,
    payload: dict[str, Any] | None = Body(default=None),
    current: CurrentUser = Depends(require_student),
    db: AsyncSession = Depends(get_session),
) -> Assignment:
    """Submit work. The body shape depends on the lesson type."""
    return await submit_assignment(db, assignment_id, current.id, payload, _now())


@router.post("/{assignment_id}/arkaning", response_model=RewardResponse, response_model_exclude_none=True)
async def arkaning_round(
    assignment_id: int,
    body: ArkaningRound,
    idempotency_key: str | None = Header(default=None, max_length=128),
    current: CurrentUser = Depends(require_student),
    db: AsyncSession = Depends(get_session),
) -> RewardResponse:
    result = await games.play_arkaning_round(
        db, assignment_id, current.id, body.outcome, _now(), idempotency_key=idempotency_key
    )
    return _reward_response(result)


@router.post("/{assignment_id}/flipper", response_model=RewardResponse, response_model_exclude_none=True)
async def flipper_round(
    assignment_id: int,
    body: FlipperRound,
    idempotency_key: str | None = Header(default=None, max_length=128),
    current: CurrentUser = Depends(require_student),
    db: AsyncSession = Depends(get_session),
) -> RewardResponse:
    result = await games.play_flipper_round(
        db, assignment_id, current.id, body.attempts, body.word, _now(), idempotency_key=idempotency_key
    )
    return _reward_response(result)


@router.post("/{assignment_id}/news-article", response_model=RewardResponse, response_model_exclude_none=True)
async def news_article_tap(
    assignment_id: int,
    body: NewsArticleTap | None = None,
    idempotency_key: str | None = Header(default=None, max_length=128),
    current: CurrentUser = Depends(require_student),
    db: AsyncSession = Depends(get_session),
) -> RewardResponse:
    word = body.word if body is not None else None
    result = await games.tap_news_article_word(
        db, assignment_id, current.id, word, _now(), idempotency_key=idempotency_key
    )
    return _reward_response(result)


@router.patch("/{assignment_id}/grade", response_model=GradeResponse)
async def grade(
    assignment_id: int,
    body: GradeRequest,
    background: BackgroundTasks,
    current: CurrentUser = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> GradeResponse:
    """Grade a completed assignment. The student is emailed after commit."""
    outcome = await service.grade_assignment(
        db, assignment_id, current.user, body.score, body.teacher_comments, _now()
    )
    _queue(background, "graded", outcome.assignment)
    return GradeResponse(
        assignment=AssignmentResponse.model_validate(outcome.assignment),
        points_awarded=outcome.points_awarded,
        badges=outcome.badges,
    )


@router.post("/{assignment_id}/fail", response_model=AssignmentResponse)
async def fail(
    assignment_id: int,
    background: BackgroundTasks,
    current: CurrentUser = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> Assignment:
    assignment = await service.fail_assignment(db, assignment_id, current.user, _now())
    _queue(background, "failed", assignment)
    return assignment


@router.post("/{assignment_id}/remind", status_code=202)
async def remind(
    assignment_id: int,
    background: BackgroundTasks,
    current: CurrentUser = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    assignment = await service.get_for_manual_reminder(db, assignment_id, current.user)
    _queue(background, "manual_reminder", assignment, teacher_name=current.user.name)
    return {"queued": True}


@router.patch("/{assignment_id}/deadline", response_model=AssignmentResponse)
async def change_deadline(
    assignment_id: int,
    body: DeadlineUpdate,
    current: CurrentUser = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> Assignment:
    return await service.extend_deadline(db, assignment_id, current.user, body.deadline, _now())
