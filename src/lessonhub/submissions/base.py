"""Shared types for submission handlers."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, TypeVar

import pydantic
from sqlalchemy.ext.asyncio import AsyncSession

from lessonhub.assignments.lifecycle import transition
from lessonhub.db.models import Assignment, AssignmentStatus
from lessonhub.errors import ValidationError
from lessonhub.lessons.catalog import LessonConfig

PayloadT = TypeVar("PayloadT", bound=pydantic.BaseModel)


@dataclass
class SubmissionContext:
    db: AsyncSession
    assignment: Assignment
    config: LessonConfig
    student_id: int
    now: datetime


@dataclass(frozen=True)
class SubmissionHandler:
    """How one lesson type turns a payload into an assignment transition.

    ``enforce_window`` makes the dispatcher require PENDING and an open
    deadline before ``apply`` runs. Handlers that opt out check it themselves.
    """

    payload_model: type[pydantic.BaseModel]
    apply: Callable[[SubmissionContext, Any], Awaitable[None]]
    enforce_window: bool = True


@dataclass(frozen=True)
class RewardResult:
    points_delta: int
    euros_delta: Decimal
    total_points: int
    tap_count: int | None = None
    replayed: bool = False


def parse_payload(model: type[PayloadT], payload: Any) -> PayloadT:
    """Validate a raw JSON body against a payload model (400 on failure)."""
    try:
        return model.model_validate(payload if payload is not None else {})
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        message = f"{location}: {first['msg']}" if location else first["msg"]
        raise ValidationError(message) from e


def complete(ctx: SubmissionContext, *, answers: Any = None, score: float | None = None) -> None:
    """PENDING -> COMPLETED with the submitted work attached."""
    transition(ctx.assignment, AssignmentStatus.COMPLETED)
    ctx.assignment.submitted_at = ctx.now
    if answers is not None:
        ctx.assignment.answers = answers
    if score is not None:
        ctx.assignment.score = score
