"""Request/response models for lesson endpoints."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import Field, model_validator

from lessonhub.db.models import AssignmentNotification
from lessonhub.lessons.catalog import LessonConfig
from lessonhub.schemas import CamelModel, UTCDatetime


class LessonCreate(CamelModel):
    title: str = Field(min_length=1, max_length=256)
    price: Decimal = Field(default=Decimal("0"), ge=0)
    difficulty: int = Field(default=1, ge=1, le=5)
    assignment_notification: AssignmentNotification = AssignmentNotification.NOT_ASSIGNED
    scheduled_assignment_date: UTCDatetime | None = None
    config: LessonConfig

    @model_validator(mode="after")
    def _scheduled_date_present(self) -> LessonCreate:
        if (
            self.assignment_notification == AssignmentNotification.ASSIGN_ON_DATE
            and self.scheduled_assignment_date is None
        ):
            raise ValueError("scheduledAssignmentDate is required for ASSIGN_ON_DATE")
        return self


class LessonUpdate(CamelModel):
    title: str | None = Field(default=None, min_length=1, max_length=256)
    price: Decimal | None = Field(default=None, ge=0)
    difficulty: int | None = Field(default=None, ge=1, le=5)
    config: dict[str, Any] | None = None


class LessonResponse(CamelModel):
    id: int
    teacher_id: int
    type: str
    title: str
    price: float
    difficulty: int
    assignment_notification: str
    scheduled_assignment_date: UTCDatetime | None = None
    config: dict[str, Any]


class AssignLessonRequest(CamelModel):
    student_ids: list[int] = Field(min_length=1)
    deadline: UTCDatetime
    start_date: UTCDatetime | None = None
    notify: bool = False


class AssignLessonResponse(CamelModel):
    created: int
    skipped: int
    assignment_ids: list[int]


class CreateLessonResponse(CamelModel):
    lesson: LessonResponse
    assigned: int
