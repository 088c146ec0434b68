"""Request/response models for assignment endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from lessonhub.schemas import CamelModel, UTCDatetime


class LessonSummary(CamelModel):
    id: int
    type: str
    title: str
    price: float
    difficulty: int


class AssignmentResponse(CamelModel):
    id: int
    lesson_id: int
    student_id: int
    status: str
    assigned_at: datetime
    start_date: datetime
    deadline: datetime
    original_deadline: datetime | None = None
    answers: Any | None = None
    student_notes: str | None = None
    score: float | None = None
    teacher_comments: str | None = None
    points_awarded: int
    extra_points: int
    submitted_at: datetime | None = None
    graded_at: datetime | None = None
    news_article_tap_count: int
    composer_extra_tries: int
    lesson: LessonSummary


class GradeRequest(CamelModel):
    score: float = Field(ge=-1, le=10)
    teacher_comments: str | None = Field(default=None, max_length=5000)


class GradeResponse(CamelModel):
    assignment: AssignmentResponse
    points_awarded: int
    badges: list[str]


class DeadlineUpdate(CamelModel):
    deadline: UTCDatetime
