"""Route ``POST /assignments/{id}/submit`` to the handler for the lesson type."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from lessonhub.assignments.lifecycle import ensure_submittable
from lessonhub.assignments.service import ensure_student_owner, get_assignment
from lessonhub.database import atomic
from lessonhub.db.models import Assignment, LessonType
from lessonhub.lessons.catalog import parse_lesson_config
from lessonhub.submissions import handlers
from lessonhub.submissions.base import SubmissionContext, SubmissionHandler, parse_payload
from lessonhub.submissions.schemas import (
    ArkaningSubmission,
    ComposerSubmission,
    FlashcardSubmission,
    FlipperSubmission,
    LearningSessionSubmission,
    LyricSubmission,
    MultiChoiceSubmission,
    NewsArticleSubmission,
    StandardSubmission,
)

logger = structlog.get_logger()

HANDLERS: dict[LessonType, SubmissionHandler] = {
    LessonType.STANDARD: SubmissionHandler(StandardSubmission, handlers.submit_standard),
    LessonType.MULTI_CHOICE: SubmissionHandler(MultiChoiceSubmission, handlers.submit_multi_choice),
    LessonType.FLASHCARD: SubmissionHandler(FlashcardSubmission, handlers.submit_flashcard),
    LessonType.COMPOSER: SubmissionHandler(ComposerSubmission, handlers.submit_composer),
    LessonType.FLIPPER: SubmissionHandler(FlipperSubmission, handlers.submit_flipper),
    LessonType.NEWS_ARTICLE: SubmissionHandler(NewsArticleSubmission, handlers.submit_news_article),
    LessonType.ARKANING: SubmissionHandler(ArkaningSubmission, handlers.submit_arkaning),
    LessonType.LEARNING_SESSION: SubmissionHandler(LearningSessionSubmission, handlers.submit_learning_session),
    LessonType.LYRIC: SubmissionHandler(LyricSubmission, handlers.submit_lyric, enforce_window=False),
}

_missing = set(LessonType) - set(HANDLERS)
if _missing:
    raise RuntimeError(f"No submission handler for: {', '.join(sorted(t.value for t in _missing))}")


async def submit_assignment(
    db: AsyncSession,
    assignment_id: int,
    student_id: int,
    payload: Any,
    now: datetime,
) -> Assignment:
    """Validate and apply a submission in one transaction."""
    async with atomic(db):
        assignment = await get_assignment(db, assignment_id, for_update=True)
        ensure_student_owner(assignment, student_id)
        config = parse_lesson_config(assignment.lesson)
        handler = HANDLERS[LessonType(assignment.lesson.type)]
        if handler.enforce_window:
            ensure_submittable(assignment, now)
        body = parse_payload(handler.payload_model, payload)
        ctx = SubmissionContext(db=db, assignment=assignment, config=config, student_id=student_id, now=now)
        await handler.apply(ctx, body)

    logger.info(
        "assignment_submitted",
        assignment_id=assignment.id,
        student_id=student_id,
        lesson_type=assignment.lesson.type,
        status=assignment.status,
    )
    return assignment
