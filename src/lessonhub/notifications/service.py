"""Assignment email notifications.

Emails go out only after the core transaction has committed. Every attempt
is recorded in ``notification_log`` from its own session, and delivery
failures are logged rather than raised, so they never undo the operation
that triggered them.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from lessonhub.config import get_settings
from lessonhub.database import get_session_factory
from lessonhub.db.models import Assignment, NotificationLog
from lessonhub.email.service import get_email_service
from lessonhub.redis_client import get_redis

logger = structlog.get_logger()

STATUS_SENT = "sent"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


@dataclass(frozen=True)
class AssignmentEmail:
    template: str
    recipient: str
    user_id: int | None
    assignment_id: int | None
    context: dict[str, str | None] = field(default_factory=dict)


def _format_deadline(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%d %b %Y, %H:%M UTC")


def _assignment_url(assignment: Assignment) -> str:
    return f"{get_settings().frontend_base_url}/assignments/{assignment.id}"


def build_email(template: str, assignment: Assignment, **extra: str | None) -> AssignmentEmail:
    """Build the template context for an assignment email.

    The assignment must have ``lesson`` and ``student`` loaded.
    """
    student = assignment.student
    lesson = assignment.lesson
    context: dict[str, str | None] = {
        "student_name": student.name,
        "lesson_title": lesson.title,
    }
    if template in ("new_assignment", "deadline_reminder", "manual_reminder"):
        context["deadline"] = _format_deadline(assignment.deadline)
        context["assignment_url"] = _assignment_url(assignment)
    elif template == "graded":
        context["score"] = f"{assignment.score:g}" if assignment.score is not None else "-"
        context["teacher_comments"] = assignment.teacher_comments
        context["assignment_url"] = _assignment_url(assignment)
    elif template == "failed":
        context["marketplace_url"] = f"{get_settings().frontend_base_url}/marketplace"
    context.update(extra)
    return AssignmentEmail(
        template=template,
        recipient=student.email,
        user_id=student.id,
        assignment_id=assignment.id,
        context=context,
    )


async def _record(email: AssignmentEmail, status: str, error: str | None) -> None:
    try:
        async with get_session_factory()() as db:
            db.add(NotificationLog(
                user_id=email.user_id,
                assignment_id=email.assignment_id,
                template=email.template,
                recipient=email.recipient,
                status=status,
                error=error,
                created_at=datetime.now(timezone.utc),
            ))
            await db.commit()
    except Exception:
        logger.exception("notification_log_failed", template=email.template, assignment_id=email.assignment_id)


async def deliver(email: AssignmentEmail) -> str:
    """Send one email and record the outcome. Never raises."""
    if not email.recipient:
        await _record(email, STATUS_SKIPPED, "no recipient")
        return STATUS_SKIPPED

    try:
        redis = get_redis()
    except RuntimeError:
        redis = None

    error: str | None = None
    try:
        sent = await get_email_service(redis).send_template(email.recipient, email.template, email.context)
    except Exception as exc:
        logger.exception("assignment_email_failed", template=email.template, assignment_id=email.assignment_id)
        sent = False
        error = str(exc)

    status = STATUS_SENT if sent else STATUS_FAILED
    if not sent and error is None:
        error = "provider rejected or rate limited"
    await _record(email, status, error)
    return status


async def deliver_all(emails: Iterable[AssignmentEmail]) -> dict[str, int]:
    """Send a batch sequentially; returns a count per status."""
    counts = {STATUS_SENT: 0, STATUS_FAILED: 0, STATUS_SKIPPED: 0}
    for email in emails:
        counts[await deliver(email)] += 1
    return counts
