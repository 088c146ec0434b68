"""Scheduled notifier jobs.

Each job is safe to re-run: state is claimed in the database (flag cleared,
``reminder_sent_at`` stamped, status moved) and committed before any email
goes out, so a second run finds nothing left to do.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lessonhub.assignments.lifecycle import transition
from lessonhub.config import get_settings
from lessonhub.database import atomic
from lessonhub.db.models import Assignment, AssignmentStatus
from lessonhub.ledger import service as ledger
from lessonhub.notifications.service import AssignmentEmail, build_email, deliver_all

logger = structlog.get_logger()


async def _claim(db: AsyncSession, stmt) -> list[Assignment]:  # noqa: ANN001
    result = await db.execute(
        stmt.with_for_update(of=Assignment).execution_options(populate_existing=True)
    )
    return list(result.unique().scalars().all())


async def send_start_date_notifications(db: AsyncSession, now: datetime) -> int:
    """Send held-back new-assignment emails for assignments whose start date has come."""
    async with atomic(db):
        due = await _claim(db, select(Assignment).where(
            Assignment.notify_on_start_date.is_(True),
            Assignment.start_date <= now,
            Assignment.status == AssignmentStatus.PENDING.value,
        ))
        emails: list[AssignmentEmail] = []
        for assignment in due:
            assignment.notify_on_start_date = False
            emails.append(build_email("new_assignment", assignment))

    await deliver_all(emails)
    logger.info("start_date_notifications_sent", count=len(emails))
    return len(emails)


async def send_deadline_reminders(db: AsyncSession, now: datetime) -> int:
    """Remind students once about PENDING work due within the reminder window."""
    window_end = now + timedelta(hours=get_settings().reminder_window_hours)
    async with atomic(db):
        due = await _claim(db, select(Assignment).where(
            Assignment.status == AssignmentStatus.PENDING.value,
            Assignment.start_date <= now,
            Assignment.deadline > now,
            Assignment.deadline <= window_end,
            Assignment.reminder_sent_at.is_(None),
        ))
        emails: list[AssignmentEmail] = []
        for assignment in due:
            assignment.reminder_sent_at = now
            emails.append(build_email("deadline_reminder", assignment))

    await deliver_all(emails)
    logger.info("deadline_reminders_sent", count=len(emails))
    return len(emails)


async def fail_overdue_assignments(db: AsyncSession, now: datetime) -> int:
    """PENDING assignments past their deadline become FAILED."""
    async with atomic(db):
        overdue = await _claim(db, select(Assignment).where(
            Assignment.status == AssignmentStatus.PENDING.value,
            Assignment.deadline < now,
        ))
        emails: list[AssignmentEmail] = []
        for assignment in overdue:
            transition(assignment, AssignmentStatus.FAILED)
            emails.append(build_email("failed", assignment))

    await deliver_all(emails)
    logger.info("overdue_assignments_failed", count=len(emails))
    return len(emails)


async def audit_ledger(db: AsyncSession) -> int:
    """Count users whose total points disagree with the ledger. Read-only."""
    drift = await ledger.find_drift(db)
    if not drift:
        logger.info("ledger_audit_clean")
    return len(drift)


async def run_daily(db: AsyncSession, now: datetime) -> dict[str, int]:
    """Run every scheduled job once. Returns a count per job."""
    results = {
        "start_date_notifications": await send_start_date_notifications(db, now),
        "deadline_reminders": await send_deadline_reminders(db, now),
        "failed_overdue": await fail_overdue_assignments(db, now),
        "ledger_drift": await audit_ledger(db),
    }
    logger.info("daily_jobs_complete", **results)
    return results
