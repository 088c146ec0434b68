"""Marketplace reclaim: buy back a failed or lapsed assignment with savings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from lessonhub.assignments.lifecycle import is_reclaimable, reset_for_reclaim
from lessonhub.assignments.service import get_assignment
from lessonhub.database import atomic
from lessonhub.db.models import Assignment, AssignmentStatus, PointReason, PointTransaction
from lessonhub.errors import AlreadyPurchased, InsufficientSavings, NotEligible, NotFound
from lessonhub.ledger import service as ledger

logger = structlog.get_logger()


@dataclass(frozen=True)
class MarketplaceListing:
    savings: Decimal
    assignments: list[Assignment]


def purchase_idempotency_key(assignment_id: int) -> str:
    return f"marketplace:{assignment_id}"


async def list_reclaimable(db: AsyncSession, student_id: int, now: datetime) -> MarketplaceListing:
    """Failed or past-due assignments the student has not bought back yet."""
    purchased = select(PointTransaction.assignment_id).where(
        PointTransaction.user_id == student_id,
        PointTransaction.reason == PointReason.MARKETPLACE_PURCHASE.value,
        PointTransaction.assignment_id.is_not(None),
    )
    result = await db.execute(
        select(Assignment)
        .where(
            Assignment.student_id == student_id,
            or_(
                Assignment.status == AssignmentStatus.FAILED.value,
                and_(Assignment.status == AssignmentStatus.PENDING.value, Assignment.deadline <= now),
            ),
            Assignment.id.not_in(purchased),
        )
        .order_by(Assignment.deadline.desc(), Assignment.id.desc())
    )
    return MarketplaceListing(
        savings=await ledger.available_savings(db, student_id),
        assignments=list(result.unique().scalars().all()),
    )


async def purchase(db: AsyncSession, assignment_id: int, student_id: int, now: datetime) -> Assignment:
    """Reset an eligible assignment to PENDING and charge its price to savings.

    Checks run in order: ownership, previous purchase, eligibility, savings.
    A reclaimed assignment is PENDING again, so the purchase check has to
    come before eligibility. The student row is locked before savings are
    read; purchases of different assignments only share that lock.
    """
    async with atomic(db):
        assignment = await get_assignment(db, assignment_id, for_update=True)
        if assignment.student_id != student_id:
            raise NotFound("Assignment not found.")
        await ledger.lock_user(db, student_id)
        if await ledger.exists_for_assignment(db, assignment.id, PointReason.MARKETPLACE_PURCHASE, user_id=student_id):
            raise AlreadyPurchased("This lesson was already purchased.")
        if not is_reclaimable(assignment, now):
            raise NotEligible("Only failed or past-due lessons are available in the marketplace.")

        price = Decimal(assignment.lesson.price or 0)
        if price > await ledger.available_savings(db, student_id):
            raise InsufficientSavings

        await ledger.record(
            db,
            user_id=student_id,
            assignment_id=assignment.id,
            points=0,
            amount_euro=-price,
            reason=PointReason.MARKETPLACE_PURCHASE,
            note=f"Marketplace purchase: {assignment.lesson.title}",
            idempotency_key=purchase_idempotency_key(assignment.id),
            now=now,
        )
        reset_for_reclaim(assignment)

    logger.info("marketplace_purchase", assignment_id=assignment.id, student_id=student_id, price=str(price))
    return assignment
