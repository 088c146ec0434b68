"""Reward ledger: the only code path that changes ``User.total_points``.

Every posting appends a ``PointTransaction`` and bumps the denormalized total
inside the caller's transaction, with the user row locked. Rows are never
updated or deleted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lessonhub.db.models import (
    Assignment,
    AssignmentStatus,
    Lesson,
    PointReason,
    PointTransaction,
    User,
)
from lessonhub.errors import NotFound

logger = structlog.get_logger()


@dataclass(frozen=True)
class LedgerDrift:
    user_id: int
    total_points: int
    ledger_points: int

    @property
    def difference(self) -> int:
        return self.total_points - self.ledger_points


async def lock_user(db: AsyncSession, user_id: int) -> User:
    """Load the user row with ``SELECT ... FOR UPDATE`` and fresh attributes."""
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    user = result.unique().scalar_one_or_none()
    if user is None:
        raise NotFound("User not found.")
    return user


async def record(
    db: AsyncSession,
    *,
    user_id: int,
    points: int,
    reason: PointReason,
    amount_euro: Decimal | int = 0,
    assignment_id: int | None = None,
    note: str | None = None,
    idempotency_key: str | None = None,
    now: datetime | None = None,
) -> PointTransaction:
    """Append a ledger entry and move ``total_points`` by the same amount.

    Does not commit. A duplicate ``idempotency_key`` surfaces as an
    ``IntegrityError`` at flush time and must roll the whole transaction back.
    """
    user = await lock_user(db, user_id)

    entry = PointTransaction(
        user_id=user_id,
        assignment_id=assignment_id,
        points=points,
        amount_euro=Decimal(amount_euro),
        reason=reason.value,
        note=note,
        idempotency_key=idempotency_key,
        created_at=now or datetime.now(timezone.utc),
    )
    db.add(entry)
    user.total_points = (user.total_points or 0) + points
    await db.flush()

    logger.info(
        "ledger_entry_recorded",
        user_id=user_id,
        assignment_id=assignment_id,
        reason=reason.value,
        points=points,
        amount_euro=str(entry.amount_euro),
        total_points=user.total_points,
    )
    return entry


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_by_idempotency_key(db: AsyncSession, idempotency_key: str) -> PointTransaction | None:
    result = await db.execute(
        select(PointTransaction).where(PointTransaction.idempotency_key == idempotency_key)
    )
    return result.scalar_one_or_none()


async def sum_points(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(PointTransaction.points), 0)).where(PointTransaction.user_id == user_id)
    )
    return int(result.scalar_one())


async def euro_balance(db: AsyncSession, user_id: int) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(PointTransaction.amount_euro), 0)).where(PointTransaction.user_id == user_id)
    )
    return Decimal(str(result.scalar_one()))


async def list_for_user(
    db: AsyncSession,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
) -> list[PointTransaction]:
    result = await db.execute(
        select(PointTransaction)
        .where(PointTransaction.user_id == user_id)
        .order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def exists_for_assignment(
    db: AsyncSession,
    assignment_id: int,
    reason: PointReason,
    user_id: int | None = None,
) -> bool:
    stmt = select(PointTransaction.id).where(
        PointTransaction.assignment_id == assignment_id,
        PointTransaction.reason == reason.value,
    )
    if user_id is not None:
        stmt = stmt.where(PointTransaction.user_id == user_id)
    result = await db.execute(stmt.limit(1))
    return result.scalar_one_or_none() is not None


async def graded_value(db: AsyncSession, user_id: int) -> Decimal:
    """Sum of lesson prices the student earned through positively graded work."""
    result = await db.execute(
        select(func.coalesce(func.sum(Lesson.price), 0))
        .select_from(Assignment)
        .join(Lesson, Lesson.id == Assignment.lesson_id)
        .where(
            Assignment.student_id == user_id,
            Assignment.status == AssignmentStatus.GRADED.value,
            Assignment.score > 0,
        )
    )
    return Decimal(str(result.scalar_one()))


async def available_savings(db: AsyncSession, user_id: int) -> Decimal:
    """Graded lesson value plus the euro balance of the ledger, never negative."""
    savings = await graded_value(db, user_id) + await euro_balance(db, user_id)
    return max(savings, Decimal("0"))


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


async def check_user_totals(db: AsyncSession, user_id: int) -> LedgerDrift | None:
    """Compare one user's total with the ledger. Returns None when they agree."""
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found.")
    ledger_points = await sum_points(db, user_id)
    if ledger_points == user.total_points:
        return None
    return LedgerDrift(user_id=user_id, total_points=user.total_points, ledger_points=ledger_points)


async def find_drift(db: AsyncSession) -> list[LedgerDrift]:
    """Report every user whose ``total_points`` disagrees with the ledger.

    Read-only: drift is logged for investigation, never corrected here.
    """
    ledger_sums = (
        select(
            PointTransaction.user_id.label("user_id"),
            func.sum(PointTransaction.points).label("ledger_points"),
        )
        .group_by(PointTransaction.user_id)
        .subquery()
    )
    ledger_points = func.coalesce(ledger_sums.c.ledger_points, 0)
    result = await db.execute(
        select(User.id, User.total_points, ledger_points)
        .outerjoin(ledger_sums, ledger_sums.c.user_id == User.id)
        .where(User.total_points != ledger_points)
        .order_by(User.id)
    )
    drift = [
        LedgerDrift(user_id=row[0], total_points=int(row[1]), ledger_points=int(row[2]))
        for row in result.all()
    ]
    for item in drift:
        logger.warning(
            "ledger_drift_detected",
            user_id=item.user_id,
            total_points=item.total_points,
            ledger_points=item.ledger_points,
        )
    return drift
