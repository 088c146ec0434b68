"""Points, badges and leaderboard endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lessonhub.auth.dependencies import CurrentUser, require_any_user
from lessonhub.config import get_settings
from lessonhub.database import get_session
from lessonhub.db.models import BadgeDefinition, User, UserBadge, UserRole
from lessonhub.gamification.schemas import (
    EarnedBadgeResponse,
    LeaderboardEntry,
    LeaderboardResponse,
    NextBadgeResponse,
    PointsSummaryResponse,
    TransactionResponse,
)
from lessonhub.ledger import service as ledger

router = APIRouter(prefix="/api/v1", tags=["Gamification"])


@router.get("/points/me", response_model=PointsSummaryResponse)
async def my_points(
    limit: int = Query(default=20, ge=1, le=100),
    current: CurrentUser = Depends(require_any_user),
    db: AsyncSession = Depends(get_session),
) -> PointsSummaryResponse:
    """Total points, savings, recent ledger activity and badges."""
    transactions = await ledger.list_for_user(db, current.id, limit=limit)

    earned = (await db.execute(
        select(UserBadge).where(UserBadge.user_id == current.id).order_by(UserBadge.earned_at)
    )).unique().scalars().all()
    earned_ids = {ub.badge_id for ub in earned}

    # Next badge = first active catalog entry not yet earned
    catalog = (await db.execute(
        select(BadgeDefinition)
        .where(BadgeDefinition.is_active.is_(True))
        .order_by(BadgeDefinition.sort_order)
    )).scalars().all()
    next_badge = next((b for b in catalog if b.id not in earned_ids), None)

    return PointsSummaryResponse(
        total_points=current.user.total_points,
        savings=float(await ledger.available_savings(db, current.id)),
        euro_balance=float(await ledger.euro_balance(db, current.id)),
        transactions=[
            TransactionResponse(
                id=t.id,
                assignment_id=t.assignment_id,
                points=t.points,
                amount_euro=float(t.amount_euro),
                reason=t.reason,
                note=t.note,
                created_at=t.created_at,
            )
            for t in transactions
        ],
        badges=[
            EarnedBadgeResponse(
                slug=ub.badge.slug,
                name=ub.badge.name,
                description=ub.badge.description,
                earned_at=ub.earned_at,
            )
            for ub in earned
        ],
        next_badge=NextBadgeResponse.model_validate(next_badge) if next_badge else None,
    )


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    _current: CurrentUser = Depends(require_any_user),
    db: AsyncSession = Depends(get_session),
) -> LeaderboardResponse:
    """Students ranked by total points; ties keep the older account first."""
    result = await db.execute(
        select(User)
        .where(User.role == UserRole.STUDENT.value, User.is_suspended.is_(False))
        .order_by(User.total_points.desc(), User.id.asc())
        .limit(get_settings().leaderboard_size)
    )
    return LeaderboardResponse(entries=[
        LeaderboardEntry(rank=i, user_id=u.id, name=u.name, total_points=u.total_points)
        for i, u in enumerate(result.scalars().all(), start=1)
    ])
