"""Admin endpoints: impersonation, manual ledger adjustments, ledger audit."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lessonhub.admin.schemas import (
    AdjustmentResponse,
    DriftEntry,
    ImpersonationResponse,
    LedgerAuditResponse,
    PointsAdjustment,
)
from lessonhub.auth.dependencies import CurrentUser, require_admin
from lessonhub.auth.jwt import create_access_token
from lessonhub.auth.service import get_user_by_id
from lessonhub.config import get_settings
from lessonhub.database import atomic, get_session
from lessonhub.db.models import PointReason
from lessonhub.errors import NotFound, ValidationError
from lessonhub.ledger import service as ledger

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


@router.post("/impersonate/{user_id}", response_model=ImpersonationResponse)
async def impersonate(
    user_id: int,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> ImpersonationResponse:
    """Mint a short-lived token that acts as ``user_id`` on the admin's behalf."""
    target = await get_user_by_id(db, user_id)
    if target is None:
        raise NotFound("User not found.")
    if target.id == admin.id:
        raise ValidationError("You are already signed in as this user.")

    lifetime = get_settings().jwt_impersonation_token_expire_minutes
    token = create_access_token(target.id, target.role, acting_user_id=admin.id, expire_minutes=lifetime)
    logger.info("impersonation_started", admin_id=admin.id, target_id=target.id)
    return ImpersonationResponse(
        access_token=token,
        expires_in=lifetime * 60,
        user_id=target.id,
        real_user_id=admin.id,
    )


@router.post("/users/{user_id}/points", response_model=AdjustmentResponse, status_code=201)
async def adjust_points(
    user_id: int,
    body: PointsAdjustment,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> AdjustmentResponse:
    """Post a correcting ledger entry. Ledger rows are never edited in place."""
    async with atomic(db):
        entry = await ledger.record(
            db,
            user_id=user_id,
            points=body.points,
            amount_euro=body.amount_euro,
            reason=PointReason.MANUAL_ADJUSTMENT,
            note=body.note,
            now=datetime.now(timezone.utc),
        )
        user = await ledger.lock_user(db, user_id)
    logger.info("manual_adjustment", admin_id=admin.id, user_id=user_id, points=body.points)
    return AdjustmentResponse(
        transaction_id=entry.id,
        user_id=user_id,
        points=entry.points,
        amount_euro=float(entry.amount_euro),
        total_points=user.total_points,
    )


@router.get("/ledger/audit", response_model=LedgerAuditResponse)
async def audit_ledger(
    _admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> LedgerAuditResponse:
    drift = await ledger.find_drift(db)
    return LedgerAuditResponse(
        consistent=not drift,
        drift=[
            DriftEntry(
                user_id=d.user_id,
                total_points=d.total_points,
                ledger_points=d.ledger_points,
                difference=d.difference,
            )
            for d in drift
        ],
    )
