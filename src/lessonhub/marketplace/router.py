"""Marketplace endpoints (students)."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lessonhub.auth.dependencies import CurrentUser, require_student
from lessonhub.database import get_session
from lessonhub.errors import AlreadyPurchased, LessonHubError
from lessonhub.marketplace import service
from lessonhub.marketplace.schemas import MarketplaceItem, MarketplaceResponse, PurchaseRequest

router = APIRouter(prefix="/api/v1/marketplace", tags=["Marketplace"])


@router.get("", response_model=MarketplaceResponse)
async def list_marketplace(
    current: CurrentUser = Depends(require_student),
    db: AsyncSession = Depends(get_session),
) -> MarketplaceResponse:
    listing = await service.list_reclaimable(db, current.id, datetime.now(timezone.utc))
    return MarketplaceResponse(
        savings=float(listing.savings),
        items=[
            MarketplaceItem(
                assignment_id=a.id,
                lesson_id=a.lesson_id,
                title=a.lesson.title,
                type=a.lesson.type,
                price=float(a.lesson.price),
                status=a.status,
                deadline=a.deadline,
            )
            for a in listing.assignments
        ],
    )


@router.post("/purchase")
async def purchase(
    body: PurchaseRequest,
    current: CurrentUser = Depends(require_student),
    db: AsyncSession = Depends(get_session),
) -> JSONResponse:
    """Answers ``{success, error?}`` rather than the usual error shape."""
    try:
        await service.purchase(db, body.assignment_id, current.id, datetime.now(timezone.utc))
    except IntegrityError:
        # A concurrent purchase of the same assignment committed first
        exc = AlreadyPurchased("This lesson was already purchased.")
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})
    except LessonHubError as exc:
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})
    return JSONResponse(status_code=200, content={"success": True})
