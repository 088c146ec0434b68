"""HTTP trigger for the scheduled jobs (external cron)."""

from __future__ import annotations

import hmac
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from lessonhub.config import get_settings
from lessonhub.database import get_session
from lessonhub.errors import Unauthorized
from lessonhub.scheduler.service import run_daily

router = APIRouter(prefix="/api/v1/cron", tags=["Cron"])


async def require_cron_secret(authorization: str | None = Header(default=None)) -> None:
    secret = get_settings().cron_secret
    if not secret or authorization is None:
        raise Unauthorized("Unauthorized")
    expected = f"Bearer {secret}"
    if not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise Unauthorized("Unauthorized")


@router.post("/daily", dependencies=[Depends(require_cron_secret)])
async def daily(db: AsyncSession = Depends(get_session)) -> dict[str, int]:
    return await run_daily(db, datetime.now(timezone.utc))
