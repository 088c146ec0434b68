"""arq worker for the scheduled notifier.

Import path for arq CLI: arq lessonhub.workers.settings.WorkerSettings
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from arq import cron
from arq.connections import RedisSettings

from lessonhub.config import get_settings
from lessonhub.database import close_db, get_session_factory, init_db
from lessonhub.middleware.logging import setup_logging
from lessonhub.redis_client import close_redis, init_redis
from lessonhub.scheduler import service

logger = structlog.get_logger()


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Open the database and Redis connections the jobs share."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    logger.info("scheduler_worker_started")


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    await close_db()
    await close_redis()
    logger.info("scheduler_worker_stopped")


async def hourly_notifications(ctx: dict) -> dict[str, int]:  # type: ignore[type-arg]
    """Start-date emails and deadline reminders."""
    now = datetime.now(timezone.utc)
    async with get_session_factory()() as db:
        return {
            "start_date_notifications": await service.send_start_date_notifications(db, now),
            "deadline_reminders": await service.send_deadline_reminders(db, now),
        }


async def daily_jobs(ctx: dict) -> dict[str, int]:  # type: ignore[type-arg]
    async with get_session_factory()() as db:
        return await service.run_daily(db, datetime.now(timezone.utc))


class WorkerSettings:
    """arq worker settings for the scheduled notifier."""

    functions = [hourly_notifications, daily_jobs]
    cron_jobs = [
        cron(hourly_notifications, minute=5, run_at_startup=False),
        cron(daily_jobs, hour=6, minute=0),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    max_jobs = 2
    job_timeout = 600
