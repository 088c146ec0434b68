"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from lessonhub.admin.router import router as admin_router
from lessonhub.assignments.router import router as assignments_router
from lessonhub.config import get_settings
from lessonhub.database import close_db, get_session_factory, init_db
from lessonhub.gamification.badges import seed_badges
from lessonhub.gamification.router import router as gamification_router
from lessonhub.health.router import router as health_router
from lessonhub.lessons.router import router as lessons_router
from lessonhub.marketplace.router import router as marketplace_router
from lessonhub.middleware import setup_middleware
from lessonhub.redis_client import close_redis, init_redis
from lessonhub.scheduler.router import router as cron_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Seed badge definitions (idempotent)
    try:
        async with get_session_factory()() as db:
            await seed_badges(db)
    except SQLAlchemyError:
        logger.warning("badge_seeding_failed", hint="tables may not exist yet", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="LessonHUB API",
        description="Lessons, assignments and the reward ledger for LessonHUB",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(lessons_router)
    app.include_router(assignments_router)
    app.include_router(marketplace_router)
    app.include_router(gamification_router)
    app.include_router(admin_router)
    app.include_router(cron_router)

    return app


app = create_app()
