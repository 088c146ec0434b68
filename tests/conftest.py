"""Shared test fixtures.

Tests run against a throwaway SQLite database per test (schema from the ORM
metadata) and an in-process fake Redis. JWT keys are generated once per run.
"""

from __future__ import annotations

import os
import tempfile
from collections import deque
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

import fakeredis
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession


def _ensure_test_keys() -> None:
    """Generate an RSA key pair in a temp directory and point settings at it."""
    tmpdir = Path(tempfile.mkdtemp(prefix="lessonhub_test_keys_"))
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_path = tmpdir / "jwt_private.pem"
    public_path = tmpdir / "jwt_public.pem"
    private_path.write_bytes(key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ))
    public_path.write_bytes(key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ))
    os.environ["LH_JWT_PRIVATE_KEY_PATH"] = str(private_path)
    os.environ["LH_JWT_PUBLIC_KEY_PATH"] = str(public_path)


_ensure_test_keys()
os.environ["LH_EMAIL_PROVIDER"] = "log"
os.environ["LH_CRON_SECRET"] = "test-cron-secret"
os.environ["LH_LOG_FORMAT"] = "console"

from lessonhub.auth.jwt import create_access_token, reset_keys  # noqa: E402
from lessonhub.config import get_settings  # noqa: E402
from lessonhub.database import close_db, get_engine, get_session_factory, init_db  # noqa: E402
from lessonhub.db.base import Base  # noqa: E402
from lessonhub.db.models import (  # noqa: E402
    Assignment,
    AssignmentNotification,
    AssignmentStatus,
    Lesson,
    LessonType,
    User,
    UserRole,
)
from lessonhub.email.service import EmailService, LogProvider, set_email_service  # noqa: E402
from lessonhub.gamification.badges import seed_badges  # noqa: E402
from lessonhub.redis_client import set_redis  # noqa: E402

get_settings.cache_clear()
reset_keys()


LESSON_CONFIGS: dict[LessonType, dict[str, Any]] = {
    LessonType.STANDARD: {"questions": ["What is a verb?", "Give an example."]},
    LessonType.MULTI_CHOICE: {
        "questions": [
            {
                "id": "q1",
                "prompt": "Pick the noun",
                "options": [
                    {"id": "a", "text": "run", "is_correct": False},
                    {"id": "b", "text": "house", "is_correct": True},
                ],
            },
            {
                "id": "q2",
                "prompt": "Pick the verb",
                "options": [
                    {"id": "a", "text": "eat", "is_correct": True},
                    {"id": "b", "text": "blue", "is_correct": False},
                ],
            },
        ],
    },
    LessonType.FLASHCARD: {
        "cards": [
            {"id": "c1", "term": "cane", "definition": "dog"},
            {"id": "c2", "term": "gatto", "definition": "cat"},
        ],
    },
    LessonType.COMPOSER: {
        "hidden_sentence": "I like tea",
        "max_tries": 2,
        "questions": [
            {"id": "w1", "prompt": "First person pronoun", "answer": "I"},
            {"id": "w2", "prompt": "To enjoy", "answer": "like", "max_tries": 1},
            {"id": "w3", "prompt": "A hot drink", "answer": "tea"},
        ],
    },
    LessonType.FLIPPER: {
        "tiles": [{"word": "casa", "translation": "house"}, {"word": "sole", "translation": "sun"}],
        "attempts_before_penalty": 3,
    },
    LessonType.NEWS_ARTICLE: {"markdown": "# Headline\n\nThe economy grew strongly.", "max_word_taps": 2},
    LessonType.ARKANING: {
        "points_per_correct": 10,
        "euros_per_correct": "0.5",
        "lives": 3,
        "questions": [{"prompt": "cane", "answer": "dog"}],
    },
    LessonType.LEARNING_SESSION: {"cards": [{"title": "Intro", "content": "Welcome"}]},
    LessonType.LYRIC: {
        "audio_url": "https://cdn.example.com/song.mp3",
        "lines": [{"text": "hello from the other side", "start_seconds": 0, "end_seconds": 4.5, "hidden_words": ["other"]}],
    },
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def auth_headers(user: User, acting_user: User | None = None) -> dict[str, str]:
    token = create_access_token(
        user.id,
        user.role,
        acting_user_id=acting_user.id if acting_user else None,
    )
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[None, None]:
    """Fresh SQLite database with the full schema and the badge catalog."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'lessonhub.db'}")
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with get_session_factory()() as session:
        await seed_badges(session)
    yield
    await close_db()


@pytest_asyncio.fixture
async def fake_redis() -> AsyncGenerator[fakeredis.FakeAsyncRedis, None]:
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    set_redis(client)
    yield client
    set_redis(None)
    await client.flushall()
    await client.aclose()


@pytest.fixture
def outbox() -> deque[dict[str, str]]:
    """Emails sent during the test (log provider, no rate limit)."""
    provider = LogProvider()
    set_email_service(EmailService(provider=provider, redis=None))
    yield provider.outbox
    set_email_service(None)


@pytest_asyncio.fixture
async def db(database: None) -> AsyncGenerator[AsyncSession, None]:
    async with get_session_factory()() as session:
        yield session


@pytest_asyncio.fixture
async def client(database: None, fake_redis: object, outbox: deque) -> AsyncGenerator[AsyncClient, None]:
    from lessonhub.main import create_app

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def reload() -> Callable[..., Awaitable[Any]]:
    """Read a row back through a fresh session (sees committed state only)."""

    async def _reload(model: type, pk: int) -> Any:  # noqa: ANN401
        async with get_session_factory()() as session:
            return await session.get(model, pk)

    return _reload


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_user(db: AsyncSession) -> Callable[..., Awaitable[User]]:
    counter = {"n": 0}

    async def _make(role: UserRole = UserRole.STUDENT, name: str | None = None, **fields: Any) -> User:  # noqa: ANN401
        counter["n"] += 1
        user = User(
            email=f"{role.value.lower()}{counter['n']}@example.com",
            name=name or f"{role.value.title()} {counter['n']}",
            role=role.value,
            **fields,
        )
        db.add(user)
        await db.commit()
        return user

    return _make


@pytest.fixture
def make_lesson(db: AsyncSession) -> Callable[..., Awaitable[Lesson]]:
    async def _make(
        teacher: User,
        lesson_type: LessonType = LessonType.STANDARD,
        *,
        config: dict[str, Any] | None = None,
        price: Decimal | str = "0",
        difficulty: int = 1,
        title: str | None = None,
        notification: AssignmentNotification = AssignmentNotification.NOT_ASSIGNED,
    ) -> Lesson:
        payload = dict(config if config is not None else LESSON_CONFIGS[lesson_type])
        payload["type"] = lesson_type.value
        lesson = Lesson(
            teacher_id=teacher.id,
            type=lesson_type.value,
            title=title or f"{lesson_type.value.title()} lesson",
            price=Decimal(price),
            difficulty=difficulty,
            assignment_notification=notification.value,
            config=payload,
        )
        db.add(lesson)
        await db.commit()
        return lesson

    return _make


@pytest.fixture
def make_assignment(db: AsyncSession) -> Callable[..., Awaitable[Assignment]]:
    async def _make(
        lesson: Lesson,
        student: User,
        *,
        status: AssignmentStatus = AssignmentStatus.PENDING,
        deadline: datetime | None = None,
        start_date: datetime | None = None,
        assigned_at: datetime | None = None,
        score: float | None = None,
        **fields: Any,
    ) -> Assignment:
        now = utc_now()
        assignment = Assignment(
            lesson_id=lesson.id,
            student_id=student.id,
            status=status.value,
            assigned_at=assigned_at or now,
            start_date=start_date or now - timedelta(hours=1),
            deadline=deadline or now + timedelta(days=2),
            score=score,
            **fields,
        )
        db.add(assignment)
        await db.commit()
        return assignment

    return _make


@pytest_asyncio.fixture
async def teacher(make_user: Callable[..., Awaitable[User]]) -> User:
    return await make_user(UserRole.TEACHER, name="Ms Rossi")


@pytest_asyncio.fixture
async def student(make_user: Callable[..., Awaitable[User]]) -> User:
    return await make_user(UserRole.STUDENT, name="Luca")


@pytest_asyncio.fixture
async def admin(make_user: Callable[..., Awaitable[User]]) -> User:
    return await make_user(UserRole.ADMIN, name="Admin")
