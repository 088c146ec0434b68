"""User lookups used by authentication and role checks."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lessonhub.db.models import User, UserRole


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Get a user by primary key."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def list_students(db: AsyncSession, *, include_suspended: bool = False) -> list[User]:
    """All student accounts, oldest first."""
    stmt = select(User).where(User.role == UserRole.STUDENT.value).order_by(User.id)
    if not include_suspended:
        stmt = stmt.where(User.is_suspended == False)  # noqa: E712
    result = await db.execute(stmt)
    return list(result.scalars().all())
