"""FastAPI authentication dependencies."""

from __future__ import annotations

from dataclasses import dataclass

import jwt
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from lessonhub.auth.jwt import verify_token
from lessonhub.auth.service import get_user_by_id
from lessonhub.database import get_session
from lessonhub.db.models import User, UserRole
from lessonhub.errors import Forbidden, Unauthorized

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class ActingAs:
    """Who is really calling, and on whose behalf.

    Outside impersonation both ids are the same.
    """

    real_user_id: int
    effective_user_id: int

    @property
    def is_impersonating(self) -> bool:
        return self.real_user_id != self.effective_user_id


@dataclass(frozen=True)
class CurrentUser:
    user: User
    acting: ActingAs

    @property
    def id(self) -> int:
        return self.user.id

    @property
    def role(self) -> str:
        return self.user.role


async def get_acting_as(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> ActingAs:
    """Decode the bearer token into an ActingAs context. Raises 401 on failure."""
    if credentials is None:
        raise Unauthorized("Unauthorized")
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
        effective_id = int(payload["sub"])
        real_id = int(payload.get("act", effective_id))
    except (jwt.InvalidTokenError, KeyError, ValueError) as e:
        raise Unauthorized(str(e) or "Invalid token") from e
    return ActingAs(real_user_id=real_id, effective_user_id=effective_id)


async def get_current_user(
    acting: ActingAs = Depends(get_acting_as),
    db: AsyncSession = Depends(get_session),
) -> CurrentUser:
    """Resolve the effective user. Suspended accounts are rejected with 403."""
    user = await get_user_by_id(db, acting.effective_user_id)
    if user is None:
        raise Unauthorized("User not found")
    if user.is_suspended:
        raise Forbidden("Account is suspended")
    if acting.is_impersonating:
        real_user = await get_user_by_id(db, acting.real_user_id)
        if real_user is None or real_user.role != UserRole.ADMIN.value:
            raise Unauthorized("Impersonation is only available to admins")
    return CurrentUser(user=user, acting=acting)


def _require_role(*roles: UserRole):  # noqa: ANN202
    allowed = {role.value for role in roles}

    async def dependency(current: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current.role not in allowed:
            raise Forbidden("Forbidden")
        return current

    return dependency


require_student = _require_role(UserRole.STUDENT)
require_teacher = _require_role(UserRole.TEACHER, UserRole.ADMIN)
require_any_user = _require_role(UserRole.STUDENT, UserRole.TEACHER, UserRole.ADMIN)


async def require_admin(
    acting: ActingAs = Depends(get_acting_as),
    db: AsyncSession = Depends(get_session),
) -> CurrentUser:
    """Admin-only actions check the real caller, so impersonating does not unlock them."""
    real_user = await get_user_by_id(db, acting.real_user_id)
    if real_user is None:
        raise Unauthorized("User not found")
    if real_user.role != UserRole.ADMIN.value or real_user.is_suspended:
        raise Forbidden("Forbidden")
    return CurrentUser(user=real_user, acting=ActingAs(real_user.id, real_user.id))
