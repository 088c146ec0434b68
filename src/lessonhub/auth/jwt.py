"""
RS256 JWT token management.

Access tokens are minted by the LessonHUB auth service. The ``sub`` claim is
the effective user; an ``act`` claim carries the real (admin) user while an
impersonation session is active.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import jwt

from lessonhub.config import get_settings

_private_key: str | None = None
_public_key: str | None = None


def _load_keys() -> tuple[str, str]:
    """Load RSA keys from disk (cached after first call)."""
    global _private_key, _public_key  # noqa: PLW0603
    if _private_key is None or _public_key is None:
        settings = get_settings()
        _private_key = Path(settings.jwt_private_key_path).read_text()
        _public_key = Path(settings.jwt_public_key_path).read_text()
    return _private_key, _public_key


def reset_keys() -> None:
    """Reset cached keys (useful for testing)."""
    global _private_key, _public_key  # noqa: PLW0603
    _private_key = None
    _public_key = None


def create_access_token(
    user_id: int,
    role: str,
    *,
    acting_user_id: int | None = None,
    expire_minutes: int | None = None,
) -> str:
    """
    Create a signed access token.

    Args:
        user_id: The effective user's database ID.
        role: The effective user's role.
        acting_user_id: The real user's ID when impersonating.
        expire_minutes: Lifetime override; defaults to the configured access lifetime.

    Returns:
        Encoded JWT string.
    """
    private_key, _ = _load_keys()
    settings = get_settings()
    now = datetime.now(timezone.utc)
    lifetime = expire_minutes or settings.jwt_access_token_expire_minutes
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=lifetime),
        "iss": settings.jwt_issuer,
        "type": "access",
    }
    if acting_user_id is not None:
        payload["act"] = str(acting_user_id)
    return jwt.encode(payload, private_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str, expected_type: str = "access") -> dict[str, Any]:
    """
    Verify and decode a JWT token.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or wrong type.
    """
    _, public_key = _load_keys()
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            public_key,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if payload.get("type") != expected_type:
        msg = f"Expected token type '{expected_type}', got '{payload.get('type')}'"
        raise jwt.InvalidTokenError(msg)

    return payload
