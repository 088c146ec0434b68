"""Domain error taxonomy.

Every error carries the HTTP status it maps to and a message that is safe
to show to the caller. The global error handler renders them as
``{"error": message}``.
"""

from __future__ import annotations

from typing import Any


class LessonHubError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 400
    default_message: str = "Request could not be processed."

    def __init__(self, message: str | None = None, **extra: Any) -> None:
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, **self.extra}


class ValidationError(LessonHubError):
    status_code = 400
    default_message = "Invalid request."


class Unauthorized(LessonHubError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(LessonHubError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(LessonHubError):
    status_code = 404
    default_message = "Not found."


class InternalError(LessonHubError):
    status_code = 500
    default_message = "Internal server error"


# ---------------------------------------------------------------------------
# Business-rule violations (all 400)
# ---------------------------------------------------------------------------


class AlreadySubmitted(LessonHubError):
    default_message = "Assignment has already been submitted."


class DeadlinePassed(LessonHubError):
    default_message = "The deadline for this assignment has passed."


class TapLimitReached(LessonHubError):
    default_message = "Tap limit reached."


class AlreadyPurchased(LessonHubError):
    default_message = "This lesson has already been purchased."


class InsufficientSavings(LessonHubError):
    default_message = "Not enough savings to purchase this lesson."


class NotEligible(LessonHubError):
    default_message = "This lesson is not available in the marketplace."


class InvalidTransition(LessonHubError):
    """An assignment was asked to move along an edge the lifecycle forbids."""

    default_message = "Assignment cannot change to that status."
