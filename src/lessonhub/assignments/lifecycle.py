"""Assignment state machine.

PENDING -> COMPLETED -> GRADED, and PENDING -> FAILED. GRADED and FAILED are
terminal except for the marketplace reclaim, which resets an eligible row
back to PENDING in place.
"""

from __future__ import annotations

from datetime import datetime, timezone

from lessonhub.db.models import Assignment, AssignmentStatus
from lessonhub.errors import AlreadySubmitted, DeadlinePassed, InvalidTransition

VALID_TRANSITIONS: dict[AssignmentStatus, frozenset[AssignmentStatus]] = {
    AssignmentStatus.PENDING: frozenset({AssignmentStatus.COMPLETED, AssignmentStatus.FAILED}),
    AssignmentStatus.COMPLETED: frozenset({AssignmentStatus.GRADED}),
    AssignmentStatus.GRADED: frozenset(),
    AssignmentStatus.FAILED: frozenset(),
}

# Deadline given to reclaimed assignments: effectively "no deadline"
FAR_FUTURE_DEADLINE = datetime(2099, 12, 31, 23, 59, 59, tzinfo=timezone.utc)


def validate_transition(current: str, target: AssignmentStatus) -> None:
    """Raise InvalidTransition unless ``current -> target`` is a legal edge."""
    allowed = VALID_TRANSITIONS.get(AssignmentStatus(current), frozenset())
    if target not in allowed:
        raise InvalidTransition(f"Invalid transition: {current} -> {target.value}")


def transition(assignment: Assignment, target: AssignmentStatus) -> None:
    validate_transition(assignment.status, target)
    assignment.status = target.value


def ensure_submittable(assignment: Assignment, now: datetime) -> None:
    """Submission is legal while PENDING and not past the deadline.

    Status is checked before the deadline. Submitting at exactly the
    deadline instant is allowed.
    """
    if assignment.status != AssignmentStatus.PENDING.value:
        raise AlreadySubmitted
    if now > assignment.deadline:
        raise DeadlinePassed


def is_reclaimable(assignment: Assignment, now: datetime) -> bool:
    if assignment.status == AssignmentStatus.FAILED.value:
        return True
    return assignment.status == AssignmentStatus.PENDING.value and assignment.deadline <= now


def reset_for_reclaim(assignment: Assignment) -> None:
    """Reopen a reclaimed assignment as if freshly assigned, without a deadline."""
    assignment.status = AssignmentStatus.PENDING.value
    assignment.deadline = FAR_FUTURE_DEADLINE
    assignment.score = None
    assignment.graded_at = None
    assignment.teacher_comments = None
    assignment.answers = None
    assignment.student_notes = None
    assignment.submitted_at = None
    assignment.reminder_sent_at = None
    assignment.points_awarded = 0
    assignment.extra_points = 0
