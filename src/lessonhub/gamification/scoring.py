"""Points awarded when an assignment is graded."""

from __future__ import annotations

from datetime import datetime

from lessonhub.ledger.points import round_half_up

ON_TIME_BONUS = 20
FAST_GRADE_BONUS = 20  # graded within a day of assignment
PROMPT_GRADE_BONUS = 10  # graded within three days


def calculate_assignment_points(
    score: float,
    difficulty: int | None,
    deadline: datetime,
    graded_at: datetime,
    assigned_at: datetime,
) -> int:
    base_points = max(score, 0) * 10
    difficulty_bonus = max(difficulty or 1, 1) * 5
    on_time_bonus = ON_TIME_BONUS if graded_at <= deadline else 0

    hours_to_grade = max((graded_at - assigned_at).total_seconds(), 0) / 3600
    if hours_to_grade <= 24:
        speed_bonus = FAST_GRADE_BONUS
    elif hours_to_grade <= 72:
        speed_bonus = PROMPT_GRADE_BONUS
    else:
        speed_bonus = 0

    return max(0, round_half_up(base_points + difficulty_bonus + on_time_bonus + speed_bonus))
