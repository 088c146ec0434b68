"""Submission payloads (one per lesson type) and reward responses."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, StrictInt

from lessonhub.schemas import CamelModel


class StandardSubmission(CamelModel):
    answers: list[str]
    student_notes: str | None = None


class MultiChoiceSubmission(CamelModel):
    answers: dict[str, str]


class FlashcardSubmission(CamelModel):
    results: dict[str, bool]


class ComposerAnswer(CamelModel):
    question_id: str
    answer: str
    tries: int = Field(default=1, ge=1)


class ComposerSubmission(CamelModel):
    answers: list[ComposerAnswer] = Field(min_length=1)


class LearningSessionSubmission(CamelModel):
    notes: str | None = None


class NewsArticleSubmission(CamelModel):
    summary: str | None = None


class FlipperSubmission(CamelModel):
    pass


class ArkaningSubmission(CamelModel):
    outcome: Literal["win", "lose"]


class LyricSubmission(CamelModel):
    answers: dict | list | None = None
    score_percent: float | None = Field(default=None, ge=0, le=100)
    time_taken_seconds: int | None = Field(default=None, ge=0)


# --- Reward rounds ---


class ArkaningRound(CamelModel):
    outcome: Literal["correct", "wrong"]


class FlipperRound(CamelModel):
    attempts: StrictInt = Field(ge=1)
    word: str | None = Field(default=None, max_length=128)


class NewsArticleTap(CamelModel):
    word: str | None = Field(default=None, max_length=128)


class RewardResponse(CamelModel):
    points_delta: int
    euros_delta: float
    total_points: int
    tap_count: int | None = None
    replayed: bool = False
