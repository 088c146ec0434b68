"""Response models for points, badges and the leaderboard."""

from __future__ import annotations

from datetime import datetime

from lessonhub.schemas import CamelModel


class TransactionResponse(CamelModel):
    id: int
    assignment_id: int | None = None
    points: int
    amount_euro: float
    reason: str
    note: str | None = None
    created_at: datetime


class EarnedBadgeResponse(CamelModel):
    slug: str
    name: str
    description: str
    earned_at: datetime


class NextBadgeResponse(CamelModel):
    slug: str
    name: str
    description: str
    points_bonus: int


class PointsSummaryResponse(CamelModel):
    total_points: int
    savings: float
    euro_balance: float
    transactions: list[TransactionResponse]
    badges: list[EarnedBadgeResponse]
    next_badge: NextBadgeResponse | None = None


class LeaderboardEntry(CamelModel):
    rank: int
    user_id: int
    name: str | None = None
    total_points: int


class LeaderboardResponse(CamelModel):
    entries: list[LeaderboardEntry]
