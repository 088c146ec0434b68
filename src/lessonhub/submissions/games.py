"""ArkanING, Flipper and News-Article reward rounds."""

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lessonhub.db.models import LessonType, NewsArticleWordTap, PointReason
from lessonhub.errors import TapLimitReached
from lessonhub.ledger.points import euros_to_points
from lessonhub.lessons.catalog import ArkaningConfig, FlipperConfig, NewsArticleConfig
from lessonhub.submissions.base import RewardResult
from lessonhub.submissions.rewards import Reward, RoundContext, run_reward_round

# ArkanING penalty is fixed, not read from the lesson config
ARKANING_WRONG_POINTS = -50
ARKANING_WRONG_EUROS = Decimal("-50")

FLIPPER_FIRST_TRY_EUROS = Decimal("10")
FLIPPER_SECOND_TRY_EUROS = Decimal("5")
FLIPPER_WITHIN_THRESHOLD_EUROS = Decimal("1")
FLIPPER_PENALTY_STEP_EUROS = Decimal("5")

NEWS_ARTICLE_BASE_POINTS = 50
NEWS_ARTICLE_BASE_EUROS = Decimal("0.5")
NEWS_ARTICLE_REPEAT_POINTS = 5
NEWS_ARTICLE_REPEAT_EUROS = Decimal("0.005")

_WORD_CLEAN_RE = re.compile(r"[^a-z0-9à-öø-ÿ]")


# --- ArkanING ---


def arkaning_reward(config: ArkaningConfig, outcome: str) -> Reward:
    if outcome == "correct":
        return Reward(points=config.points_per_correct, euros=config.euros_per_correct, note="ArkanING correct")
    return Reward(points=ARKANING_WRONG_POINTS, euros=ARKANING_WRONG_EUROS, note="ArkanING wrong")


async def play_arkaning_round(
    db: AsyncSession,
    assignment_id: int,
    student_id: int,
    outcome: str,
    now: datetime,
    idempotency_key: str | None = None,
) -> RewardResult:
    async def compute(ctx: RoundContext) -> Reward:
        return arkaning_reward(ctx.config, outcome)  # type: ignore[arg-type]

    return await run_reward_round(
        db,
        assignment_id=assignment_id,
        student_id=student_id,
        lesson_type=LessonType.ARKANING,
        reason=PointReason.ARKANING_GAME,
        compute=compute,
        now=now,
        idempotency_key=idempotency_key,
    )


# --- Flipper ---


def flipper_reward_euros(attempts: int, threshold: int) -> Decimal:
    """Step curve: 10 on the first try, 5 on the second, 1 up to the threshold,
    then -5 for every attempt past it."""
    if attempts <= 1:
        return FLIPPER_FIRST_TRY_EUROS
    if attempts == 2:
        return FLIPPER_SECOND_TRY_EUROS
    if attempts <= threshold:
        return FLIPPER_WITHIN_THRESHOLD_EUROS
    return -FLIPPER_PENALTY_STEP_EUROS * (attempts - threshold)


def flipper_reward(config: FlipperConfig, attempts: int, word: str | None) -> Reward:
    euros = flipper_reward_euros(attempts, config.penalty_threshold)
    word = (word or "").strip()
    return Reward(
        points=euros_to_points(euros),
        euros=euros,
        note=f"Flipper match: {word}" if word else "Flipper match",
    )


async def play_flipper_round(
    db: AsyncSession,
    assignment_id: int,
    student_id: int,
    attempts: int,
    word: str | None,
    now: datetime,
    idempotency_key: str | None = None,
) -> RewardResult:
    async def compute(ctx: RoundContext) -> Reward:
        return flipper_reward(ctx.config, attempts, word)  # type: ignore[arg-type]

    return await run_reward_round(
        db,
        assignment_id=assignment_id,
        student_id=student_id,
        lesson_type=LessonType.FLIPPER,
        reason=PointReason.FLIPPER_MATCH,
        compute=compute,
        now=now,
        idempotency_key=idempotency_key,
    )


# --- News article ---


def normalize_tapped_word(word: str) -> str:
    return _WORD_CLEAN_RE.sub("", word.strip().lower())


async def _register_tap(ctx: RoundContext, normalized: str) -> bool:
    """Count a tap on ``normalized``. Returns True when it is the first one."""
    result = await ctx.db.execute(
        select(NewsArticleWordTap).where(
            NewsArticleWordTap.assignment_id == ctx.assignment.id,
            NewsArticleWordTap.normalized_word == normalized,
        )
    )
    tap = result.scalar_one_or_none()
    if tap is not None:
        tap.tap_count += 1
        tap.last_tapped_at = ctx.now
        return False
    ctx.db.add(NewsArticleWordTap(
        assignment_id=ctx.assignment.id,
        normalized_word=normalized,
        tap_count=1,
        first_tapped_at=ctx.now,
        last_tapped_at=ctx.now,
    ))
    return True


async def _news_article_compute(ctx: RoundContext, word: str | None) -> Reward:
    config: NewsArticleConfig = ctx.config  # type: ignore[assignment]
    assignment = ctx.assignment
    cap = config.tap_cap
    if cap is not None and assignment.news_article_tap_count >= cap:
        raise TapLimitReached(tapCount=assignment.news_article_tap_count)

    display = (word or "").strip()
    normalized = normalize_tapped_word(display)
    first_tap = True
    if normalized:
        first_tap = await _register_tap(ctx, normalized)
    assignment.news_article_tap_count += 1

    note = f"News Article tap: {display}" if display else "News Article tap"
    if first_tap:
        return Reward(points=NEWS_ARTICLE_BASE_POINTS, euros=NEWS_ARTICLE_BASE_EUROS, note=note)
    return Reward(points=NEWS_ARTICLE_REPEAT_POINTS, euros=NEWS_ARTICLE_REPEAT_EUROS, note=f"{note} (repeat)")


async def tap_news_article_word(
    db: AsyncSession,
    assignment_id: int,
    student_id: int,
    word: str | None,
    now: datetime,
    idempotency_key: str | None = None,
) -> RewardResult:
    async def compute(ctx: RoundContext) -> Reward:
        return await _news_article_compute(ctx, word)

    return await run_reward_round(
        db,
        assignment_id=assignment_id,
        student_id=student_id,
        lesson_type=LessonType.NEWS_ARTICLE,
        reason=PointReason.NEWS_ARTICLE_TAP,
        compute=compute,
        now=now,
        idempotency_key=idempotency_key,
    )
