"""ArkanING, Flipper and News-Article reward rounds."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import patch

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from conftest import auth_headers
from lessonhub.db.models import (
    Assignment,
    AssignmentStatus,
    LessonType,
    NewsArticleWordTap,
    PointReason,
    PointTransaction,
    User,
)
from lessonhub.ledger import service as ledger
from lessonhub.ledger.points import euros_to_points


async def _entries(db, reason: PointReason) -> list[PointTransaction]:
    result = await db.execute(
        select(PointTransaction).where(PointTransaction.reason == reason.value).order_by(PointTransaction.id)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
class TestArkaningRounds:
    async def test_correct_round(self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment, reload):
        assignment = await make_assignment(await make_lesson(teacher, LessonType.ARKANING), student)
        response = await client.post(
            f"/api/v1/assignments/{assignment.id}/arkaning",
            json={"outcome": "correct"},
            headers=auth_headers(student),
        )
        assert response.status_code == 200
        assert response.json() == {"pointsDelta": 10, "eurosDelta": 0.5, "totalPoints": 10, "replayed": False}
        assert (await reload(User, student.id)).total_points == 10

    async def test_wrong_round_penalty(self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment):
        assignment = await make_assignment(await make_lesson(teacher, LessonType.ARKANING), student)
        response = await client.post(
            f"/api/v1/assignments/{assignment.id}/arkaning",
            json={"outcome": "wrong"},
            headers=auth_headers(student),
        )
        assert response.json()["pointsDelta"] == -50
        assert response.json()["eurosDelta"] == -50
        assert response.json()["totalPoints"] == -50
        entries = await _entries(db, PointReason.ARKANING_GAME)
        assert [e.note for e in entries] == ["ArkanING wrong"]

    async def test_wrong_lesson_type(self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment):
        assignment = await make_assignment(await make_lesson(teacher, LessonType.FLIPPER), student)
        response = await client.post(
            f"/api/v1/assignments/{assignment.id}/arkaning",
            json={"outcome": "correct"},
            headers=auth_headers(student),
        )
        assert response.status_code == 404
        assert response.json()["error"] == "ARKANING assignment not found."
        assert await _entries(db, PointReason.ARKANING_GAME) == []

    async def test_invalid_outcome(self, client: AsyncClient, teacher, student, make_lesson, make_assignment):
        assignment = await make_assignment(await make_lesson(teacher, LessonType.ARKANING), student)
        response = await client.post(
            f"/api/v1/assignments/{assignment.id}/arkaning",
            json={"outcome": "maybe"},
            headers=auth_headers(student),
        )
        assert response.status_code == 400


@pytest.mark.asyncio
class TestFlipperRewardCurve:
    @pytest.mark.parametrize(
        ("attempts", "euros"),
        [(1, Decimal("10")), (2, Decimal("5")), (3, Decimal("1")), (5, Decimal("-10"))],
    )
    async def test_curve(self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment, attempts, euros):
        assignment = await make_assignment(await make_lesson(teacher, LessonType.FLIPPER), student)
        response = await client.post(
            f"/api/v1/assignments/{assignment.id}/flipper",
            json={"attempts": attempts, "word": "casa"},
            headers=auth_headers(student),
        )
        assert response.status_code == 200
        data = response.json()
        assert Decimal(str(data["eurosDelta"])) == euros
        assert data["pointsDelta"] == euros_to_points(euros)
        assert data["totalPoints"] == euros_to_points(euros)

        entry = (await _entries(db, PointReason.FLIPPER_MATCH))[0]
        assert entry.amount_euro == euros
        assert entry.note == "Flipper match: casa"

    async def test_attempts_must_be_positive(self, client: AsyncClient, teacher, student, make_lesson, make_assignment):
        assignment = await make_assignment(await make_lesson(teacher, LessonType.FLIPPER), student)
        response = await client.post(
            f"/api/v1/assignments/{assignment.id}/flipper",
            json={"attempts": 0},
            headers=auth_headers(student),
        )
        assert response.status_code == 400


@pytest.mark.asyncio
class TestNewsArticleTaps:
    async def _tap(self, client, assignment, student, word="economy", key=None):
        headers = auth_headers(student)
        if key:
            headers["Idempotency-Key"] = key
        return await client.post(
            f"/api/v1/assignments/{assignment.id}/news-article", json={"word": word}, headers=headers
        )

    async def test_cap_rejects_third_tap(self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment, reload):
        assignment = await make_assignment(await make_lesson(teacher, LessonType.NEWS_ARTICLE), student)
        first = await self._tap(client, assignment, student, "economy")
        second = await self._tap(client, assignment, student, "grew")
        assert first.json()["tapCount"] == 1
        assert second.json()["tapCount"] == 2

        third = await self._tap(client, assignment, student, "strongly")
        assert third.status_code == 400
        assert third.json() == {"error": "Tap limit reached.", "tapCount": 2}
        assert (await reload(Assignment, assignment.id)).news_article_tap_count == 2
        assert len(await _entries(db, PointReason.NEWS_ARTICLE_TAP)) == 2

    async def test_repeat_tap_earns_less(self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment):
        lesson = await make_lesson(
            teacher, LessonType.NEWS_ARTICLE, config={"markdown": "The economy grew.", "max_word_taps": 0}
        )
        assignment = await make_assignment(lesson, student)
        first = await self._tap(client, assignment, student, "Economy,")
        repeat = await self._tap(client, assignment, student, "economy")
        third = await self._tap(client, assignment, student, "economy")

        assert (first.json()["pointsDelta"], first.json()["eurosDelta"]) == (50, 0.5)
        assert (repeat.json()["pointsDelta"], repeat.json()["eurosDelta"]) == (5, 0.005)
        assert third.json()["tapCount"] == 3
        assert third.json()["totalPoints"] == 60

        taps = (await db.execute(select(NewsArticleWordTap))).scalars().all()
        assert [(t.normalized_word, t.tap_count) for t in taps] == [("economy", 3)]

    async def test_tap_without_word(self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment):
        assignment = await make_assignment(await make_lesson(teacher, LessonType.NEWS_ARTICLE), student)
        response = await client.post(
            f"/api/v1/assignments/{assignment.id}/news-article", json={}, headers=auth_headers(student)
        )
        assert response.status_code == 200
        assert response.json()["pointsDelta"] == 50
        assert (await db.execute(select(func.count(NewsArticleWordTap.id)))).scalar_one() == 0

    async def test_idempotent_replay(self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment, reload):
        assignment = await make_assignment(await make_lesson(teacher, LessonType.NEWS_ARTICLE), student)
        first = await self._tap(client, assignment, student, "economy", key="tap-1")
        replay = await self._tap(client, assignment, student, "economy", key="tap-1")

        assert replay.status_code == 200
        assert replay.json()["replayed"] is True
        assert replay.json()["pointsDelta"] == first.json()["pointsDelta"]
        assert replay.json()["tapCount"] == 1
        assert len(await _entries(db, PointReason.NEWS_ARTICLE_TAP)) == 1
        assert (await reload(User, student.id)).total_points == 50


@pytest.mark.asyncio
class TestIdempotency:
    async def test_same_key_posts_once(self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment, reload):
        assignment = await make_assignment(await make_lesson(teacher, LessonType.FLIPPER), student)
        headers = {**auth_headers(student), "Idempotency-Key": "round-7"}
        url = f"/api/v1/assignments/{assignment.id}/flipper"
        responses = [await client.post(url, json={"attempts": 1}, headers=headers) for _ in range(3)]

        assert [r.json()["replayed"] for r in responses] == [False, True, True]
        assert {r.json()["pointsDelta"] for r in responses} == {1}
        assert len(await _entries(db, PointReason.FLIPPER_MATCH)) == 1
        assert (await reload(User, student.id)).total_points == 1

    async def test_different_keys_post_twice(self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment):
        assignment = await make_assignment(await make_lesson(teacher, LessonType.FLIPPER), student)
        url = f"/api/v1/assignments/{assignment.id}/flipper"
        for key in ("a", "b"):
            await client.post(url, json={"attempts": 1}, headers={**auth_headers(student), "Idempotency-Key": key})
        assert len(await _entries(db, PointReason.FLIPPER_MATCH)) == 2

    async def test_lost_race_replays_winner(self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment, reload):
        """A duplicate that passes the pre-check hits the unique key and reports the first entry."""
        assignment = await make_assignment(await make_lesson(teacher, LessonType.ARKANING), student)
        headers = {**auth_headers(student), "Idempotency-Key": "dup"}
        url = f"/api/v1/assignments/{assignment.id}/arkaning"
        await client.post(url, json={"outcome": "correct"}, headers=headers)

        real_lookup = ledger.get_by_idempotency_key
        calls = {"n": 0}

        async def miss_once(session, key):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return await real_lookup(session, key)

        with patch.object(ledger, "get_by_idempotency_key", miss_once):
            response = await client.post(url, json={"outcome": "correct"}, headers=headers)

        assert response.status_code == 200
        assert response.json()["replayed"] is True
        assert len(await _entries(db, PointReason.ARKANING_GAME)) == 1
        assert (await reload(User, student.id)).total_points == 10

    async def test_ledger_matches_total_after_rounds(self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment, reload):
        flipper = await make_assignment(await make_lesson(teacher, LessonType.FLIPPER, title="F"), student)
        arkaning = await make_assignment(await make_lesson(teacher, LessonType.ARKANING, title="A"), student)
        headers = auth_headers(student)
        for attempts in (1, 2, 4, 9):
            await client.post(f"/api/v1/assignments/{flipper.id}/flipper", json={"attempts": attempts}, headers=headers)
        for outcome in ("correct", "wrong", "correct"):
            await client.post(f"/api/v1/assignments/{arkaning.id}/arkaning", json={"outcome": outcome}, headers=headers)

        user = await reload(User, student.id)
        assert user.total_points == await ledger.sum_points(db, student.id)
        assert await ledger.find_drift(db) == []


@pytest.mark.asyncio
async def test_rounds_do_not_check_status(client: AsyncClient, teacher, student, make_lesson, make_assignment):
    """In-game rewards keep working after the assignment is submitted."""
    assignment = await make_assignment(
        await make_lesson(teacher, LessonType.FLIPPER), student, status=AssignmentStatus.COMPLETED
    )
    response = await client.post(
        f"/api/v1/assignments/{assignment.id}/flipper", json={"attempts": 1}, headers=auth_headers(student)
    )
    assert response.status_code == 200
