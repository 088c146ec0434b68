"""Marketplace listing and reclaim purchases."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from conftest import auth_headers, utc_now
from lessonhub.assignments.lifecycle import FAR_FUTURE_DEADLINE
from lessonhub.db.models import Assignment, AssignmentStatus, PointReason, PointTransaction, User
from lessonhub.ledger import service as ledger


@pytest.fixture
def earn_savings(teacher, make_lesson, make_assignment):
    """Give the student savings through a positively graded lesson."""

    async def _earn(student, amount: str):
        lesson = await make_lesson(teacher, price=amount, title=f"Earned {amount}")
        return await make_assignment(lesson, student, status=AssignmentStatus.GRADED, score=8)

    return _earn


async def _purchase(client: AsyncClient, student, assignment_id: int):
    return await client.post(
        "/api/v1/marketplace/purchase", json={"assignmentId": assignment_id}, headers=auth_headers(student)
    )


@pytest.mark.asyncio
class TestPurchase:
    async def test_reclaim_failed_lesson(
        self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment, earn_savings, reload
    ):
        await earn_savings(student, "20")
        failed = await make_assignment(
            await make_lesson(teacher, price="15", title="Subjunctive"),
            student,
            status=AssignmentStatus.FAILED,
            score=-1,
            answers=["wrong"],
            teacher_comments="Try again",
        )

        response = await _purchase(client, student, failed.id)
        assert response.status_code == 200
        assert response.json() == {"success": True}

        stored = await reload(Assignment, failed.id)
        assert stored.status == AssignmentStatus.PENDING.value
        assert stored.deadline == FAR_FUTURE_DEADLINE
        assert stored.score is None
        assert stored.answers is None
        assert stored.teacher_comments is None

        entry = (await db.execute(
            select(PointTransaction).where(PointTransaction.reason == PointReason.MARKETPLACE_PURCHASE.value)
        )).scalar_one()
        assert entry.points == 0
        assert entry.amount_euro == Decimal("-15")
        assert entry.note == "Marketplace purchase: Subjunctive"
        assert entry.idempotency_key == f"marketplace:{failed.id}"
        assert await ledger.available_savings(db, student.id) == Decimal("5")
        assert (await reload(User, student.id)).total_points == 0

        again = await _purchase(client, student, failed.id)
        assert again.status_code == 400
        assert again.json() == {"success": False, "error": "This lesson was already purchased."}

    async def test_reclaim_lapsed_pending(
        self, client: AsyncClient, teacher, student, make_lesson, make_assignment, earn_savings
    ):
        await earn_savings(student, "10")
        lapsed = await make_assignment(
            await make_lesson(teacher, price="10"), student, deadline=utc_now() - timedelta(minutes=1)
        )
        response = await _purchase(client, student, lapsed.id)
        assert response.json() == {"success": True}

    async def test_open_assignment_not_eligible(self, client: AsyncClient, teacher, student, make_lesson, make_assignment):
        open_assignment = await make_assignment(await make_lesson(teacher), student)
        response = await _purchase(client, student, open_assignment.id)
        assert response.status_code == 400
        assert response.json()["success"] is False
        assert "marketplace" in response.json()["error"]

    async def test_insufficient_savings(
        self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment, earn_savings, reload
    ):
        await earn_savings(student, "5")
        failed = await make_assignment(
            await make_lesson(teacher, price="15"), student, status=AssignmentStatus.FAILED
        )
        response = await _purchase(client, student, failed.id)
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Not enough savings to purchase this lesson."}
        assert (await reload(Assignment, failed.id)).status == AssignmentStatus.FAILED.value
        assert await ledger.euro_balance(db, student.id) == Decimal("0")

    async def test_savings_cover_one_of_two_purchases(
        self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment, earn_savings, reload
    ):
        await earn_savings(student, "20")
        first = await make_assignment(
            await make_lesson(teacher, price="15", title="First"), student, status=AssignmentStatus.FAILED
        )
        second = await make_assignment(
            await make_lesson(teacher, price="15", title="Second"), student, status=AssignmentStatus.FAILED
        )

        assert (await _purchase(client, student, first.id)).json() == {"success": True}
        response = await _purchase(client, student, second.id)
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Not enough savings to purchase this lesson."}

        purchases = (await db.execute(
            select(PointTransaction).where(PointTransaction.reason == PointReason.MARKETPLACE_PURCHASE.value)
        )).scalars().all()
        assert [p.assignment_id for p in purchases] == [first.id]
        assert (await reload(Assignment, second.id)).status == AssignmentStatus.FAILED.value
        assert await ledger.available_savings(db, student.id) == Decimal("5")

    async def test_student_locked_before_savings_read(
        self, client: AsyncClient, teacher, student, make_lesson, make_assignment, earn_savings
    ):
        await earn_savings(student, "20")
        failed = await make_assignment(
            await make_lesson(teacher, price="15"), student, status=AssignmentStatus.FAILED
        )
        calls: list[str] = []
        real_lock, real_savings = ledger.lock_user, ledger.available_savings

        async def lock_user(db, user_id):
            calls.append("lock")
            return await real_lock(db, user_id)

        async def available_savings(db, user_id):
            calls.append("savings")
            return await real_savings(db, user_id)

        with patch.object(ledger, "lock_user", lock_user), patch.object(ledger, "available_savings", available_savings):
            response = await _purchase(client, student, failed.id)

        assert response.json() == {"success": True}
        assert calls.index("lock") < calls.index("savings")

    async def test_other_students_assignment(
        self, client: AsyncClient, make_user, teacher, student, make_lesson, make_assignment
    ):
        other = await make_user()
        failed = await make_assignment(await make_lesson(teacher), other, status=AssignmentStatus.FAILED)
        response = await _purchase(client, student, failed.id)
        assert response.status_code == 404
        assert response.json()["success"] is False

    async def test_game_penalties_reduce_savings(
        self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment, earn_savings
    ):
        await earn_savings(student, "20")
        await ledger.record(
            db, user_id=student.id, points=-50, amount_euro=Decimal("-10"), reason=PointReason.ARKANING_GAME
        )
        await db.commit()
        failed = await make_assignment(
            await make_lesson(teacher, price="15"), student, status=AssignmentStatus.FAILED
        )
        response = await _purchase(client, student, failed.id)
        assert response.status_code == 400
        assert response.json()["error"] == "Not enough savings to purchase this lesson."


@pytest.mark.asyncio
class TestListing:
    async def test_lists_reclaimable_only(
        self, client: AsyncClient, teacher, student, make_lesson, make_assignment, earn_savings
    ):
        await earn_savings(student, "20")
        failed = await make_assignment(
            await make_lesson(teacher, price="15", title="Failed one"), student, status=AssignmentStatus.FAILED
        )
        lapsed = await make_assignment(
            await make_lesson(teacher, price="3", title="Lapsed one"),
            student,
            deadline=utc_now() - timedelta(days=1),
        )
        await make_assignment(await make_lesson(teacher, title="Still open"), student)

        response = await client.get("/api/v1/marketplace", headers=auth_headers(student))
        assert response.status_code == 200
        data = response.json()
        assert data["savings"] == 20
        assert {item["assignmentId"] for item in data["items"]} == {failed.id, lapsed.id}

        await _purchase(client, student, failed.id)
        data = (await client.get("/api/v1/marketplace", headers=auth_headers(student))).json()
        assert [item["title"] for item in data["items"]] == ["Lapsed one"]
        assert data["savings"] == 5

    async def test_teachers_have_no_marketplace(self, client: AsyncClient, teacher):
        response = await client.get("/api/v1/marketplace", headers=auth_headers(teacher))
        assert response.status_code == 403
