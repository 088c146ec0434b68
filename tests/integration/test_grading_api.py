"""Teacher actions on assignments: grading, failing, reminders and deadlines."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from conftest import auth_headers, utc_now
from lessonhub.db.models import (
    Assignment,
    AssignmentStatus,
    LessonType,
    NotificationLog,
    PointReason,
    PointTransaction,
    User,
    UserBadge,
    UserRole,
)
from lessonhub.ledger import service as ledger


@pytest.mark.asyncio
class TestGrade:
    async def test_grade_awards_points_and_badge(
        self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment, reload, outbox
    ):
        lesson = await make_lesson(teacher, title="Past tense")
        assignment = await make_assignment(lesson, student, status=AssignmentStatus.COMPLETED)

        response = await client.patch(
            f"/api/v1/assignments/{assignment.id}/grade",
            json={"score": 8, "teacherComments": "Nice work"},
            headers=auth_headers(teacher),
        )
        assert response.status_code == 200
        data = response.json()
        # 8 * 10 + difficulty 5 + on time 20 + graded within a day 20
        assert data["pointsAwarded"] == 125
        assert data["badges"] == ["first-steps"]
        assert data["assignment"]["status"] == "GRADED"
        assert data["assignment"]["teacherComments"] == "Nice work"

        assert (await reload(User, student.id)).total_points == 145
        reasons = (await db.execute(
            select(PointTransaction.reason, PointTransaction.points).order_by(PointTransaction.id)
        )).all()
        assert [tuple(r) for r in reasons] == [
            (PointReason.ASSIGNMENT_GRADED.value, 125),
            (PointReason.BADGE_BONUS.value, 20),
        ]

        assert [m["subject"] for m in outbox] == ["Your lesson has been graded: Past tense"]
        log = (await db.execute(select(NotificationLog))).scalars().all()
        assert [(n.template, n.status, n.assignment_id) for n in log] == [("graded", "sent", assignment.id)]

    async def test_badge_awarded_once(self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment):
        for title in ("One", "Two"):
            lesson = await make_lesson(teacher, title=title)
            assignment = await make_assignment(lesson, student, status=AssignmentStatus.COMPLETED)
            await client.patch(
                f"/api/v1/assignments/{assignment.id}/grade", json={"score": 6}, headers=auth_headers(teacher)
            )
        badges = (await db.execute(select(UserBadge).where(UserBadge.user_id == student.id))).scalars().all()
        assert [b.badge.slug for b in badges] == ["first-steps"]

    async def test_badge_bonus_counts_towards_later_badges(
        self, client: AsyncClient, db, teacher, student, make_lesson, make_assignment, reload
    ):
        await ledger.record(db, user_id=student.id, points=310, reason=PointReason.MANUAL_ADJUSTMENT)
        await db.commit()
        assignment = await make_assignment(await make_lesson(teacher), student, status=AssignmentStatus.COMPLETED)

        response = await client.patch(
            f"/api/v1/assignments/{assignment.id}/grade", json={"score": 10}, headers=auth_headers(teacher)
        )
        assert response.status_code == 200
        # 310 + 145 graded + 20 first-steps + 25 perfect-10 reaches 500
        assert response.json()["pointsAwarded"] == 145
        assert response.json()["badges"] == ["first-steps", "perfect-10", "points-hoarder"]
        assert (await reload(User, student.id)).total_points == 550

    async def test_grade_pending_rejected(self, client: AsyncClient, teacher, student, make_lesson, make_assignment, reload):
        assignment = await make_assignment(await make_lesson(teacher), student)
        response = await client.patch(
            f"/api/v1/assignments/{assignment.id}/grade", json={"score": 5}, headers=auth_headers(teacher)
        )
        assert response.status_code == 400
        assert (await reload(Assignment, assignment.id)).status == AssignmentStatus.PENDING.value

    async def test_only_lesson_teacher_grades(
        self, client: AsyncClient, make_user, teacher, student, make_lesson, make_assignment
    ):
        other = await make_user(UserRole.TEACHER)
        assignment = await make_assignment(await make_lesson(teacher), student, status=AssignmentStatus.COMPLETED)
        response = await client.patch(
            f"/api/v1/assignments/{assignment.id}/grade", json={"score": 5}, headers=auth_headers(other)
        )
        assert response.status_code == 403

    async def test_students_cannot_grade(self, client: AsyncClient, teacher, student, make_lesson, make_assignment):
        assignment = await make_assignment(await make_lesson(teacher), student, status=AssignmentStatus.COMPLETED)
        response = await client.patch(
            f"/api/v1/assignments/{assignment.id}/grade", json={"score": 5}, headers=auth_headers(student)
        )
        assert response.status_code == 403

    async def test_score_out_of_range(self, client: AsyncClient, teacher, student, make_lesson, make_assignment):
        assignment = await make_assignment(await make_lesson(teacher), student, status=AssignmentStatus.COMPLETED)
        response = await client.patch(
            f"/api/v1/assignments/{assignment.id}/grade", json={"score": 11}, headers=auth_headers(teacher)
        )
        assert response.status_code == 400

    async def test_failure_mid_grading_rolls_back(
        self, database, fake_redis, outbox, db, teacher, student, make_lesson, make_assignment, reload
    ):
        """A crash after the points are posted leaves no trace of the grade."""
        from lessonhub.main import create_app

        assignment = await make_assignment(await make_lesson(teacher), student, status=AssignmentStatus.COMPLETED)
        transport = ASGITransport(app=create_app(), raise_app_exceptions=False)
        with patch(
            "lessonhub.assignments.service.award_badges_for_student",
            AsyncMock(side_effect=RuntimeError("badge store offline")),
        ):
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                response = await ac.patch(
                    f"/api/v1/assignments/{assignment.id}/grade", json={"score": 9}, headers=auth_headers(teacher)
                )

        assert response.status_code == 500
        stored = await reload(Assignment, assignment.id)
        assert stored.status == AssignmentStatus.COMPLETED.value
        assert stored.score is None
        assert stored.points_awarded == 0
        assert (await reload(User, student.id)).total_points == 0
        assert (await db.execute(select(PointTransaction))).scalars().all() == []
        assert not outbox


@pytest.mark.asyncio
class TestFail:
    async def test_teacher_fails_pending(self, client: AsyncClient, teacher, student, make_lesson, make_assignment, outbox):
        assignment = await make_assignment(await make_lesson(teacher, title="Idioms"), student)
        response = await client.post(f"/api/v1/assignments/{assignment.id}/fail", headers=auth_headers(teacher))
        assert response.status_code == 200
        assert response.json()["status"] == "FAILED"
        assert len(outbox) == 1
        assert outbox[0]["to"] == student.email

    async def test_cannot_fail_graded(self, client: AsyncClient, teacher, student, make_lesson, make_assignment):
        assignment = await make_assignment(
            await make_lesson(teacher), student, status=AssignmentStatus.GRADED, score=7
        )
        response = await client.post(f"/api/v1/assignments/{assignment.id}/fail", headers=auth_headers(teacher))
        assert response.status_code == 400


@pytest.mark.asyncio
class TestRemindAndDeadline:
    async def test_manual_reminder(self, client: AsyncClient, teacher, student, make_lesson, make_assignment, outbox):
        assignment = await make_assignment(await make_lesson(teacher, title="Verbs"), student)
        response = await client.post(f"/api/v1/assignments/{assignment.id}/remind", headers=auth_headers(teacher))
        assert response.status_code == 202
        assert outbox[0]["subject"] == "Ms Rossi sent you a reminder: Verbs"

    async def test_reminder_needs_pending(self, client: AsyncClient, teacher, student, make_lesson, make_assignment, outbox):
        assignment = await make_assignment(
            await make_lesson(teacher), student, status=AssignmentStatus.COMPLETED
        )
        response = await client.post(f"/api/v1/assignments/{assignment.id}/remind", headers=auth_headers(teacher))
        assert response.status_code == 400
        assert not outbox

    async def test_extend_deadline_keeps_original(
        self, client: AsyncClient, teacher, student, make_lesson, make_assignment, reload
    ):
        assignment = await make_assignment(await make_lesson(teacher), student)
        original = assignment.deadline
        new_deadline = utc_now() + timedelta(days=5)
        for _ in range(2):
            response = await client.patch(
                f"/api/v1/assignments/{assignment.id}/deadline",
                json={"deadline": new_deadline.isoformat()},
                headers=auth_headers(teacher),
            )
            assert response.status_code == 200
            new_deadline += timedelta(days=1)

        stored = await reload(Assignment, assignment.id)
        assert stored.original_deadline == original
        assert stored.deadline > original + timedelta(days=4)

    async def test_deadline_in_past_rejected(self, client: AsyncClient, teacher, student, make_lesson, make_assignment):
        assignment = await make_assignment(await make_lesson(teacher), student)
        response = await client.patch(
            f"/api/v1/assignments/{assignment.id}/deadline",
            json={"deadline": (utc_now() - timedelta(hours=1)).isoformat()},
            headers=auth_headers(teacher),
        )
        assert response.status_code == 400


@pytest.mark.asyncio
async def test_student_reads_own_assignment_only(
    client: AsyncClient, make_user, teacher, student, make_lesson, make_assignment
):
    assignment = await make_assignment(await make_lesson(teacher, LessonType.FLASHCARD), student)
    other = await make_user(UserRole.STUDENT)

    mine = await client.get(f"/api/v1/assignments/{assignment.id}", headers=auth_headers(student))
    assert mine.status_code == 200
    assert mine.json()["lesson"]["type"] == "FLASHCARD"

    theirs = await client.get(f"/api/v1/assignments/{assignment.id}", headers=auth_headers(other))
    assert theirs.status_code in (403, 404)

    listed = await client.get("/api/v1/assignments?status=PENDING", headers=auth_headers(student))
    assert [a["id"] for a in listed.json()] == [assignment.id]
