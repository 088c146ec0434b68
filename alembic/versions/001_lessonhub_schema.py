"""LessonHUB schema: users, lessons, assignments, reward ledger, badges.

Revision ID: 001_lessonhub_schema
Revises: None
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_lessonhub_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            email VARCHAR(320) UNIQUE NOT NULL,
            name VARCHAR(128),
            role VARCHAR(16) NOT NULL DEFAULT 'STUDENT',
            total_points BIGINT NOT NULL DEFAULT 0,
            is_suspended BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Lessons ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS lessons (
            id BIGSERIAL PRIMARY KEY,
            teacher_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type VARCHAR(32) NOT NULL,
            title VARCHAR(256) NOT NULL,
            price NUMERIC(10, 2) NOT NULL DEFAULT 0,
            difficulty INTEGER NOT NULL DEFAULT 1,
            assignment_notification VARCHAR(32) NOT NULL DEFAULT 'NOT_ASSIGNED',
            scheduled_assignment_date TIMESTAMPTZ,
            config JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_lessons_teacher ON lessons(teacher_id)")

    # --- Assignments ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS assignments (
            id BIGSERIAL PRIMARY KEY,
            lesson_id BIGINT NOT NULL REFERENCES lessons(id) ON DELETE CASCADE,
            student_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            status VARCHAR(16) NOT NULL DEFAULT 'PENDING',
            assigned_at TIMESTAMPTZ NOT NULL,
            start_date TIMESTAMPTZ NOT NULL,
            deadline TIMESTAMPTZ NOT NULL,
            original_deadline TIMESTAMPTZ,
            answers JSONB,
            student_notes TEXT,
            score DOUBLE PRECISION,
            teacher_comments TEXT,
            points_awarded INTEGER NOT NULL DEFAULT 0,
            extra_points INTEGER NOT NULL DEFAULT 0,
            submitted_at TIMESTAMPTZ,
            graded_at TIMESTAMPTZ,
            reminder_sent_at TIMESTAMPTZ,
            notify_on_start_date BOOLEAN NOT NULL DEFAULT false,
            news_article_tap_count INTEGER NOT NULL DEFAULT 0,
            composer_extra_tries INTEGER NOT NULL DEFAULT 0,
            CONSTRAINT uq_assignments_lesson_student UNIQUE (lesson_id, student_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_assignments_student_status
        ON assignments(student_id, status)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_assignments_status_deadline
        ON assignments(status, deadline)
    """)

    # --- Per-type side tables ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS news_article_word_taps (
            id BIGSERIAL PRIMARY KEY,
            assignment_id BIGINT NOT NULL REFERENCES assignments(id) ON DELETE CASCADE,
            normalized_word VARCHAR(128) NOT NULL,
            tap_count INTEGER NOT NULL DEFAULT 1,
            first_tapped_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            last_tapped_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_news_taps_assignment_word UNIQUE (assignment_id, normalized_word)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS lyric_lesson_attempts (
            id BIGSERIAL PRIMARY KEY,
            lesson_id BIGINT NOT NULL REFERENCES lessons(id) ON DELETE CASCADE,
            student_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            assignment_id BIGINT REFERENCES assignments(id) ON DELETE SET NULL,
            score_percent DOUBLE PRECISION,
            time_taken_seconds INTEGER,
            answers JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_lyric_attempts_lesson_student
        ON lyric_lesson_attempts(lesson_id, student_id)
    """)

    # --- Reward ledger (append-only) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS point_transactions (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            assignment_id BIGINT REFERENCES assignments(id) ON DELETE SET NULL,
            points INTEGER NOT NULL,
            amount_euro NUMERIC(12, 4) NOT NULL DEFAULT 0,
            reason VARCHAR(32) NOT NULL,
            note VARCHAR(256),
            idempotency_key VARCHAR(256) UNIQUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_point_tx_user_created
        ON point_transactions(user_id, created_at)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_point_tx_assignment_reason
        ON point_transactions(assignment_id, reason)
    """)

    # --- Badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badge_definitions (
            id SERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            points_bonus INTEGER NOT NULL DEFAULT 0,
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_badges (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            badge_id INTEGER NOT NULL REFERENCES badge_definitions(id),
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_badges_user_badge UNIQUE (user_id, badge_id)
        )
    """)

    # --- Notifications ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notification_log (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT REFERENCES users(id) ON DELETE SET NULL,
            assignment_id BIGINT REFERENCES assignments(id) ON DELETE SET NULL,
            template VARCHAR(64) NOT NULL,
            recipient VARCHAR(320) NOT NULL,
            status VARCHAR(16) NOT NULL,
            error TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notification_log_assignment
        ON notification_log(assignment_id, template)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notification_log CASCADE")
    op.execute("DROP TABLE IF EXISTS user_badges CASCADE")
    op.execute("DROP TABLE IF EXISTS badge_definitions CASCADE")
    op.execute("DROP TABLE IF EXISTS point_transactions CASCADE")
    op.execute("DROP TABLE IF EXISTS lyric_lesson_attempts CASCADE")
    op.execute("DROP TABLE IF EXISTS news_article_word_taps CASCADE")
    op.execute("DROP TABLE IF EXISTS assignments CASCADE")
    op.execute("DROP TABLE IF EXISTS lessons CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
