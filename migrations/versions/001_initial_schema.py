"""Initial schema migration.

Creates the users, user_stats and quiz_attempts tables for both SQLite and
PostgreSQL.

Revision ID: 001
Revises:
Create Date: 2025-06-14

"""
from alembic import op


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create initial store schema.

    Detects database dialect and creates appropriate schema:
    - SQLite: TEXT ids and ISO date strings
    - PostgreSQL: UUID ids, DATE and TIMESTAMPTZ columns
    """
    conn = op.get_bind()
    dialect_name = conn.dialect.name

    log_msg = f"Creating initial schema for {dialect_name}"
    print(log_msg)

    if dialect_name == 'sqlite':
        _create_sqlite_schema()
    elif dialect_name == 'postgresql':
        _create_postgresql_schema()
    else:
        raise ValueError(f"Unsupported dialect: {dialect_name}")


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('quiz_attempts')
    op.drop_table('user_stats')
    op.drop_table('users')


def _create_sqlite_schema() -> None:
    """Create SQLite schema."""

    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            email TEXT,
            username TEXT,
            xp INTEGER DEFAULT 0,
            level INTEGER DEFAULT 1,
            streak INTEGER DEFAULT 0,
            created_at TEXT,
            updated_at TEXT
        )
    """.strip())

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_stats (
            user_id TEXT PRIMARY KEY,
            total_xp INTEGER DEFAULT 0,
            current_level INTEGER DEFAULT 1,
            current_streak INTEGER DEFAULT 0,
            best_streak INTEGER DEFAULT 0,
            total_quizzes_completed INTEGER DEFAULT 0,
            total_correct_answers INTEGER DEFAULT 0,
            total_questions_attempted INTEGER DEFAULT 0,
            average_accuracy INTEGER DEFAULT 0,
            total_study_time_minutes INTEGER DEFAULT 0,
            last_activity_date TEXT,
            updated_at TEXT
        )
    """.strip())

    op.execute("""
        CREATE TABLE IF NOT EXISTS quiz_attempts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            quiz_type TEXT NOT NULL,
            score INTEGER NOT NULL,
            total_questions INTEGER NOT NULL,
            xp_earned INTEGER NOT NULL DEFAULT 0,
            time_taken_seconds INTEGER,
            completed_at TEXT NOT NULL
        )
    """.strip())

    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_quiz_attempts_user_score "
        "ON quiz_attempts(user_id, score DESC)"
    )


def _create_postgresql_schema() -> None:
    """Create PostgreSQL schema."""

    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id UUID PRIMARY KEY,
            email TEXT,
            username TEXT,
            xp INTEGER DEFAULT 0,
            level INTEGER DEFAULT 1,
            streak INTEGER DEFAULT 0,
            created_at TIMESTAMPTZ DEFAULT now(),
            updated_at TIMESTAMPTZ DEFAULT now()
        )
    """.strip())

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_stats (
            user_id UUID PRIMARY KEY,
            total_xp INTEGER DEFAULT 0,
            current_level INTEGER DEFAULT 1,
            current_streak INTEGER DEFAULT 0,
            best_streak INTEGER DEFAULT 0,
            total_quizzes_completed INTEGER DEFAULT 0,
            total_correct_answers INTEGER DEFAULT 0,
            total_questions_attempted INTEGER DEFAULT 0,
            average_accuracy INTEGER DEFAULT 0,
            total_study_time_minutes INTEGER DEFAULT 0,
            last_activity_date DATE,
            updated_at TIMESTAMPTZ DEFAULT now()
        )
    """.strip())

    op.execute("""
        CREATE TABLE IF NOT EXISTS quiz_attempts (
            id SERIAL PRIMARY KEY,
            user_id UUID NOT NULL,
            quiz_type TEXT NOT NULL,
            score INTEGER NOT NULL,
            total_questions INTEGER NOT NULL,
            xp_earned INTEGER NOT NULL DEFAULT 0,
            time_taken_seconds INTEGER,
            completed_at TIMESTAMPTZ NOT NULL
        )
    """.strip())

    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_quiz_attempts_user_score "
        "ON quiz_attempts(user_id, score DESC)"
    )
