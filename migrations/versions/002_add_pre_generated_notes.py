"""Add pre_generated_notes table for curated study notes.

Revision ID: 002
Revises: 001
Create Date: 2025-07-02

"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create pre_generated_notes table.

    - SQLite: content and tags stored as JSON text
    - PostgreSQL: content as JSONB, tags as TEXT[]
    """
    conn = op.get_bind()
    dialect_name = conn.dialect.name

    log_msg = f"Adding pre_generated_notes table for {dialect_name}"
    print(log_msg)

    if dialect_name == "sqlite":
        _create_sqlite_notes()
    elif dialect_name == "postgresql":
        _create_postgresql_notes()
    else:
        raise ValueError(f"Unsupported dialect: {dialect_name}")


def downgrade() -> None:
    """Drop pre_generated_notes table."""
    op.drop_table("pre_generated_notes")


def _create_sqlite_notes() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS pre_generated_notes (
            id TEXT PRIMARY KEY,
            topic TEXT NOT NULL UNIQUE,
            category TEXT NOT NULL DEFAULT 'general',
            difficulty TEXT NOT NULL DEFAULT 'intermediate',
            content TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'published',
            priority INTEGER NOT NULL DEFAULT 0,
            view_count INTEGER NOT NULL DEFAULT 0,
            tags TEXT NOT NULL DEFAULT '[]',
            estimated_read_time INTEGER NOT NULL DEFAULT 5,
            created_at TEXT,
            updated_at TEXT
        )
    """.strip()
    )


def _create_postgresql_notes() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS pre_generated_notes (
            id UUID PRIMARY KEY,
            topic TEXT NOT NULL UNIQUE,
            category TEXT NOT NULL DEFAULT 'general',
            difficulty TEXT NOT NULL DEFAULT 'intermediate',
            content JSONB NOT NULL,
            status TEXT NOT NULL DEFAULT 'published',
            priority INTEGER NOT NULL DEFAULT 0,
            view_count INTEGER NOT NULL DEFAULT 0,
            tags TEXT[] NOT NULL DEFAULT '{}',
            estimated_read_time INTEGER NOT NULL DEFAULT 5,
            created_at TIMESTAMPTZ DEFAULT now(),
            updated_at TIMESTAMPTZ DEFAULT now()
        )
    """.strip()
    )

    # Published notes are looked up by status and ordered by views
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_pre_generated_notes_status_views
        ON pre_generated_notes(status, view_count DESC)
    """.strip()
    )
