"""PostgreSQL adapter for MindGains store operations."""

import logging
import os
import uuid
from contextlib import contextmanager
from datetime import date, timedelta
from pathlib import Path

try:
    import psycopg2
    import psycopg2.extras
    from psycopg2 import pool
    from psycopg2.extensions import connection as pg_connection
    from psycopg2.extras import Json, RealDictCursor
except ImportError:
    psycopg2 = None
    pg_connection = None

from core.models import (
    CounterRow,
    LegacyUserRow,
    PreGeneratedNote,
    QuizAttemptEvent,
    QuizOutcome,
)
from core.store_adapter import (
    AdapterError,
    ConnectionError,
    Failed,
    Found,
    NotFound,
    QueryError,
    StoreAdapter,
)

log = logging.getLogger("mindgains.postgres_adapter")

_STREAK_EXPR = """
    CASE
        WHEN user_stats.last_activity_date = %(today)s
            THEN GREATEST(COALESCE(user_stats.current_streak, 0), 1)
        WHEN user_stats.last_activity_date = %(yesterday)s
            THEN COALESCE(user_stats.current_streak, 0) + 1
        ELSE 1
    END
"""

_NOTE_COLUMNS = (
    "id::text AS id, topic, category, difficulty, content, status, priority, "
    "view_count, tags, estimated_read_time"
)


class PostgreSQLAdapter(StoreAdapter):
    """PostgreSQL store adapter implementation.

    Uses psycopg2 with connection pooling and SSL/TLS support. All counter
    updates are single server-side statements, so two quiz completions for
    the same user never overwrite each other.
    """

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        sslmode: str = "require",
        min_connections: int = 1,
        max_connections: int = 10,
    ):
        """Initialize PostgreSQL adapter.

        Args:
            host: Database host address
            port: Database port (default: 5432)
            database: Database name
            user: Database user
            password: Database password
            sslmode: SSL mode (disable, allow, prefer, require, verify-ca, verify-full)
            min_connections: Minimum number of connections in pool
            max_connections: Maximum number of connections in pool
        """
        if psycopg2 is None:
            raise ImportError(
                "psycopg2 is not installed. Install it with: pip install psycopg2-binary"
            )

        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.sslmode = sslmode
        self.min_connections = min_connections
        self.max_connections = max_connections

        self._connection_pool: "pool.SimpleConnectionPool | None" = None

    def initialize(self) -> None:
        """Open the connection pool and bring the schema up to date."""
        try:
            self._connection_pool = pool.SimpleConnectionPool(
                minconn=self.min_connections,
                maxconn=self.max_connections,
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.user,
                password=self.password,
                sslmode=self.sslmode,
                connect_timeout=10,
            )
            log.info(f"Created PostgreSQL connection pool: {self.host}:{self.port}/{self.database}")
        except Exception as e:
            raise ConnectionError(f"Failed to create connection pool: {e}") from e

        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT version()")
                version = cursor.fetchone()[0]
                log.info(f"Connected to PostgreSQL: {version[:50]}...")
        except Exception as e:
            raise ConnectionError(f"Failed to connect to database: {e}") from e

        try:
            from core.postgres_migration_runner import PostgreSQLMigrationRunner

            runner = PostgreSQLMigrationRunner(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.user,
                password=self.password,
                sslmode=self.sslmode,
                migration_dir=self._find_migration_dir(),
            )
            if runner.check_needs_upgrade():
                log.info("Running Alembic database migrations")
                runner.upgrade()
                log.info("Database migrations completed successfully")
        except Exception as e:
            log.error(f"Migration failed: {e}")
            log.warning("Falling back to direct schema creation")
            try:
                with self.get_connection() as conn:
                    try:
                        self._create_schema(conn)
                        conn.commit()
                    except Exception:
                        conn.rollback()
                        raise
            except Exception as schema_error:
                raise ConnectionError(
                    f"Failed to create database schema: {schema_error}"
                ) from schema_error

    def _find_migration_dir(self) -> Path:
        """Locate the migrations directory next to the core package."""
        core_dir = Path(os.path.dirname(os.path.abspath(__file__)))
        migration_dir = core_dir.parent / "migrations"
        if not migration_dir.exists():
            migration_dir = core_dir / "migrations"
        log.debug(f"Using migration directory: {migration_dir}")
        return migration_dir

    @contextmanager
    def get_connection(self):
        """Get a database connection from the connection pool."""
        if self._connection_pool is None:
            raise AdapterError("Adapter not initialized. Call initialize() first.")

        conn = self._connection_pool.getconn()
        try:
            yield conn
        finally:
            self._connection_pool.putconn(conn)

    def close(self) -> None:
        """Close all database connections and cleanup resources."""
        if self._connection_pool:
            self._connection_pool.closeall()
            self._connection_pool = None
            log.info("PostgreSQL connection pool closed")

    # ========== Table Creation ==========

    def _create_schema(self, conn: "pg_connection") -> None:
        """Create all tables (used when Alembic is unavailable)."""
        cursor = conn.cursor()
        cursor.execute("""
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
        """)
        cursor.execute("""
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
        """)
        cursor.execute("""
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
        """)
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_quiz_attempts_user_score "
            "ON quiz_attempts(user_id, score DESC)"
        )
        cursor.execute("""
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
        """)

    # ========== Stats Reads ==========

    def _fetch_one(self, query: str, params: tuple) -> dict | None:
        with self.get_connection() as conn:
            try:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                cursor.execute(query, params)
                row = cursor.fetchone()
                conn.commit()
                return row
            except Exception:
                conn.rollback()
                raise

    def fetch_counter_row(self, user_id: str):
        """Get the user_stats row for a user."""
        try:
            row = self._fetch_one(
                "SELECT * FROM user_stats WHERE user_id = %s",
                (user_id,),
            )
        except Exception as e:
            return Failed(QueryError(f"user_stats lookup failed: {e}"))
        if row is None:
            return NotFound()
        return Found(CounterRow.model_validate(dict(row)))

    def fetch_legacy_row(self, user_id: str):
        """Get the users row for a user."""
        try:
            row = self._fetch_one(
                "SELECT id::text AS id, email, username, xp, level, streak "
                "FROM users WHERE id = %s",
                (user_id,),
            )
        except Exception as e:
            return Failed(QueryError(f"users lookup failed: {e}"))
        if row is None:
            return NotFound()
        return Found(LegacyUserRow.model_validate(dict(row)))

    def fetch_best_score(self, user_id: str):
        """Get the highest quiz score for a user."""
        try:
            row = self._fetch_one(
                "SELECT score FROM quiz_attempts WHERE user_id = %s "
                "ORDER BY score DESC LIMIT 1",
                (user_id,),
            )
        except Exception as e:
            return Failed(QueryError(f"best score lookup failed: {e}"))
        if row is None or row["score"] is None:
            return NotFound()
        return Found(int(row["score"]))

    # ========== Stats Writes ==========

    def add_legacy_xp(self, user_id: str, xp_earned: int):
        """Atomically add XP to the users row and recompute its level."""
        try:
            with self.get_connection() as conn:
                try:
                    cursor = conn.cursor(cursor_factory=RealDictCursor)
                    cursor.execute(
                        """
                        UPDATE users
                        SET xp = COALESCE(xp, 0) + %(xp_earned)s,
                            level = (COALESCE(xp, 0) + %(xp_earned)s) / 1000 + 1,
                            updated_at = now()
                        WHERE id = %(user_id)s
                        RETURNING id::text AS id, email, username, xp, level, streak
                    """,
                        {"xp_earned": xp_earned, "user_id": user_id},
                    )
                    row = cursor.fetchone()
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise
        except Exception as e:
            return Failed(QueryError(f"users XP update failed: {e}"))
        if row is None:
            return NotFound()
        return Found(LegacyUserRow.model_validate(dict(row)))

    def apply_quiz_to_counter_row(
        self,
        user_id: str,
        outcome: QuizOutcome,
        seed_xp: int,
        activity_date: date,
    ) -> CounterRow:
        """Insert or increment the user_stats row in one statement."""
        params = {
            "user_id": user_id,
            "seed_xp": seed_xp,
            "seed_level": seed_xp // 1000 + 1,
            "xp_earned": outcome.xp_earned,
            "correct": outcome.correct_answers,
            "attempted": outcome.total_questions,
            "accuracy": outcome.accuracy,
            "study_minutes": outcome.study_minutes,
            "today": activity_date,
            "yesterday": activity_date - timedelta(days=1),
        }
        try:
            with self.get_connection() as conn:
                try:
                    cursor = conn.cursor(cursor_factory=RealDictCursor)
                    cursor.execute(
                        f"""
                        INSERT INTO user_stats (
                            user_id, total_xp, current_level, current_streak, best_streak,
                            total_quizzes_completed, total_correct_answers,
                            total_questions_attempted, average_accuracy,
                            total_study_time_minutes, last_activity_date, updated_at
                        ) VALUES (
                            %(user_id)s, %(seed_xp)s, %(seed_level)s, 1, 1,
                            1, %(correct)s,
                            %(attempted)s, %(accuracy)s,
                            %(study_minutes)s, %(today)s, now()
                        )
                        ON CONFLICT (user_id) DO UPDATE SET
                            total_xp = COALESCE(user_stats.total_xp, 0) + %(xp_earned)s,
                            current_level =
                                (COALESCE(user_stats.total_xp, 0) + %(xp_earned)s) / 1000 + 1,
                            current_streak = {_STREAK_EXPR},
                            best_streak = GREATEST(
                                COALESCE(user_stats.best_streak, 0), {_STREAK_EXPR}
                            ),
                            total_quizzes_completed =
                                COALESCE(user_stats.total_quizzes_completed, 0) + 1,
                            total_correct_answers =
                                COALESCE(user_stats.total_correct_answers, 0) + %(correct)s,
                            total_questions_attempted =
                                COALESCE(user_stats.total_questions_attempted, 0) + %(attempted)s,
                            average_accuracy = (
                                200 * (COALESCE(user_stats.total_correct_answers, 0) + %(correct)s)
                                + COALESCE(user_stats.total_questions_attempted, 0) + %(attempted)s
                            ) / (
                                2 * (COALESCE(user_stats.total_questions_attempted, 0)
                                     + %(attempted)s)
                            ),
                            total_study_time_minutes =
                                COALESCE(user_stats.total_study_time_minutes, 0)
                                + %(study_minutes)s,
                            last_activity_date = %(today)s,
                            updated_at = now()
                        RETURNING *
                    """,
                        params,
                    )
                    row = cursor.fetchone()
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise
        except Exception as e:
            raise QueryError(f"user_stats upsert failed: {e}") from e
        return CounterRow.model_validate(dict(row))

    def insert_quiz_attempt(self, event: QuizAttemptEvent) -> None:
        """Append a quiz attempt to the event log."""
        try:
            with self.get_connection() as conn:
                try:
                    cursor = conn.cursor()
                    cursor.execute(
                        """
                        INSERT INTO quiz_attempts (
                            user_id, quiz_type, score, total_questions,
                            xp_earned, time_taken_seconds, completed_at
                        ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                    """,
                        (
                            event.user_id,
                            event.quiz_type,
                            event.score,
                            event.total_questions,
                            event.xp_earned,
                            event.time_taken_seconds,
                            event.completed_at,
                        ),
                    )
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise
        except Exception as e:
            raise QueryError(f"quiz_attempts insert failed: {e}") from e

    def ensure_user(self, user_id: str, email: str | None, username: str | None) -> None:
        """Create the users row if it does not exist yet."""
        try:
            with self.get_connection() as conn:
                try:
                    cursor = conn.cursor()
                    cursor.execute(
                        """
                        INSERT INTO users (id, email, username, xp, level, streak)
                        VALUES (%s, %s, %s, 0, 1, 0)
                        ON CONFLICT (id) DO NOTHING
                    """,
                        (user_id, email, username),
                    )
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise
        except Exception as e:
            raise QueryError(f"users insert failed: {e}") from e

    # ========== Study Notes ==========

    def fetch_published_note(self, topic: str):
        """Get a published pre-generated note by exact topic."""
        try:
            row = self._fetch_one(
                f"SELECT {_NOTE_COLUMNS} FROM pre_generated_notes "
                "WHERE topic = %s AND status = 'published'",
                (topic,),
            )
        except Exception as e:
            return Failed(QueryError(f"note lookup failed: {e}"))
        if row is None:
            return NotFound()
        return Found(PreGeneratedNote.model_validate(dict(row)))

    def fetch_note_by_topic(self, topic: str):
        """Get a note by exact topic, whatever its status."""
        try:
            row = self._fetch_one(
                f"SELECT {_NOTE_COLUMNS} FROM pre_generated_notes WHERE topic = %s", (topic,)
            )
        except Exception as e:
            return Failed(QueryError(f"note lookup failed: {e}"))
        if row is None:
            return NotFound()
        return Found(PreGeneratedNote.model_validate(dict(row)))

    def increment_note_view_count(self, note_id: str) -> None:
        """Add one to a note's view count."""
        try:
            with self.get_connection() as conn:
                try:
                    cursor = conn.cursor()
                    cursor.execute(
                        "UPDATE pre_generated_notes SET view_count = view_count + 1 WHERE id = %s",
                        (note_id,),
                    )
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise
        except Exception as e:
            raise QueryError(f"view count update failed: {e}") from e

    def _fetch_notes(self, query: str, params: tuple) -> list[PreGeneratedNote]:
        with self.get_connection() as conn:
            try:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                cursor.execute(query, params)
                rows = cursor.fetchall()
                conn.commit()
            except Exception as e:
                conn.rollback()
                raise QueryError(f"note query failed: {e}") from e
        return [PreGeneratedNote.model_validate(dict(row)) for row in rows]

    def search_notes(self, term: str, limit: int = 10) -> list[PreGeneratedNote]:
        """Search published notes by topic substring or exact tag."""
        return self._fetch_notes(
            f"""
            SELECT {_NOTE_COLUMNS} FROM pre_generated_notes
            WHERE status = 'published' AND (topic ILIKE %s OR %s = ANY(tags))
            ORDER BY priority DESC
            LIMIT %s
        """,
            (f"%{term}%", term, limit),
        )

    def get_popular_notes(self, limit: int = 5) -> list[PreGeneratedNote]:
        """Get the most viewed published notes."""
        return self._fetch_notes(
            f"""
            SELECT {_NOTE_COLUMNS} FROM pre_generated_notes
            WHERE status = 'published'
            ORDER BY view_count DESC
            LIMIT %s
        """,
            (limit,),
        )

    def upsert_note(self, note: PreGeneratedNote) -> str:
        """Insert or replace a note keyed by topic."""
        note_id = note.id or str(uuid.uuid4())
        try:
            with self.get_connection() as conn:
                try:
                    cursor = conn.cursor()
                    cursor.execute(
                        """
                        INSERT INTO pre_generated_notes (
                            id, topic, category, difficulty, content, status, priority,
                            view_count, tags, estimated_read_time
                        ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        ON CONFLICT (topic) DO UPDATE SET
                            category = EXCLUDED.category,
                            difficulty = EXCLUDED.difficulty,
                            content = EXCLUDED.content,
                            status = EXCLUDED.status,
                            priority = EXCLUDED.priority,
                            tags = EXCLUDED.tags,
                            estimated_read_time = EXCLUDED.estimated_read_time,
                            updated_at = now()
                        RETURNING id::text
                    """,
                        (
                            note_id,
                            note.topic,
                            note.category,
                            note.difficulty,
                            Json(note.content.model_dump(by_alias=True)),
                            note.status,
                            note.priority,
                            note.view_count,
                            note.tags,
                            note.estimated_read_time,
                        ),
                    )
                    stored_id = cursor.fetchone()[0]
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise
        except Exception as e:
            raise QueryError(f"note upsert failed: {e}") from e
        return stored_id
