"""SQLite adapter for MindGains store operations.

Local stand-in for the hosted store, used for offline development and tests.
Mirrors the PostgreSQL schema and keeps every counter update inside a single
UPSERT statement so concurrent quiz completions cannot lose updates.
"""

import json
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

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

log = logging.getLogger("mindgains.sqlite_adapter")

# Streak after a quiz on :today, given the stored last_activity_date
_STREAK_EXPR = """
    CASE
        WHEN user_stats.last_activity_date = :today
            THEN MAX(COALESCE(user_stats.current_streak, 0), 1)
        WHEN user_stats.last_activity_date = :yesterday
            THEN COALESCE(user_stats.current_streak, 0) + 1
        ELSE 1
    END
"""


class SQLiteAdapter(StoreAdapter):
    """SQLite store adapter implementation."""

    def __init__(self, db_path: Path):
        """Initialize SQLite adapter.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._initialized = False
        self._write_lock = threading.Lock()

    def initialize(self) -> None:
        """Create all tables if they don't exist."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise ConnectionError(f"Cannot open database {self.db_path}: {e}") from e

        try:
            with conn:
                self._create_users_table(conn)
                self._create_user_stats_table(conn)
                self._create_quiz_attempts_table(conn)
                self._create_pre_generated_notes_table(conn)
        finally:
            conn.close()

        self._initialized = True
        log.info(f"SQLite store ready: {self.db_path}")

    @contextmanager
    def get_connection(self):
        """Get a connection; rows come back as sqlite3.Row."""
        if not self._initialized:
            raise AdapterError("Adapter not initialized. Call initialize() first.")

        conn = sqlite3.connect(self.db_path, timeout=30, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def close(self) -> None:
        """Nothing pooled; connections are closed after each call."""
        self._initialized = False

    # ========== Table Creation ==========

    def _create_users_table(self, conn: sqlite3.Connection) -> None:
        """Create users table."""
        conn.execute("""
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
        """)

    def _create_user_stats_table(self, conn: sqlite3.Connection) -> None:
        """Create user_stats table."""
        conn.execute("""
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
        """)

    def _create_quiz_attempts_table(self, conn: sqlite3.Connection) -> None:
        """Create quiz_attempts table."""
        conn.execute("""
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
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_quiz_attempts_user_score "
            "ON quiz_attempts(user_id, score DESC)"
        )

    def _create_pre_generated_notes_table(self, conn: sqlite3.Connection) -> None:
        """Create pre_generated_notes table."""
        conn.execute("""
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
        """)

    # ========== Stats Reads ==========

    def _fetch_one(self, query: str, params: tuple) -> "sqlite3.Row | None":
        with self.get_connection() as conn:
            return conn.execute(query, params).fetchone()

    def fetch_counter_row(self, user_id: str):
        """Get the user_stats row for a user."""
        try:
            row = self._fetch_one("SELECT * FROM user_stats WHERE user_id = ?", (user_id,))
        except (sqlite3.Error, AdapterError) as e:
            return Failed(QueryError(f"user_stats lookup failed: {e}"))
        if row is None:
            return NotFound()
        return Found(CounterRow.model_validate(dict(row)))

    def fetch_legacy_row(self, user_id: str):
        """Get the users row for a user."""
        try:
            row = self._fetch_one(
                "SELECT id, email, username, xp, level, streak FROM users WHERE id = ?",
                (user_id,),
            )
        except (sqlite3.Error, AdapterError) as e:
            return Failed(QueryError(f"users lookup failed: {e}"))
        if row is None:
            return NotFound()
        return Found(LegacyUserRow.model_validate(dict(row)))

    def fetch_best_score(self, user_id: str):
        """Get the highest quiz score for a user."""
        try:
            row = self._fetch_one(
                "SELECT score FROM quiz_attempts WHERE user_id = ? ORDER BY score DESC LIMIT 1",
                (user_id,),
            )
        except (sqlite3.Error, AdapterError) as e:
            return Failed(QueryError(f"best score lookup failed: {e}"))
        if row is None or row["score"] is None:
            return NotFound()
        return Found(int(row["score"]))

    # ========== Stats Writes ==========

    def add_legacy_xp(self, user_id: str, xp_earned: int):
        """Atomically add XP to the users row and recompute its level."""
        now = datetime.now(timezone.utc).isoformat()
        try:
            with self._write_lock, self.get_connection() as conn:
                with conn:
                    cursor = conn.execute(
                        """
                        UPDATE users
                        SET xp = COALESCE(xp, 0) + :xp_earned,
                            level = (COALESCE(xp, 0) + :xp_earned) / 1000 + 1,
                            updated_at = :now
                        WHERE id = :user_id
                    """,
                        {"xp_earned": xp_earned, "now": now, "user_id": user_id},
                    )
                    if cursor.rowcount == 0:
                        return NotFound()
                    row = conn.execute(
                        "SELECT id, email, username, xp, level, streak FROM users WHERE id = ?",
                        (user_id,),
                    ).fetchone()
        except (sqlite3.Error, AdapterError) as e:
            return Failed(QueryError(f"users XP update failed: {e}"))
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
            "today": activity_date.isoformat(),
            "yesterday": (activity_date - timedelta(days=1)).isoformat(),
            "now": datetime.now(timezone.utc).isoformat(),
        }
        try:
            with self._write_lock, self.get_connection() as conn:
                with conn:
                    conn.execute(
                        f"""
                        INSERT INTO user_stats (
                            user_id, total_xp, current_level, current_streak, best_streak,
                            total_quizzes_completed, total_correct_answers,
                            total_questions_attempted, average_accuracy,
                            total_study_time_minutes, last_activity_date, updated_at
                        ) VALUES (
                            :user_id, :seed_xp, :seed_level, 1, 1,
                            1, :correct,
                            :attempted, :accuracy,
                            :study_minutes, :today, :now
                        )
                        ON CONFLICT(user_id) DO UPDATE SET
                            total_xp = COALESCE(user_stats.total_xp, 0) + :xp_earned,
                            current_level =
                                (COALESCE(user_stats.total_xp, 0) + :xp_earned) / 1000 + 1,
                            current_streak = {_STREAK_EXPR},
                            best_streak = MAX(COALESCE(user_stats.best_streak, 0), {_STREAK_EXPR}),
                            total_quizzes_completed =
                                COALESCE(user_stats.total_quizzes_completed, 0) + 1,
                            total_correct_answers =
                                COALESCE(user_stats.total_correct_answers, 0) + :correct,
                            total_questions_attempted =
                                COALESCE(user_stats.total_questions_attempted, 0) + :attempted,
                            average_accuracy = (
                                200 * (COALESCE(user_stats.total_correct_answers, 0) + :correct)
                                + COALESCE(user_stats.total_questions_attempted, 0) + :attempted
                            ) / (
                                2 * (COALESCE(user_stats.total_questions_attempted, 0) + :attempted)
                            ),
                            total_study_time_minutes =
                                COALESCE(user_stats.total_study_time_minutes, 0) + :study_minutes,
                            last_activity_date = :today,
                            updated_at = :now
                    """,
                        params,
                    )
                    row = conn.execute(
                        "SELECT * FROM user_stats WHERE user_id = ?", (user_id,)
                    ).fetchone()
        except sqlite3.Error as e:
            raise QueryError(f"user_stats upsert failed: {e}") from e
        return CounterRow.model_validate(dict(row))

    def insert_quiz_attempt(self, event: QuizAttemptEvent) -> None:
        """Append a quiz attempt to the event log."""
        try:
            with self._write_lock, self.get_connection() as conn:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO quiz_attempts (
                            user_id, quiz_type, score, total_questions,
                            xp_earned, time_taken_seconds, completed_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                        (
                            event.user_id,
                            event.quiz_type,
                            event.score,
                            event.total_questions,
                            event.xp_earned,
                            event.time_taken_seconds,
                            event.completed_at.isoformat(),
                        ),
                    )
        except sqlite3.Error as e:
            raise QueryError(f"quiz_attempts insert failed: {e}") from e

    def ensure_user(self, user_id: str, email: str | None, username: str | None) -> None:
        """Create the users row if it does not exist yet."""
        now = datetime.now(timezone.utc).isoformat()
        try:
            with self._write_lock, self.get_connection() as conn:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO users (id, email, username, xp, level, streak,
                                           created_at, updated_at)
                        VALUES (?, ?, ?, 0, 1, 0, ?, ?)
                        ON CONFLICT(id) DO NOTHING
                    """,
                        (user_id, email, username, now, now),
                    )
        except sqlite3.Error as e:
            raise QueryError(f"users insert failed: {e}") from e

    # ========== Study Notes ==========

    def _row_to_note(self, row: sqlite3.Row) -> PreGeneratedNote:
        data = dict(row)
        data["content"] = json.loads(data["content"] or "{}")
        data["tags"] = json.loads(data["tags"] or "[]")
        return PreGeneratedNote.model_validate(data)

    def fetch_published_note(self, topic: str):
        """Get a published pre-generated note by exact topic."""
        try:
            row = self._fetch_one(
                "SELECT * FROM pre_generated_notes WHERE topic = ? AND status = 'published'",
                (topic,),
            )
        except (sqlite3.Error, AdapterError) as e:
            return Failed(QueryError(f"note lookup failed: {e}"))
        if row is None:
            return NotFound()
        return Found(self._row_to_note(row))

    def fetch_note_by_topic(self, topic: str):
        """Get a note by exact topic, whatever its status."""
        try:
            row = self._fetch_one("SELECT * FROM pre_generated_notes WHERE topic = ?", (topic,))
        except (sqlite3.Error, AdapterError) as e:
            return Failed(QueryError(f"note lookup failed: {e}"))
        if row is None:
            return NotFound()
        return Found(self._row_to_note(row))

    def increment_note_view_count(self, note_id: str) -> None:
        """Add one to a note's view count."""
        try:
            with self._write_lock, self.get_connection() as conn:
                with conn:
                    conn.execute(
                        "UPDATE pre_generated_notes SET view_count = view_count + 1 WHERE id = ?",
                        (note_id,),
                    )
        except sqlite3.Error as e:
            raise QueryError(f"view count update failed: {e}") from e

    def search_notes(self, term: str, limit: int = 10) -> list[PreGeneratedNote]:
        """Search published notes by topic substring or exact tag."""
        try:
            with self.get_connection() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM pre_generated_notes
                    WHERE status = 'published'
                      AND (topic LIKE ? OR EXISTS (
                          SELECT 1 FROM json_each(pre_generated_notes.tags) WHERE value = ?
                      ))
                    ORDER BY priority DESC
                    LIMIT ?
                """,
                    (f"%{term}%", term, limit),
                ).fetchall()
        except sqlite3.Error as e:
            raise QueryError(f"note search failed: {e}") from e
        return [self._row_to_note(row) for row in rows]

    def get_popular_notes(self, limit: int = 5) -> list[PreGeneratedNote]:
        """Get the most viewed published notes."""
        try:
            with self.get_connection() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM pre_generated_notes
                    WHERE status = 'published'
                    ORDER BY view_count DESC
                    LIMIT ?
                """,
                    (limit,),
                ).fetchall()
        except sqlite3.Error as e:
            raise QueryError(f"popular notes query failed: {e}") from e
        return [self._row_to_note(row) for row in rows]

    def upsert_note(self, note: PreGeneratedNote) -> str:
        """Insert or replace a note keyed by topic."""
        note_id = note.id or str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()
        try:
            with self._write_lock, self.get_connection() as conn:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO pre_generated_notes (
                            id, topic, category, difficulty, content, status, priority,
                            view_count, tags, estimated_read_time, created_at, updated_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        ON CONFLICT(topic) DO UPDATE SET
                            category = excluded.category,
                            difficulty = excluded.difficulty,
                            content = excluded.content,
                            status = excluded.status,
                            priority = excluded.priority,
                            tags = excluded.tags,
                            estimated_read_time = excluded.estimated_read_time,
                            updated_at = excluded.updated_at
                    """,
                        (
                            note_id,
                            note.topic,
                            note.category,
                            note.difficulty,
                            note.content.model_dump_json(by_alias=True),
                            note.status,
                            note.priority,
                            note.view_count,
                            json.dumps(note.tags),
                            note.estimated_read_time,
                            now,
                            now,
                        ),
                    )
                    row = conn.execute(
                        "SELECT id FROM pre_generated_notes WHERE topic = ?", (note.topic,)
                    ).fetchone()
        except sqlite3.Error as e:
            raise QueryError(f"note upsert failed: {e}") from e
        return row["id"]
