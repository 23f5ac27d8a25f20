"""Configuration management for MindGains."""

import json
import sqlite3
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.models import DIFFICULTY_POINTS

STORE_BACKENDS = ("sqlite", "postgres")


class AppSettings(BaseModel):
    """Application settings with validation."""

    # Store settings
    store_backend: str = Field(
        default="sqlite", description="Where user data lives (sqlite or postgres)"
    )
    postgres_host: str = Field(default="", description="PostgreSQL server host")
    postgres_port: int = Field(default=5432, ge=1, le=65535, description="PostgreSQL port")
    postgres_database: str = Field(default="mindgains", description="PostgreSQL database name")
    postgres_user: str = Field(default="", description="PostgreSQL user")
    postgres_sslmode: str = Field(default="require", description="PostgreSQL SSL mode")

    # Stats settings
    stats_cache_window_sec: int = Field(
        default=300, gt=0, description="Seconds cached stats stay fresh"
    )

    # Quiz settings
    quiz_question_count: int = Field(
        default=5, ge=1, description="Questions per quiz (bank draw or generated)"
    )
    quiz_exam_type: str = Field(
        default="UPSC Civil Services", description="Exam generated quizzes are styled for"
    )
    quiz_difficulty: str = Field(
        default="intermediate", description="Difficulty of generated quizzes"
    )

    # News settings
    news_country: str = Field(default="in", description="Country code for headlines")
    news_page_size: int = Field(default=20, ge=1, le=100, description="Articles per fetch")
    news_cache_window_sec: int = Field(
        default=300, gt=0, description="Seconds fetched news stays fresh"
    )

    # Ollama settings
    ollama_host: str = Field(default="localhost", description="Ollama server host")
    ollama_port: int = Field(default=11434, ge=1, le=65535, description="Ollama server port")
    ollama_model: str = Field(default="gemma2:2b", description="Model for study notes")

    # Signed-in user
    current_user_id: str = Field(default="", description="Signed-in user id (empty = none)")
    current_username: str = Field(default="", description="Signed-in user's name")
    current_user_email: str = Field(default="", description="Signed-in user's email")

    model_config = ConfigDict(extra="ignore")

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v):
        if v not in STORE_BACKENDS:
            raise ValueError(f"store_backend must be one of {', '.join(STORE_BACKENDS)}")
        return v

    @field_validator("quiz_difficulty")
    @classmethod
    def validate_quiz_difficulty(cls, v):
        if v not in DIFFICULTY_POINTS:
            raise ValueError(f"quiz_difficulty must be one of {', '.join(DIFFICULTY_POINTS)}")
        return v


class Config:
    """Configuration manager using SQLite for persistence with Pydantic validation."""

    def __init__(self, db_path: Path):
        """Initialize config with database connection.

        Args:
            db_path: Path to SQLite database
        """
        self.db_path = db_path
        self._init_settings_table()
        self._ensure_defaults()

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _init_settings_table(self) -> None:
        """Create settings table if not exists."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)

    def _ensure_defaults(self) -> None:
        """Ensure all default settings exist in database."""
        defaults = AppSettings().model_dump()

        with self._get_connection() as conn:
            conn.executemany(
                "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)",
                [(key, self._serialize_value(value)) for key, value in defaults.items()],
            )

    def _serialize_value(self, value: Any) -> str:
        """Convert value to string for storage."""
        if isinstance(value, bool):
            return "True" if value else "False"
        if isinstance(value, (list, dict)):
            return json.dumps(value)
        return str(value)

    def _parse(self, key: str, value: str) -> Any:
        """Parse a stored string, typed by AppSettings when the key is known."""
        field = AppSettings.model_fields.get(key)
        if field is not None and field.annotation is str:
            return value

        if value.startswith("[") or value.startswith("{"):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        try:
            return int(value)
        except ValueError:
            pass

        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False

        return value

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """Get configuration value.

        Args:
            key: Setting key
            default: Default value if not found

        Returns:
            Setting value
        """
        with self._get_connection() as conn:
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        if row:
            return self._parse(key, row[0])
        if default is not None:
            return default
        if key in AppSettings.model_fields:
            return getattr(AppSettings(), key)
        return None

    def get_int(self, key: str, default: Optional[int] = None) -> int:
        """Get integer configuration value."""
        value = self.get(key, default)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        try:
            return int(value)
        except (ValueError, TypeError):
            if key in AppSettings.model_fields:
                return getattr(AppSettings(), key)
            return default if default is not None else 0

    def get_bool(self, key: str, default: Optional[bool] = None) -> bool:
        """Get boolean configuration value."""
        value = self.get(key, default)
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return bool(value)
        if isinstance(value, str):
            return value.lower() in ("true", "1", "yes", "on")
        return bool(value) if value else False

    def set(self, key: str, value: Any) -> None:
        """Set configuration value with pydantic validation.

        Args:
            key: Setting key
            value: Setting value

        Raises:
            ValueError: If value fails validation
        """
        if key in AppSettings.model_fields:
            try:
                validated = AppSettings(**{key: value})
                value = getattr(validated, key)
            except Exception as e:
                raise ValueError(f"Invalid value for {key}: {e}")

        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, self._serialize_value(value)),
            )

    def get_all(self) -> dict[str, Any]:
        """Get all settings as dictionary."""
        with self._get_connection() as conn:
            rows = conn.execute("SELECT key, value FROM settings").fetchall()
        return {key: self._parse(key, value) for key, value in rows}

    def settings(self) -> AppSettings:
        """All known settings as a validated model."""
        return AppSettings.model_validate(self.get_all())
