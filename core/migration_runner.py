"""Base migration runner for store schema migrations.

Provides common Alembic functionality for all store backends.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

log = logging.getLogger("mindgains.migration_runner")


class MigrationRunner(ABC):
    """Abstract base class for migration runners.

    Subclasses only supply the SQLAlchemy URL; engine handling and the
    Alembic commands are shared.
    """

    def __init__(self, migration_dir: Path):
        """Initialize migration runner.

        Args:
            migration_dir: Path to migrations directory
        """
        self.migration_dir = migration_dir
        self._config: Config | None = None
        self._script_dir: ScriptDirectory | None = None

    @abstractmethod
    def database_url(self) -> str:
        """SQLAlchemy URL of the database to migrate."""
        pass

    @property
    def config(self) -> Config:
        """Get Alembic configuration (lazy initialization)."""
        if self._config is None:
            config = Config()
            config.set_main_option("script_location", str(self.migration_dir))
            config.set_main_option("sqlalchemy.url", self.database_url().replace("%", "%%"))
            self._config = config
        return self._config

    @property
    def script_dir(self) -> ScriptDirectory:
        """Get Alembic script directory (lazy initialization)."""
        if self._script_dir is None:
            self._script_dir = ScriptDirectory.from_config(self.config)
        return self._script_dir

    def _create_engine(self) -> Engine:
        return create_engine(self.database_url())

    def get_current_version(self) -> str | None:
        """Get current database version.

        Returns:
            Current revision or None if database is not versioned
        """
        engine = self._create_engine()
        try:
            with engine.connect() as conn:
                context = MigrationContext.configure(conn)
                return context.get_current_revision()
        finally:
            engine.dispose()

    def check_needs_upgrade(self) -> bool:
        """Check if database needs to be upgraded.

        Returns:
            True if the database is behind the newest revision
        """
        current = self.get_current_version()
        if current is None:
            return True
        return self.script_dir.get_current_head() != current

    def upgrade(self, revision: str = "head") -> None:
        """Run database migrations to target revision.

        Args:
            revision: Target revision ("head" for latest)
        """
        log.info(f"Running migrations to {revision}")
        log.info(f"Current version: {self.get_current_version() or 'none'}")
        self._run(command.upgrade, revision)
        log.info(f"Migration complete. New version: {self.get_current_version()}")

    def downgrade(self, revision: str) -> None:
        """Downgrade database to target revision.

        Args:
            revision: Target revision
        """
        log.info(f"Downgrading to {revision}")
        self._run(command.downgrade, revision)
        log.info(f"Downgrade complete. New version: {self.get_current_version()}")

    def stamp(self, revision: str) -> None:
        """Stamp database with revision without running migrations.

        Args:
            revision: Revision to stamp
        """
        log.info(f"Stamping database as {revision}")
        self._run(command.stamp, revision)

    def _run(self, alembic_command, revision: str) -> None:
        engine = self._create_engine()
        try:
            with engine.begin() as conn:
                self.config.attributes["connection"] = conn
                alembic_command(self.config, revision)
        finally:
            self.config.attributes.pop("connection", None)
            engine.dispose()
