"""PostgreSQL migration runner for Alembic migrations."""

import logging
import os
from pathlib import Path
from urllib.parse import quote_plus

from core.migration_runner import MigrationRunner

log = logging.getLogger("mindgains.postgres_migration_runner")


class PostgreSQLMigrationRunner(MigrationRunner):
    """Migration runner for the hosted PostgreSQL store."""

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        sslmode: str = "require",
        migration_dir: Path | None = None,
    ):
        """Initialize PostgreSQL migration runner.

        Args:
            host: PostgreSQL host
            port: PostgreSQL port
            database: Database name
            user: Database user
            password: Database password
            sslmode: SSL mode (require, prefer, disable)
            migration_dir: Path to migrations directory
        """
        if migration_dir is None:
            project_root = Path(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
            migration_dir = project_root / "migrations"

        super().__init__(migration_dir)
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.sslmode = sslmode

    def database_url(self) -> str:
        """Build the psycopg2 connection URL."""
        return (
            f"postgresql+psycopg2://{quote_plus(self.user)}:{quote_plus(self.password)}@"
            f"{self.host}:{self.port}/{self.database}"
            f"?sslmode={self.sslmode}"
        )
