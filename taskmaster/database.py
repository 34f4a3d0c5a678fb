"""Database connection and migration management."""

import json
from pathlib import Path
from typing import Optional

import asyncpg
import structlog

logger = structlog.get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent.parent / "migrations"


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Decode JSONB columns into Python objects."""
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


class Database:
    """Owns the asyncpg connection pool for the lifetime of the application.

    Opened in the app lifespan and handed to services through
    the ``get_database`` dependency.
    """

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def pool(self) -> asyncpg.Pool:
        """Return the connection pool.

        Raises:
            RuntimeError: If the pool is not connected
        """
        if self._pool is None:
            raise RuntimeError("Database pool not initialized. Call connect() first.")
        return self._pool

    async def connect(self) -> asyncpg.Pool:
        """Create the connection pool (idempotent)."""
        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=60,
                init=_init_connection,
            )
            logger.info(
                "database_pool_created",
                min_size=self.min_size,
                max_size=self.max_size,
            )
            return self._pool
        except Exception as e:
            logger.error("database_pool_creation_failed", error=str(e))
            raise

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("database_pool_closed")

    def acquire(self):
        """Acquire a connection: ``async with db.acquire() as conn``."""
        return self.pool.acquire()

    async def run_migrations(self, migrations_dir: Path = MIGRATIONS_DIR) -> None:
        """Run all SQL migrations in order.

        Migrations are idempotent (IF NOT EXISTS) and can be re-run safely.
        """
        if not migrations_dir.exists():
            logger.warning("migrations_directory_not_found", path=str(migrations_dir))
            return

        migration_files = sorted(migrations_dir.glob("*.sql"))

        if not migration_files:
            logger.info("no_migrations_found")
            return

        async with self.acquire() as conn:
            for migration_file in migration_files:
                try:
                    await conn.execute(migration_file.read_text())
                    logger.info("migration_applied", file=migration_file.name)
                except Exception as e:
                    logger.error(
                        "migration_failed",
                        file=migration_file.name,
                        error=str(e),
                    )
                    raise

    async def health_check(self) -> bool:
        """Check database connectivity.

        Returns:
            True if database is healthy, False otherwise
        """
        try:
            async with self.acquire() as conn:
                result = await conn.fetchval("SELECT 1")
                return result == 1
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            return False


def affected_rows(status: str) -> int:
    """Parse the row count from an asyncpg status string such as ``DELETE 3``."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0
