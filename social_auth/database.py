"""asyncpg pool lifecycle and versioned SQL migrations."""

from pathlib import Path
from typing import Optional

import asyncpg
import structlog

from social_auth.config import get_settings

logger = structlog.get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

CREATE_MIGRATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    filename VARCHAR(255) PRIMARY KEY,
    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""

_pool: Optional[asyncpg.Pool] = None


async def get_pool() -> asyncpg.Pool:
    """Return the shared pool.

    Raises:
        RuntimeError: If init_database() has not run
    """
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_database() first.")
    return _pool


async def init_database() -> asyncpg.Pool:
    """Create the shared pool from settings. Calling it twice is a no-op."""
    global _pool

    if _pool is not None:
        return _pool

    settings = get_settings()
    try:
        _pool = await asyncpg.create_pool(
            settings.postgres_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=settings.db_command_timeout_seconds,
        )
    except Exception as e:
        logger.error("database_pool_creation_failed", error=str(e))
        raise

    logger.info(
        "database_pool_created",
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
    )
    return _pool


async def close_database() -> None:
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("database_pool_closed")


async def run_migrations(migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """Apply pending ``*.sql`` files in name order and return their names.

    Applied files are recorded in ``schema_migrations``. Each file runs in
    its own transaction together with its bookkeeping row, so a failed
    migration leaves no partial record and is retried on the next start.
    """
    pool = await get_pool()

    files = sorted(migrations_dir.glob("*.sql")) if migrations_dir.exists() else []
    if not files:
        logger.warning("no_migrations_found", path=str(migrations_dir))
        return []

    applied: list[str] = []
    async with pool.acquire() as conn:
        await conn.execute(CREATE_MIGRATIONS_TABLE)
        rows = await conn.fetch("SELECT filename FROM schema_migrations")
        done = {row["filename"] for row in rows}

        for path in files:
            if path.name in done:
                continue
            try:
                async with conn.transaction():
                    await conn.execute(path.read_text(encoding="utf-8"))
                    await conn.execute(
                        "INSERT INTO schema_migrations (filename) VALUES ($1)",
                        path.name,
                    )
            except Exception as e:
                logger.error("migration_failed", file=path.name, error=str(e))
                raise
            applied.append(path.name)
            logger.info("migration_applied", file=path.name)

    logger.info("migrations_complete", applied=len(applied), skipped=len(done))
    return applied


async def health_check() -> bool:
    """True when the pool can run ``SELECT 1``."""
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return False
