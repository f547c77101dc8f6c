"""Database connection, migration management and store wiring."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import asyncpg
import structlog

from binding_lab.config import LabSettings, get_settings
from binding_lab.services.binding_store import (
    BindingStore,
    LocalBindingStore,
    PostgresBindingStore,
)
from binding_lab.services.evaluation_store import (
    EvaluationStore,
    LocalEvaluationStore,
    PostgresEvaluationStore,
)
from binding_lab.services.template_store import (
    LocalTemplateStore,
    PostgresTemplateStore,
    TemplateStore,
)

logger = structlog.get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent.parent / "migrations"

# Global connection pool
_pool: Optional[asyncpg.Pool] = None


async def get_pool() -> asyncpg.Pool:
    """Get the database connection pool.

    Raises:
        RuntimeError: If pool is not initialized
    """
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_database() first.")
    return _pool


async def init_database(settings: Optional[LabSettings] = None) -> asyncpg.Pool:
    """Initialize the database connection pool."""
    global _pool

    if _pool is not None:
        return _pool

    settings = settings or get_settings()

    try:
        _pool = await asyncpg.create_pool(
            settings.postgres_url,
            min_size=1,
            max_size=max(2, settings.eval_max_workers + 1),
            command_timeout=60,
        )
    except (OSError, asyncpg.PostgresError) as e:
        logger.error("database_pool_creation_failed", error=str(e))
        raise

    logger.info("database_pool_created", max_size=max(2, settings.eval_max_workers + 1))
    return _pool


async def close_database() -> None:
    """Close the database connection pool."""
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("database_pool_closed")


async def run_migrations(migrations_dir: Path = MIGRATIONS_DIR) -> None:
    """Run all SQL migrations in order.

    Migrations are idempotent (IF NOT EXISTS) and can be re-run safely.
    """
    pool = await get_pool()

    if not migrations_dir.exists():
        logger.warning("migrations_directory_not_found", path=str(migrations_dir))
        return

    migration_files = sorted(migrations_dir.glob("*.sql"))
    if not migration_files:
        logger.info("no_migrations_found")
        return

    async with pool.acquire() as conn:
        for migration_file in migration_files:
            try:
                await conn.execute(migration_file.read_text())
            except asyncpg.PostgresError as e:
                logger.error("migration_failed", file=migration_file.name, error=str(e))
                raise
            logger.info("migration_applied", file=migration_file.name)


@dataclass
class Stores:
    evaluations: EvaluationStore
    templates: TemplateStore
    bindings: BindingStore


async def build_stores(settings: Optional[LabSettings] = None) -> Stores:
    """Return the evaluation, template and binding stores for the configured backend."""
    settings = settings or get_settings()

    if settings.store_backend == "postgres":
        pool = await init_database(settings)
        await run_migrations()
        return Stores(
            evaluations=PostgresEvaluationStore(pool),
            templates=PostgresTemplateStore(pool),
            bindings=PostgresBindingStore(pool),
        )

    data_dir = Path(settings.data_dir)
    return Stores(
        evaluations=LocalEvaluationStore(data_dir / "evaluations.jsonl"),
        templates=LocalTemplateStore(data_dir / "templates.json"),
        bindings=LocalBindingStore(data_dir / "bindings.json"),
    )
