import json
import logging

import asyncpg
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateIndex, CreateTable

from greenhouse.config import get_settings
from greenhouse.models.plant import Base
# Imported for their side effect of registering tables on Base.metadata
from greenhouse.models import alert as _alert  # noqa: F401
from greenhouse.models import threshold_breach as _threshold_breach  # noqa: F401

logger = logging.getLogger(__name__)

# ---------- asyncpg connection pool ----------

_pool: asyncpg.Pool | None = None


def _get_raw_pg_url() -> str:
    """Convert SQLAlchemy-style URL to plain postgres:// for asyncpg."""
    settings = get_settings()
    url = settings.DATABASE_URL
    # asyncpg needs postgresql:// not postgresql+asyncpg://
    return url.replace("postgresql+asyncpg://", "postgresql://")


async def _init_connection(conn: asyncpg.Connection) -> None:
    # Decode json/jsonb columns into Python objects
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )


async def get_pool() -> asyncpg.Pool:
    """Get or create the asyncpg connection pool."""
    global _pool
    if _pool is None:
        settings = get_settings()
        _pool = await asyncpg.create_pool(
            _get_raw_pg_url(),
            min_size=settings.DB_POOL_MIN_SIZE,
            max_size=settings.DB_POOL_MAX_SIZE,
            # Bounds every query; a timeout is a soft failure for the monitor
            command_timeout=settings.DB_COMMAND_TIMEOUT,
            init=_init_connection,
        )
    return _pool


async def close_pool() -> None:
    """Close the asyncpg pool (call on app shutdown)."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


# ---------- Schema bootstrap ----------


def schema_statements() -> list[str]:
    """DDL for every model table and index, compiled for PostgreSQL."""
    dialect = postgresql.dialect()
    statements = []
    for table in Base.metadata.sorted_tables:
        statements.append(str(CreateTable(table, if_not_exists=True).compile(dialect=dialect)))
        for index in sorted(table.indexes, key=lambda i: i.name):
            statements.append(str(CreateIndex(index, if_not_exists=True).compile(dialect=dialect)))
    return statements


async def ensure_schema(pool: asyncpg.Pool) -> None:
    """Create missing tables and indexes; existing ones are left untouched."""
    statements = schema_statements()
    async with pool.acquire() as conn:
        async with conn.transaction():
            for statement in statements:
                await conn.execute(statement)
    logger.info("Schema ensured (%d statements)", len(statements))
