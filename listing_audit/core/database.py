"""
Async PostgreSQL connection pool module.

Provides the asyncpg pool shared by the PostgreSQL-backed rule store and
snapshot store. The pool is only created when DATABASE_URL is configured; without
it the service runs on the in-memory stores.

Key Components:
- Global connection pool singleton (_pool)
- init_db(): Initialize the connection pool at application startup
- get_db_pool(): Get the pool instance (initializes if needed)
- close_db(): Gracefully close the pool at application shutdown
- ensure_schema(): Create the rule_layer and audit_snapshot tables if missing

Connection Pool Configuration:
- min_size: 2 (minimum idle connections kept in pool)
- max_size: 10 (maximum connections in pool)
- command_timeout: 60 seconds (query timeout)

Usage:
    # At application startup (in FastAPI lifespan)
    await init_db()
    await ensure_schema()

    # In stores
    pool = await get_db_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow("SELECT version FROM rule_layer WHERE kind = $1", "base")

    # At application shutdown
    await close_db()
"""

import logging
from typing import Optional

import asyncpg
from asyncpg import Pool

from listing_audit.core.config import get_settings
from listing_audit.sql import SCHEMA_DDL


logger = logging.getLogger(__name__)


# =============================================================================
# Global Pool Singleton
# =============================================================================

# None until init_db() is called
_pool: Optional[Pool] = None


# =============================================================================
# Pool Lifecycle Functions
# =============================================================================

async def init_db() -> Pool:
    """
    Initialize the database connection pool.

    Idempotent: returns the existing pool when already initialized.

    Returns:
        Pool: The asyncpg connection pool instance.

    Raises:
        RuntimeError: If DATABASE_URL is not configured.
        asyncpg.PostgresError: If connection to the database fails.
        OSError: If the database host is unreachable.
    """
    global _pool

    if _pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is not configured")

        _pool = await asyncpg.create_pool(
            dsn=settings.database_url,
            min_size=2,
            max_size=10,
            command_timeout=60,
        )

    return _pool


async def get_db_pool() -> Pool:
    """
    Get the database connection pool, initializing if needed.

    Prefer calling init_db() explicitly at startup; lazy initialization adds
    latency to the first request.
    """
    global _pool

    if _pool is None:
        await init_db()

    assert _pool is not None, "Pool should be initialized after init_db()"

    return _pool


async def close_db() -> None:
    """
    Close the database connection pool gracefully.

    Idempotent. After closing, get_db_pool() creates a new pool.
    """
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None


async def ensure_schema() -> None:
    """Create the rule_layer and audit_snapshot tables if they do not exist."""
    pool = await get_db_pool()

    async with pool.acquire() as conn:
        await conn.execute(SCHEMA_DDL)
    logger.info("Database schema verified")
