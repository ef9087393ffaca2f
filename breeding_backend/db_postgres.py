"""
PostgreSQL Database Connection Module with Async Support

This module provides async PostgreSQL connection pooling and the breeding schema.
"""

import asyncpg
from typing import Optional
import logging
from .config import DATABASE_URL, DB_POOL_MIN_SIZE, DB_POOL_MAX_SIZE, DB_TIMEOUT

logger = logging.getLogger(__name__)

# Global connection pool
_pool: Optional[asyncpg.Pool] = None


SCHEMA_STATEMENTS = [
    # Owned by the cattle context; created here only so a fresh database works
    """
    CREATE TABLE IF NOT EXISTS cattle (
        cattle_id BIGINT PRIMARY KEY,
        owner_user_id TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS breeding_aggregates (
        cattle_id BIGINT PRIMARY KEY REFERENCES cattle(cattle_id) ON DELETE CASCADE,
        current_status JSONB NOT NULL,
        summary JSONB NOT NULL,
        version INTEGER NOT NULL,
        last_updated TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS breeding_events (
        id BIGSERIAL PRIMARY KEY,
        cattle_id BIGINT NOT NULL REFERENCES breeding_aggregates(cattle_id) ON DELETE CASCADE,
        sequence INTEGER NOT NULL,
        event_type TEXT NOT NULL,
        event_timestamp TIMESTAMPTZ NOT NULL,
        payload JSONB NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        UNIQUE (cattle_id, sequence)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_breeding_events_cattle_ts ON breeding_events (cattle_id, event_timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_cattle_owner ON cattle (owner_user_id)",
]


async def init_db_pool():
    """
    Initialize the PostgreSQL connection pool.
    Should be called on application startup.
    """
    global _pool

    if _pool is not None:
        logger.warning("Database pool already initialized")
        return

    try:
        _pool = await asyncpg.create_pool(
            DATABASE_URL,
            min_size=DB_POOL_MIN_SIZE,
            max_size=DB_POOL_MAX_SIZE,
            command_timeout=DB_TIMEOUT,
            # SSL settings for Neon DB
            ssl='require' if 'neon' in DATABASE_URL else None
        )
        logger.info(f"PostgreSQL connection pool initialized (min={DB_POOL_MIN_SIZE}, max={DB_POOL_MAX_SIZE})")
    except Exception as e:
        logger.error(f"Failed to initialize database pool: {e}")
        raise


async def close_db_pool():
    """
    Close the PostgreSQL connection pool.
    Should be called on application shutdown.
    """
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("PostgreSQL connection pool closed")


def get_pool() -> asyncpg.Pool:
    """
    Get the global connection pool.
    Raises an error if pool is not initialized.
    """
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_db_pool() first.")
    return _pool


class DatabaseConnection:
    """
    Context manager for pooled database connections.

    Usage:
        async with DatabaseConnection() as conn:
            row = await conn.fetchrow("SELECT * FROM breeding_aggregates WHERE cattle_id = $1", cattle_id)
    """

    def __init__(self, pool: Optional[asyncpg.Pool] = None):
        self.connection: Optional[asyncpg.Connection] = None
        self.pool = pool or get_pool()

    async def __aenter__(self) -> asyncpg.Connection:
        self.connection = await self.pool.acquire()
        return self.connection

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Release connection back to pool"""
        if self.connection:
            await self.pool.release(self.connection)
            self.connection = None


async def init_schema():
    """Create the breeding tables if they do not exist yet."""
    async with DatabaseConnection() as conn:
        async with conn.transaction():
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)
    logger.info("Breeding schema ensured")


async def health_check() -> dict:
    """
    Check database connection health.
    Returns dict with status and details.
    """
    try:
        pool = get_pool()
        async with pool.acquire() as conn:
            result = await conn.fetchval("SELECT 1")
            if result == 1:
                return {
                    "status": "healthy",
                    "database": "postgresql",
                    "pool_size": pool.get_size(),
                    "pool_free": pool.get_idle_size()
                }
            else:
                return {
                    "status": "unhealthy",
                    "database": "postgresql",
                    "error": "Unexpected query result"
                }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": "postgresql",
            "error": str(e)
        }
