"""
Database connection module for Astra.

Provides the async PostgreSQL connection pool (asyncpg) backing PostgresStore.
The pool is created once at application startup and handed to the store;
nothing here keeps a module-level singleton.
"""

import logging
import pathlib

import asyncpg

logger = logging.getLogger(__name__)

SCHEMA_PATH = pathlib.Path(__file__).parent / "schema.sql"


async def create_pool(
    database_url: str,
    min_size: int = 2,
    max_size: int = 10,
    command_timeout: float = 60.0,
) -> asyncpg.Pool:
    """
    Create the database connection pool.

    Should be called once at application startup.
    """
    logger.info(f"Initializing database pool (min={min_size}, max={max_size})")

    try:
        pool = await asyncpg.create_pool(
            database_url,
            min_size=min_size,
            max_size=max_size,
            command_timeout=command_timeout,
        )
        logger.info("Database pool initialized successfully")
        return pool
    except Exception as e:
        logger.error(f"Failed to initialize database pool: {e}")
        raise


async def close_pool(pool: asyncpg.Pool) -> None:
    """Close the pool at application shutdown."""
    logger.info("Closing database pool")
    await pool.close()
    logger.info("Database pool closed")


async def init_schema(pool: asyncpg.Pool) -> None:
    """
    Initialize the database schema.

    Reads and executes the schema.sql file (idempotent DDL).
    """
    if not SCHEMA_PATH.exists():
        logger.error(f"Schema file not found: {SCHEMA_PATH}")
        raise FileNotFoundError(f"Schema file not found: {SCHEMA_PATH}")

    logger.info(f"Initializing database schema from {SCHEMA_PATH}")

    schema_sql = SCHEMA_PATH.read_text()

    async with pool.acquire() as conn:
        await conn.execute(schema_sql)

    logger.info("Database schema initialized successfully")


async def health_check(pool: asyncpg.Pool) -> dict:
    """
    Check database connectivity and return health status.
    """
    try:
        async with pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        return {
            "status": "healthy",
            "database": "connected",
            "pool_size": pool.get_size(),
            "pool_free": pool.get_idle_size(),
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": "disconnected",
            "error": str(e),
        }
