"""
Async PostgreSQL connection pool for the SuburbMates directory database.

The pool is a process-wide singleton created at application startup and
closed at shutdown. Repository and audit adapters acquire connections from
it; nothing else in the service talks to PostgreSQL directly.

Pool configuration:
- min_size: 2
- max_size: 10
- command_timeout: 60 seconds

Usage:
    # In the FastAPI lifespan
    await init_db()
    ...
    await close_db()

    # In an adapter
    rows = await execute_query("SELECT id FROM businesses WHERE suburb = $1", suburb)
"""

from typing import Any, List, Optional

import asyncpg
from asyncpg import Pool

from suburbmates.core.config import get_settings


# Global pool instance, None until init_db() is called
_pool: Optional[Pool] = None


async def init_db() -> Pool:
    """
    Initialize the database connection pool.

    Idempotent: a second call returns the existing pool.

    Returns:
        Pool: The asyncpg connection pool.

    Raises:
        asyncpg.PostgresError: If the connection to the database fails.
        OSError: If the database host is unreachable.
    """
    global _pool

    if _pool is None:
        settings = get_settings()
        _pool = await asyncpg.create_pool(
            dsn=settings.database_url,
            min_size=2,
            max_size=10,
            command_timeout=60,
        )

    return _pool


async def get_db_pool() -> Pool:
    """
    Get the database connection pool, initializing it lazily if needed.

    Returns:
        Pool: The asyncpg connection pool.
    """
    global _pool

    if _pool is None:
        await init_db()

    assert _pool is not None, "Pool should be initialized after init_db()"

    return _pool


async def close_db() -> None:
    """Close the connection pool gracefully. Safe to call more than once."""
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None


async def execute_query(query: str, *args: Any) -> List[asyncpg.Record]:
    """
    Execute a query and return all rows.

    Args:
        query: SQL with $1, $2, ... placeholders.
        *args: Positional query parameters.

    Returns:
        List[asyncpg.Record]: Rows returned by the query.
    """
    pool = await get_db_pool()

    async with pool.acquire() as conn:
        return await conn.fetch(query, *args)


async def execute_query_one(query: str, *args: Any) -> Optional[asyncpg.Record]:
    """Execute a query and return the first row, or None when nothing matches."""
    pool = await get_db_pool()

    async with pool.acquire() as conn:
        return await conn.fetchrow(query, *args)


async def execute_command(query: str, *args: Any) -> str:
    """
    Execute an INSERT/UPDATE/DELETE command.

    Returns:
        str: The asyncpg status string, e.g. 'UPDATE 1'.
    """
    pool = await get_db_pool()

    async with pool.acquire() as conn:
        return await conn.execute(query, *args)
