from __future__ import annotations

import asyncio

import asyncpg

from hotel_ops.core.config import Settings


async def create_pool(settings: Settings) -> asyncpg.Pool:
    """Open the shared connection pool used by repositories and the change feed."""

    return await asyncpg.create_pool(
        dsn=settings.postgres_dsn,
        min_size=settings.postgres_pool_min_size,
        max_size=settings.postgres_pool_max_size,
    )


async def check_connection(pool: asyncpg.Pool, timeout: float = 5.0) -> bool:
    """Run a trivial query against the pool, raising on failure or timeout."""

    async def _probe() -> None:
        async with pool.acquire() as connection:
            await connection.execute("SELECT 1")

    await asyncio.wait_for(_probe(), timeout=timeout)
    return True
