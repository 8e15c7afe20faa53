"""
PostgreSQL Client Wrapper

Thin async wrapper around an asyncpg connection pool.
Provides a consistent database access pattern for service repositories.

Usage:
    from core.postgres_client import PostgresClientWrapper

    # Get client instance
    db = PostgresClientWrapper("delivery_service")

    # Execute queries
    async with db:
        result = await db.query("SELECT * FROM deliveries WHERE rider_id = $1", [rider_id])

    # Several statements in one transaction
    async with db.transaction() as tx:
        await tx.execute("INSERT ...", [...])
        await tx.execute("INSERT ...", [...])
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import asyncpg

from core.config import InfraConfig

logger = logging.getLogger(__name__)

# Errors meaning the database could not be reached, as opposed to a rejected statement
CONNECTION_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.InterfaceError,
)


class DatabaseUnavailableError(Exception):
    """Raised when PostgreSQL cannot be reached or times out"""
    pass


class _ConnectionQueries:
    """Query helpers bound to a single connection (used inside transactions)"""

    def __init__(self, connection: asyncpg.Connection):
        self._connection = connection

    async def query(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        rows = await self._connection.fetch(sql, *(params or []))
        return [dict(row) for row in rows]

    async def query_row(self, sql: str, params: Optional[List[Any]] = None) -> Optional[Dict[str, Any]]:
        row = await self._connection.fetchrow(sql, *(params or []))
        return dict(row) if row else None

    async def execute(self, sql: str, params: Optional[List[Any]] = None) -> str:
        return await self._connection.execute(sql, *(params or []))


class PostgresClientWrapper:
    """
    PostgreSQL client wrapper over an asyncpg pool.

    - Lazily creates the pool on first use
    - Returns rows as plain dicts
    - Converts connectivity failures into DatabaseUnavailableError
    """

    def __init__(self, service_name: str, config: Optional[InfraConfig] = None):
        self.service_name = service_name
        self.config = config or InfraConfig.from_env()
        self._pool: Optional[asyncpg.Pool] = None
        self._pool_lock = asyncio.Lock()

        logger.info(
            f"PostgreSQL client initialized for {service_name}: "
            f"{self.config.postgres_host}:{self.config.postgres_port}/{self.config.postgres_db}"
        )

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            async with self._pool_lock:
                if self._pool is None:
                    try:
                        self._pool = await asyncpg.create_pool(
                            dsn=self.config.postgres_dsn,
                            min_size=self.config.postgres_min_pool_size,
                            max_size=self.config.postgres_max_pool_size,
                            command_timeout=self.config.postgres_command_timeout,
                        )
                    except CONNECTION_ERRORS as e:
                        raise DatabaseUnavailableError(f"Cannot connect to PostgreSQL: {e}") from e
        return self._pool

    async def __aenter__(self):
        """Async context manager entry"""
        await self._get_pool()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit (the pool stays open)"""
        return False

    async def health_check(self) -> bool:
        """Check database health"""
        try:
            return await self.query_row("SELECT 1 AS healthy") is not None
        except DatabaseUnavailableError:
            return False

    async def query(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        """Execute query and return results"""
        pool = await self._get_pool()
        try:
            async with pool.acquire() as connection:
                return await _ConnectionQueries(connection).query(sql, params)
        except CONNECTION_ERRORS as e:
            raise DatabaseUnavailableError(str(e)) from e

    async def query_row(self, sql: str, params: Optional[List[Any]] = None) -> Optional[Dict[str, Any]]:
        """Execute query and return single row"""
        pool = await self._get_pool()
        try:
            async with pool.acquire() as connection:
                return await _ConnectionQueries(connection).query_row(sql, params)
        except CONNECTION_ERRORS as e:
            raise DatabaseUnavailableError(str(e)) from e

    async def execute(self, sql: str, params: Optional[List[Any]] = None) -> str:
        """Execute SQL statement and return the status string"""
        pool = await self._get_pool()
        try:
            async with pool.acquire() as connection:
                return await _ConnectionQueries(connection).execute(sql, params)
        except CONNECTION_ERRORS as e:
            raise DatabaseUnavailableError(str(e)) from e

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[_ConnectionQueries]:
        """Run several statements atomically on one connection"""
        pool = await self._get_pool()
        try:
            async with pool.acquire() as connection:
                async with connection.transaction():
                    yield _ConnectionQueries(connection)
        except CONNECTION_ERRORS as e:
            raise DatabaseUnavailableError(str(e)) from e

    async def close(self):
        """Close connection pool"""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
