"""
Database connection management using asyncpg for neo-access.
"""
from contextlib import asynccontextmanager
from typing import Optional, List, Any
import asyncpg
from asyncpg import Pool, Record
import logging

from ..config.constants import DatabaseSettings
from ..config.settings import AccessSettings

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Manages the asyncpg pool and tenant-scoped transactions."""

    def __init__(self, database_url: str, application_name: str = "neo-access", **pool_config):
        """Initialize DatabaseManager.

        Args:
            database_url: Postgres DSN
            application_name: Reported to Postgres as application_name
            **pool_config: Additional pool configuration options
        """
        self.pool: Optional[Pool] = None
        self.dsn = database_url
        if "+asyncpg" in self.dsn:
            self.dsn = self.dsn.replace("+asyncpg", "")
        self.application_name = application_name

        self.pool_config = {
            "min_size": 2,
            "max_size": 20,
            "max_inactive_connection_lifetime": 300,
            "command_timeout": 10,
            **pool_config
        }

    @classmethod
    def from_settings(cls, settings: AccessSettings) -> "DatabaseManager":
        """Build a manager from AccessSettings."""
        return cls(
            settings.database_url,
            application_name=settings.app_name,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=settings.db_command_timeout,
        )

    async def create_pool(self) -> Pool:
        """Create and return a connection pool."""
        if self.pool is None:
            logger.info(f"Creating database pool with size {self.pool_config['max_size']}")
            self.pool = await asyncpg.create_pool(
                self.dsn,
                server_settings={"application_name": self.application_name},
                **self.pool_config
            )
            logger.info("Database pool created successfully")
        return self.pool

    async def close_pool(self):
        """Close the connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Database pool closed")

    @asynccontextmanager
    async def acquire(self):
        """Acquire a connection from the pool."""
        if not self.pool:
            await self.create_pool()

        async with self.pool.acquire() as connection:
            yield connection

    @asynccontextmanager
    async def transaction(self):
        """Create a transaction context."""
        async with self.acquire() as connection:
            async with connection.transaction():
                yield connection

    @asynccontextmanager
    async def tenant_transaction(self, tenant_id: str):
        """Transaction with the row-level-security tenant setting applied.

        ``set_config(..., true)`` is transaction-local, so the setting never
        leaks to the next user of the pooled connection.
        """
        async with self.transaction() as connection:
            await connection.execute(
                "SELECT set_config($1, $2, true)",
                DatabaseSettings.TENANT_SETTING,
                tenant_id,
            )
            yield connection

    async def fetchval(self, query: str, *args, column: int = 0, timeout: float = None) -> Any:
        """Fetch a single value."""
        async with self.acquire() as connection:
            return await connection.fetchval(query, *args, column=column, timeout=timeout)

    async def fetch(self, query: str, *args, timeout: float = None) -> List[Record]:
        """Fetch multiple rows."""
        async with self.acquire() as connection:
            return await connection.fetch(query, *args, timeout=timeout)

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self.acquire() as connection:
                result = await connection.fetchval("SELECT 1")
                return result == 1
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Database health check failed: {e}")
            return False
