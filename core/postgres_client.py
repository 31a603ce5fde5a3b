"""
PostgreSQL Client Wrapper

Thin async client around an asyncpg connection pool.
Provides a consistent database access pattern for service repositories.

Usage:
    from core.postgres_client import AsyncPostgresClient

    db = AsyncPostgresClient.from_config(settings.infrastructure, user_id="pledge_service")

    # Execute queries
    async with db:
        rows = await db.query("SELECT * FROM pledge.pledges WHERE campaign_id = $1", [campaign_id])
"""

import logging
from typing import Any, Dict, List, Optional

import asyncpg

from core.config.infra_config import InfraConfig

logger = logging.getLogger(__name__)


class AsyncPostgresClient:
    """
    PostgreSQL client backed by an asyncpg pool.

    The pool is created lazily on first use (``async with db`` or ``connect()``)
    and shared by every query issued through this client.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5432,
        database: str = "postgres",
        username: str = "postgres",
        password: str = "",
        user_id: Optional[str] = None,
        min_pool_size: int = 1,
        max_pool_size: int = 10,
        command_timeout: float = 30,
    ):
        """
        Initialize PostgreSQL client.

        Args:
            host: PostgreSQL host
            port: PostgreSQL port
            database: Database name
            username: Database username
            password: Database password
            user_id: Name reported as application_name on each connection
            min_pool_size: Minimum pooled connections
            max_pool_size: Maximum pooled connections
            command_timeout: Per-statement timeout in seconds
        """
        self.host = host
        self.port = port
        self.database = database
        self.username = username
        self.password = password
        self.user_id = user_id or "pledge_service"
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout = command_timeout
        self._pool: Optional[asyncpg.Pool] = None

    @classmethod
    def from_config(cls, config: InfraConfig, user_id: Optional[str] = None) -> "AsyncPostgresClient":
        """Build a client from InfraConfig"""
        return cls(
            host=config.postgres_host,
            port=config.postgres_port,
            database=config.postgres_db,
            username=config.postgres_user,
            password=config.postgres_password,
            user_id=user_id,
            min_pool_size=config.postgres_min_pool_size,
            max_pool_size=config.postgres_max_pool_size,
            command_timeout=config.postgres_command_timeout,
        )

    async def connect(self) -> None:
        """Create the connection pool if it does not exist yet"""
        if self._pool is not None:
            return
        self._pool = await asyncpg.create_pool(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.username,
            password=self.password,
            min_size=self.min_pool_size,
            max_size=self.max_pool_size,
            command_timeout=self.command_timeout,
            server_settings={"application_name": self.user_id},
        )
        logger.info(f"PostgreSQL pool ready for {self.user_id}: {self.host}:{self.port}/{self.database}")

    async def __aenter__(self):
        """Async context manager entry"""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit (pool stays open until close())"""
        return False

    async def health_check(self) -> Optional[Dict[str, Any]]:
        """Check database health"""
        row = await self.query_row("SELECT 1 AS healthy")
        return {"healthy": bool(row and row.get("healthy") == 1)}

    async def query(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        """Execute query and return results"""
        await self.connect()
        records = await self._pool.fetch(sql, *(params or []))
        return [dict(record) for record in records]

    async def query_row(self, sql: str, params: Optional[List[Any]] = None) -> Optional[Dict[str, Any]]:
        """Execute query and return single row"""
        await self.connect()
        record = await self._pool.fetchrow(sql, *(params or []))
        return dict(record) if record is not None else None

    async def execute(self, sql: str, params: Optional[List[Any]] = None) -> str:
        """Execute SQL statement and return the status tag"""
        await self.connect()
        return await self._pool.execute(sql, *(params or []))

    async def close(self):
        """Close connection pool"""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info(f"PostgreSQL pool closed for {self.user_id}")
