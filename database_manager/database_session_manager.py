import asyncio
import functools
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Optional

import asyncpg
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from Shared_Utils.url_helper import is_sqlite_url, normalize_driver

# Substrings of errors raised when the server side drops a pooled connection
_DROPPED_CONNECTION = (
    "ConnectionDoesNotExistError",
    "connection was closed",
    "server closed the connection",
    "could not receive data from server",
    "terminating connection due to administrator command",
    "Connection reset by peer",
    "transport closed",
)
_CONNECTIVITY_ERRORS = (ConnectionError, OSError, OperationalError, DBAPIError, asyncpg.PostgresError)


def _postgres_engine_options() -> dict:
    return dict(
        pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
        max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "5")),
        pool_timeout=int(os.getenv("DB_POOL_TIMEOUT", "10")),
        pool_recycle=int(os.getenv("DB_POOL_RECYCLE", "300")),
        pool_pre_ping=True,
        connect_args={
            "timeout": float(os.getenv("DB_CONNECT_TIMEOUT", "5")),
            "command_timeout": float(os.getenv("DB_COMMAND_TIMEOUT", "30")),
            "server_settings": {
                "application_name": os.getenv("DB_APP_NAME", "cost_basis_ledger"),
                "statement_timeout": os.getenv("DB_STATEMENT_TIMEOUT_MS", "60000"),
            },
        },
    )


class DatabaseSessionManager:
    """
    Owns the async engine for the ledger database.

    Sessions come from ``async_session()``; the first one creates the
    cost basis tables if they are missing. PostgreSQL (asyncpg) in
    production, SQLite (aiosqlite) for local runs and tests.
    """

    def __init__(self, dsn: str, logger: Optional[Any] = None, bootstrap_schema: bool = True, **engine_kw):
        self.logger = logger or logging.getLogger(__name__)

        dsn = normalize_driver(dsn)
        self.is_sqlite = is_sqlite_url(dsn)

        engine_kw.setdefault("echo", False)
        if not self.is_sqlite:
            for key, value in _postgres_engine_options().items():
                engine_kw.setdefault(key, value)

        self.engine = create_async_engine(dsn, **engine_kw)
        self._session_factory = async_sessionmaker(bind=self.engine, expire_on_commit=False, class_=AsyncSession)

        self._bootstrap_schema = bootstrap_schema
        self._schema_lock = asyncio.Lock()
        self._schema_ready = False

    async def _ensure_schema_once(self):
        if self._schema_ready or not self._bootstrap_schema:
            return
        async with self._schema_lock:
            if self._schema_ready:
                return
            from .bootstrap_schema import ensure_cost_basis_schema
            await ensure_cost_basis_schema(self.engine)
            self.logger.debug("Cost basis schema ensured")
            self._schema_ready = True

    @asynccontextmanager
    async def async_session(self):
        await self._ensure_schema_once()
        async with self._session_factory() as session:
            yield session

    @staticmethod
    def is_retryable_db_error(e: Exception) -> bool:
        return isinstance(e, _CONNECTIVITY_ERRORS) and any(snippet in str(e) for snippet in _DROPPED_CONNECTION)

    @staticmethod
    def db_retry_once(func):
        """
        Retry a read once after a dropped connection.
        The decorated method's owner must expose ``self.db``. Never wrap writes.
        """
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            try:
                return await func(self, *args, **kwargs)
            except Exception as e:
                if not DatabaseSessionManager.is_retryable_db_error(e):
                    raise
                self.db.logger.warning("Dropped connection in %s, retrying once: %s", func.__name__, e)
                await self.db.engine.dispose()
                await asyncio.sleep(float(os.getenv("DB_RETRY_BACKOFF_SEC", "0.5")))
                return await func(self, *args, **kwargs)

        return wrapper

    async def initialize(self) -> None:
        """Create the schema and verify connectivity; one retry before giving up."""
        for attempt in (1, 2):
            try:
                async with self.async_session() as session:
                    await session.execute(text("SELECT 1"))
                return
            except _CONNECTIVITY_ERRORS as e:
                self.logger.warning("⚠️ Database warm-up attempt %s failed: %s", attempt, e)
                await self.engine.dispose()
                if attempt == 2:
                    raise
                await asyncio.sleep(0.75)

    async def disconnect(self):
        await self.engine.dispose()
        self.logger.info("✅ Database engine disposed.")
