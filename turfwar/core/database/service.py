"""
Database Service - Core Infrastructure Layer

Purpose
-------
One async SQLAlchemy engine for the whole process, plus the two session
scopes every gang service uses: a plain session for reads and an atomic
transaction for anything that moves money, HP, hostages or personnel.

Responsibilities
----------------
- Build the engine from Config (or an explicit URL for scripts and tests)
- Commit on success, roll back on any exception
- Surface version-column mismatches on gangs and members as
  ConcurrencyConflictError so DatabaseRetryPolicy can replay the command
- Bound every statement with a PostgreSQL statement timeout

Non-Responsibilities
--------------------
- Retrying (DatabaseRetryPolicy)
- Row locking (BaseRepository.get_for_update / find_*_where(for_update=True))
- Schema creation (scripts/create_schema.py)

Usage Example
-------------
>>> async with DatabaseService.get_transaction() as session:
...     gang = await gangs.get_for_update(session, gang_id)
...     vault.credit(gang, 1_000)
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool

from turfwar.core.config.config import Config
from turfwar.core.exceptions import ConcurrencyConflictError
from turfwar.core.logging.logger import get_logger

logger = get_logger(__name__)


class DatabaseInitializationError(RuntimeError):
    """Engine could not be created from the configured URL."""


class DatabaseNotInitializedError(RuntimeError):
    """A session was requested before initialize() ran."""


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000.0, 2)


class DatabaseService:
    """
    Process-wide engine and session scopes.

    Public API
    ----------
    - initialize(url=None) / shutdown()
    - get_engine()
    - get_session() -> reads, no commit
    - get_transaction() -> commit on success, rollback on error
    - health_check() -> SELECT 1, never raises
    """

    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    _statement_timeout_ms: Optional[int] = None
    _init_lock: asyncio.Lock = asyncio.Lock()

    # ========================================================================
    # Lifecycle
    # ========================================================================

    @staticmethod
    def _engine_options() -> Dict[str, Any]:
        # Tests open and close engines per fixture; pooled connections would
        # outlive the event loop they were created on.
        if Config.is_testing():
            return {"echo": Config.DATABASE_ECHO, "poolclass": NullPool}
        return {
            "echo": Config.DATABASE_ECHO,
            "poolclass": AsyncAdaptedQueuePool,
            "pool_size": Config.DATABASE_POOL_SIZE,
            "max_overflow": Config.DATABASE_MAX_OVERFLOW,
            "pool_recycle": Config.DATABASE_POOL_RECYCLE,
            "pool_timeout": Config.DATABASE_POOL_TIMEOUT,
            "pool_pre_ping": True,
        }

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Create the engine. Idempotent.

        `url` overrides Config.DATABASE_URL; create_schema.py and the
        integration suite use it to target a specific database.
        """
        async with cls._init_lock:
            if cls._engine is not None:
                logger.debug("DatabaseService already initialized")
                return

            database_url = url or Config.DATABASE_URL
            if not database_url:
                raise DatabaseInitializationError("DATABASE_URL is not configured")

            options = cls._engine_options()
            try:
                cls._engine = create_async_engine(database_url, **options)
            except Exception as exc:
                logger.error(
                    "Could not create database engine",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise DatabaseInitializationError(str(exc)) from exc

            cls._session_factory = async_sessionmaker(
                bind=cls._engine, class_=AsyncSession, expire_on_commit=False
            )
            cls._statement_timeout_ms = (
                Config.DATABASE_STATEMENT_TIMEOUT_MS
                if cls._engine.dialect.name == "postgresql"
                else None
            )
            logger.info(
                "DatabaseService initialized",
                extra={
                    "dialect": cls._engine.dialect.name,
                    "pool_class": options["poolclass"].__name__,
                    "statement_timeout_ms": cls._statement_timeout_ms,
                },
            )

    @classmethod
    async def shutdown(cls) -> None:
        """Dispose the engine. Safe to call twice."""
        async with cls._init_lock:
            if cls._engine is None:
                return
            try:
                await cls._engine.dispose()
            finally:
                cls._engine = None
                cls._session_factory = None
                cls._statement_timeout_ms = None
            logger.info("DatabaseService shut down")

    @classmethod
    def get_engine(cls) -> AsyncEngine:
        cls._ensure_initialized()
        assert cls._engine is not None
        return cls._engine

    @classmethod
    async def health_check(cls) -> bool:
        if cls._engine is None:
            logger.warning("Health check on uninitialized DatabaseService")
            return False

        start = time.perf_counter()
        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except DBAPIError as exc:
            logger.warning(
                "Database health check failed",
                extra={"error": str(exc), "duration_ms": _elapsed_ms(start)},
            )
            return False
        logger.debug("Database health check ok", extra={"duration_ms": _elapsed_ms(start)})
        return True

    # ========================================================================
    # Session scopes
    # ========================================================================

    @classmethod
    def _ensure_initialized(cls) -> None:
        if cls._session_factory is None:
            raise DatabaseNotInitializedError(
                "Call DatabaseService.initialize() before opening sessions"
            )

    @classmethod
    async def _open(cls, session: AsyncSession) -> None:
        if cls._statement_timeout_ms:
            await session.execute(
                text(f"SET LOCAL statement_timeout = {int(cls._statement_timeout_ms)}")
            )

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """Session for reads. Nothing is committed."""
        cls._ensure_initialized()
        assert cls._session_factory is not None

        async with cls._session_factory() as session:
            await cls._open(session)
            yield session

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Atomic unit of work.

        Commits when the block exits normally. Any exception rolls back and
        propagates; StaleDataError (another writer bumped a gang or member
        version first) propagates as ConcurrencyConflictError.
        """
        cls._ensure_initialized()
        assert cls._session_factory is not None

        start = time.perf_counter()
        async with cls._session_factory() as session:
            try:
                await cls._open(session)
                yield session
                await session.commit()
            except StaleDataError as exc:
                await session.rollback()
                logger.warning(
                    "Version conflict, transaction rolled back",
                    extra={"error": str(exc), "duration_ms": _elapsed_ms(start)},
                )
                raise ConcurrencyConflictError("versioned row", exc) from exc
            except DBAPIError as exc:
                await session.rollback()
                logger.error(
                    "Database error, transaction rolled back",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": _elapsed_ms(start),
                    },
                    exc_info=True,
                )
                raise
            except Exception:
                await session.rollback()
                raise

        logger.debug("Transaction committed", extra={"duration_ms": _elapsed_ms(start)})
