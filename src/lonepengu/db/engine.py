"""Async SQLAlchemy engine wrapped as an explicit, injectable resource.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
AsyncSession for per-operation database access. The pool is owned by a
Database object created at startup (FastAPI lifespan) and disposed at
shutdown; nothing imports a module-level engine.

Database.transaction() is the only way services touch storage:

    async with database.transaction() as tx:
        ...  # commit on normal exit, rollback on any exception or cancel

The scope is bounded by checkout_timeout. A transaction that overruns is
cancelled, rolled back and its connection returned to the pool, and the
overrun is logged as an operational anomaly. SQLAlchemy errors are
translated into the StorageError family at the same boundary.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from sqlalchemy import event, text
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from lonepengu.config import Settings
from lonepengu.db.models import Base
from lonepengu.errors import (
    ForeignKeyViolationError,
    StorageConflictError,
    StorageError,
    StorageUnavailableError,
)

logger = structlog.get_logger()


class Database:
    """Connection pool plus session factory for one database URL."""

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 15,
        pool_timeout: float = 10.0,
        checkout_timeout: float = 30.0,
    ):
        pool_args = {}
        if not url.startswith("sqlite"):
            pool_args = {
                "pool_size": pool_size,
                "max_overflow": max_overflow,
                "pool_timeout": pool_timeout,
            }
        self.engine: AsyncEngine = create_async_engine(
            url, echo=echo, pool_pre_ping=True, **pool_args
        )
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self.checkout_timeout = checkout_timeout

        if self.engine.dialect.name == "sqlite":
            _enable_sqlite_transactions(self.engine)
        event.listen(self.engine.sync_engine, "checkout", self._on_checkout)
        event.listen(self.engine.sync_engine, "checkin", self._on_checkin)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.database_url,
            echo=settings.debug,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout_seconds,
            checkout_timeout=settings.db_checkout_timeout_seconds,
        )

    # ─── Lifecycle ──────────────────────────────────────

    async def create_schema(self) -> None:
        """Create all tables. Development and test databases only."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def ping(self) -> None:
        async with self.transaction() as tx:
            await tx.execute(text("SELECT 1"))

    # ─── Transactions ───────────────────────────────────

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Yield a session inside BEGIN … COMMIT, rolled back on any failure."""
        try:
            async with asyncio.timeout(self.checkout_timeout):
                async with self.session_factory() as session:
                    async with session.begin():
                        yield session
        except TimeoutError as e:
            logger.error(
                "db.checkout_exceeded", limit_seconds=self.checkout_timeout
            )
            raise StorageUnavailableError("Database operation timed out") from e
        except PoolTimeoutError as e:
            logger.error("db.pool_exhausted", error=str(e))
            raise StorageUnavailableError() from e
        except (OperationalError, InterfaceError, OSError) as e:
            logger.error("db.unavailable", error=str(e))
            raise StorageUnavailableError() from e
        except IntegrityError as e:
            logger.warning("db.constraint_violation", error=str(e.orig))
            if _is_foreign_key_violation(e):
                raise ForeignKeyViolationError() from e
            raise StorageConflictError() from e
        except DBAPIError as e:
            logger.error("db.error", error=str(e))
            raise StorageError() from e

    # ─── Pool events ────────────────────────────────────

    def _on_checkout(self, dbapi_connection, connection_record, connection_proxy):
        connection_record.info["checked_out_at"] = time.monotonic()

    def _on_checkin(self, dbapi_connection, connection_record):
        if connection_record is None:
            return
        started = connection_record.info.pop("checked_out_at", None)
        if started is None:
            return
        held = time.monotonic() - started
        if held > self.checkout_timeout:
            logger.warning(
                "db.connection_held_too_long",
                held_seconds=round(held, 3),
                limit_seconds=self.checkout_timeout,
            )


def _is_foreign_key_violation(error: IntegrityError) -> bool:
    """SQLSTATE 23503 on PostgreSQL, the FOREIGN KEY message on SQLite."""
    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate:
        return sqlstate == "23503"
    return "FOREIGN KEY" in str(orig).upper()


def _enable_sqlite_transactions(engine: AsyncEngine) -> None:
    """Give SQLite real transactions, savepoints and foreign keys.

    The sqlite3 driver's implicit BEGIN breaks SAVEPOINT handling, so we
    turn it off and emit BEGIN IMMEDIATE ourselves. Taking the write lock
    up front serializes writers instead of failing them on lock upgrade.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
