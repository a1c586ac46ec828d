"""
Async engine and session factory construction.

There is no module-level engine: callers build one from a URL and pass the
resulting session factory to the components that need it.

PostgreSQL (asyncpg) provides SELECT ... FOR UPDATE row locks. SQLite has no
row locks, so a write transaction is opened with BEGIN IMMEDIATE, which takes
the database write lock up front and serialises concurrent writers. Sessions
opt in through acquire_write_lock(); every other transaction (reads, schema
creation) uses a plain deferred BEGIN and does not queue behind writers.
"""

import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from database.models import Base

logger = logging.getLogger(__name__)

# Seconds a SQLite writer waits for the lock before failing
SQLITE_BUSY_TIMEOUT = 30

# Connection execution option marking a transaction as a writer
WRITE_LOCK_OPTION = "booking_write_lock"


def _install_sqlite_locking(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record):
        # Stop the driver from emitting its own BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        if conn.get_execution_options().get(WRITE_LOCK_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


def create_engine_from_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    Args:
        database_url: postgresql+asyncpg://... or sqlite+aiosqlite:///...
        echo: Log emitted SQL

    Returns:
        AsyncEngine with backend-specific locking configured
    """
    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": SQLITE_BUSY_TIMEOUT},
        )
        _install_sqlite_locking(engine)
    else:
        engine = create_async_engine(database_url, echo=echo, pool_pre_ping=True)

    logger.info(f"Database engine created for dialect={engine.dialect.name}")
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Build the session factory injected into BookingOrchestrator.

    expire_on_commit=False keeps returned appointments readable after commit.
    """
    return async_sessionmaker(engine, expire_on_commit=False)


async def acquire_write_lock(session: AsyncSession) -> None:
    """
    Bind the session's transaction to a connection flagged as a writer.

    Must be the first thing done in the transaction. On SQLite this issues
    BEGIN IMMEDIATE; on PostgreSQL the flag is ignored and row locks are
    taken by the individual SELECT ... FOR UPDATE statements.
    """
    await session.connection(execution_options={WRITE_LOCK_OPTION: True})


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables (development and tests)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
