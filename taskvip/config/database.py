"""
Database engine and session factory.

Async SQLAlchemy engine shared by services and background tasks.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from taskvip.config.settings import settings


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """
    Let SQLAlchemy manage SQLite transactions so SAVEPOINT works.

    The sqlite3 driver issues its own BEGIN/COMMIT, which breaks nested
    transactions; disable that and emit BEGIN explicitly.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):  # noqa: ARG001
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine_for(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    In-memory SQLite gets a StaticPool so every session shares one database.

    Args:
        url: SQLAlchemy database URL
        echo: Log SQL statements

    Returns:
        Configured AsyncEngine
    """
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
            kwargs["poolclass"] = StaticPool
        engine = create_async_engine(url, echo=echo, **kwargs)
        _enable_sqlite_savepoints(engine)
        return engine

    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


def create_session_maker(
    bind: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Create a session maker bound to the engine."""
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


engine = create_engine_for(settings.database_url, echo=settings.database_echo)
async_session_maker = create_session_maker(engine)
