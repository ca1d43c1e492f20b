from functools import lru_cache

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from src.database.base import Base
from src.database.config import db_config


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """Make SQLite take the write lock when a transaction begins.

    With deferred transactions two writers can both read and then fail on
    lock upgrade instead of waiting for each other.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


@lru_cache
def get_async_engine(pool_size: int = 10, max_overflow: int = 5) -> AsyncEngine:
    if db_config.is_sqlite:
        engine = create_async_engine(url=db_config.async_connection_string, poolclass=NullPool)
        _use_immediate_transactions(engine)
        return engine

    engine = create_async_engine(
        url=db_config.async_connection_string,
        pool_size=pool_size,
        max_overflow=max_overflow,
    )

    return engine


@lru_cache
def get_session_factory() -> async_sessionmaker:
    """Get a session factory that can create independent database sessions.

    Each session is created and closed independently, returning the
    connection to the pool.
    """
    engine = get_async_engine()

    return async_sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        class_=AsyncSession,
    )


def get_session() -> AsyncSession:
    return get_session_factory()()


async def init_models() -> None:
    # Importing the model modules registers their tables on Base.metadata.
    import src.database.content  # noqa: F401
    import src.database.plans  # noqa: F401
    import src.database.refresh_tokens  # noqa: F401
    import src.database.subscriptions  # noqa: F401
    import src.database.users  # noqa: F401
    import src.database.watch_history  # noqa: F401

    async with get_async_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
