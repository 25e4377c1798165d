from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from libs.common.config import get_settings

settings = get_settings()


def configure_sqlite_engine(engine: AsyncEngine) -> None:
    """Make SQLite transactions take the write lock up front.

    pysqlite defers BEGIN and lets two writers deadlock on lock upgrade.
    BEGIN IMMEDIATE makes concurrent writers queue on the busy timeout instead,
    which is how row locks on the schedule make them queue on Postgres.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str, **kwargs) -> AsyncEngine:
    """Create an async engine with the options appropriate for its backend."""
    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url,
            future=True,
            connect_args={"timeout": 30},
            **kwargs,
        )
        configure_sqlite_engine(engine)
        return engine

    return create_async_engine(
        database_url,
        future=True,
        pool_pre_ping=True,  # Test connections before using
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        **kwargs,
    )


# echo=True for local dev to see SQL queries
engine = build_engine(settings.DATABASE_URL, echo=(settings.ENVIRONMENT == "local"))

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)
