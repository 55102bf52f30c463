from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from config import settings

SQLITE_BUSY_TIMEOUT_SECONDS = 15.0


def _is_sqlite_memory(database_url: str) -> bool:
    url = make_url(database_url)
    return url.database in (None, "", ":memory:") or url.query.get("mode") == "memory"


def _get_engine_kwargs(database_url: str) -> dict:
    """Return dialect-specific engine options for SQLite vs PostgreSQL."""
    kwargs = {"echo": settings.debug}
    if make_url(database_url).get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS}
        # An in-memory database lives inside one connection; file databases pool normally
        if _is_sqlite_memory(database_url):
            kwargs["poolclass"] = StaticPool
    return kwargs


def _install_sqlite_transaction_hooks(engine: AsyncEngine) -> None:
    """
    Let SQLAlchemy own BEGIN so SAVEPOINTs nest inside the outer transaction,
    and turn on foreign key enforcement.

    BEGIN IMMEDIATE takes the write lock up front: a second writer waits on the
    busy timeout instead of failing to upgrade a read lock halfway through.
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


def make_engine(database_url: str) -> AsyncEngine:
    new_engine = create_async_engine(database_url, **_get_engine_kwargs(database_url))
    if new_engine.dialect.name == "sqlite":
        _install_sqlite_transaction_hooks(new_engine)
    return new_engine


def make_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


engine = make_engine(settings.database_url)

AsyncSessionLocal = make_sessionmaker(engine)


class Base(DeclarativeBase):
    pass


async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(bind: AsyncEngine | None = None):
    # Import models so every table is registered on Base.metadata
    import models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
