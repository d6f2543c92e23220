"""Async SQLAlchemy store used by repositories and units of work."""

import typing as t
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from .cleanup import CleanupMixin
from .config import DataAccessSettings, get_settings
from .depends import depends
from .logger import logger
from .models import Base


class Database(CleanupMixin):
    """Owns the engine and hands out sessions, one per unit of work."""

    def __init__(self, settings: DataAccessSettings | None = None) -> None:
        super().__init__()
        self.settings = settings or get_settings()
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = self._create_engine()
            self.register_resource(self._engine)
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                self.engine,
                expire_on_commit=False,
                autoflush=False,
            )
        return self._session_factory

    def _create_engine(self) -> AsyncEngine:
        url = self.settings.database_url
        kwargs: dict[str, t.Any] = {"echo": self.settings.echo}
        if self.settings.is_sqlite:
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
                kwargs["poolclass"] = StaticPool

        engine = create_async_engine(url, **kwargs)
        if self.settings.is_sqlite:
            _install_sqlite_hooks(engine)
        logger.debug(f"Created engine for {engine.url.render_as_string(hide_password=True)}")
        return engine

    def session(self) -> AsyncSession:
        """Open a new session; the caller owns and closes it."""
        return self.session_factory()

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def _cleanup_resources(self) -> None:
        # The registered engine is disposed after this returns.
        self._engine = None
        self._session_factory = None


def _install_sqlite_hooks(engine: AsyncEngine) -> None:
    """Let SQLAlchemy own transaction boundaries on SQLite.

    The sqlite3/aiosqlite drivers begin transactions lazily and ignore
    SAVEPOINT semantics unless the driver's own transaction handling is
    disabled and BEGIN is emitted explicitly.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: t.Any, connection_record: t.Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: t.Any) -> None:
        conn.exec_driver_sql("BEGIN")


def get_database() -> Database:
    """Return the registered database, creating one from settings if needed."""
    database: t.Any = None
    try:
        database = depends.get_sync(Database)
    except LookupError:
        logger.debug("No database registered, creating one from settings")
    if not isinstance(database, Database) or database.is_cleaned_up:
        database = depends.set(Database, Database(get_settings()))
    return database
