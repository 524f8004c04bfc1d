from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from typing import Optional

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    # pysqlite only emits BEGIN before DML and takes the write lock late, which lets two
    # writers deadlock; take the lock up front so concurrent writers queue instead.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """Storage handle: opened once at process start, disposed at shutdown."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None
        self._session_maker: Optional[async_sessionmaker[AsyncSession]] = None

    def open(self) -> "Database":
        if self.engine is not None:
            return self
        self.engine = create_async_engine(self.url, echo=self.echo)
        if self.engine.dialect.name == "sqlite":
            _use_immediate_transactions(self.engine)
        self._session_maker = async_sessionmaker(self.engine, expire_on_commit=False)
        logger.info("Database opened (%s)", self.engine.url.render_as_string(hide_password=True))
        return self

    async def create_all(self) -> None:
        # Register every mapped table on Base.metadata.
        from db import location, inventory  # noqa: F401

        async with self._require_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    def session(self) -> AsyncSession:
        if self._session_maker is None:
            raise RuntimeError("Database is not open")
        return self._session_maker()

    async def dispose(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("Database closed")
        self.engine = None
        self._session_maker = None

    def _require_engine(self) -> AsyncEngine:
        if self.engine is None:
            raise RuntimeError("Database is not open")
        return self.engine


async def get_async_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session


@asynccontextmanager
async def unit_of_work(session: AsyncSession):
    """Commit everything done inside the block, or roll all of it back."""
    try:
        yield session
    except BaseException:
        await session.rollback()
        raise
    else:
        await session.commit()
