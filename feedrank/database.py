"""
Async SQLAlchemy engine + session factory.

Production runs against TiDB (MySQL-protocol) through aiomysql; tests point
``database_url`` at a SQLite file through aiosqlite. The engine is created
once at startup and shared by the content store, the social graph, the
response builder and the mutation routers.
"""
import logging

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def make_engine(database_url: str) -> AsyncEngine:
    options = {"pool_pre_ping": True, "echo": False}
    if not database_url.startswith("sqlite"):
        options.update(pool_size=20, max_overflow=10)
    return create_async_engine(database_url, **options)


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables if they don't exist (idempotent)."""
    from feedrank import models  # noqa: F401  (register mappers)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")


async def get_db(request: Request):
    """FastAPI dependency that yields an async DB session."""
    async with request.app.state.sessionmaker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
