"""Database session management."""
from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ..core.config import settings
from ..core.errors import StorageError

connect_args: dict[str, object] = {}
if settings.database_ssl_required:
    connect_args["ssl"] = True

engine = create_async_engine(
    settings.database_async_url,
    echo=False,
    pool_pre_ping=True,
    connect_args=connect_args,
)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency to provide an async session."""

    async with SessionLocal() as session:
        yield session


@asynccontextmanager
async def transaction(session: AsyncSession, action: str) -> AsyncIterator[AsyncSession]:
    """Run a unit of work, surfacing driver failures as ``StorageError``."""

    try:
        async with session.begin():
            yield session
    except SQLAlchemyError as exc:
        raise StorageError(f"Failed to {action}: {exc}") from exc
