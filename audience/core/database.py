"""Async engine and session factory construction.

The engine is created by the application lifespan and kept on
``app.state``; nothing here holds a module-level connection pool.
"""

from collections.abc import AsyncGenerator
from typing import Any

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from audience.core.config import Settings


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured PostgreSQL database."""
    connect_args: dict[str, Any] = {}
    if str(settings.database_url).startswith("postgresql+asyncpg"):
        connect_args["server_settings"] = {
            "statement_timeout": str(settings.database_statement_timeout_ms),
        }
    return create_async_engine(
        str(settings.database_url),
        echo=False,
        pool_pre_ping=True,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        connect_args=connect_args,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory shared by request handlers and the ingestion pipeline."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_async_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session from the factory owned by the running application."""
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with session_factory() as session:
        yield session
