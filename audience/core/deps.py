"""FastAPI dependencies for database access and the ingestion pipeline."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from audience.core.config import settings
from audience.core.database import get_async_session
from audience.services.interaction import InteractionRecorder


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session for read-only endpoints such as health probes."""
    async for session in get_async_session(request):
        yield session


# Database session dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Session factory created by the application lifespan."""
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    return session_factory


def get_recorder(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> InteractionRecorder:
    """Build the interaction recorder for this request."""
    return InteractionRecorder(
        session_factory,
        settings.engagement_config(),
        bot_block_patterns=settings.bot_block_patterns,
    )


Recorder = Annotated[InteractionRecorder, Depends(get_recorder)]


__all__ = [
    "DBSession",
    "Recorder",
    "get_db",
    "get_recorder",
    "get_session_factory",
]
