"""Pytest configuration and fixtures for the audience API test suite.

Provides:
- Test database with table cleanup per test
- Disabled rate limiting
- An InteractionRecorder bound to the test database
- Model factory fixtures for Creator and AudienceMember

The database comes from ``TEST_DATABASE_URL``. It defaults to a local
SQLite file so the suite runs without a server; point it at PostgreSQL
(``postgresql+asyncpg://.../audience_test``) to also run the concurrency
tests that need real row locking.
"""

import os
import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from audience.core.database import get_async_session
from audience.core.deps import get_db
from audience.core.rate_limit import limiter
from audience.main import app
from audience.models.audience_member import AudienceMember, MemberType
from audience.models.base import Base
from audience.models.creator import Creator
from audience.models.interaction_event import InteractionEvent
from audience.services.engagement import EngagementConfig
from audience.services.interaction import InteractionRecorder

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
TEST_IP = "1.2.3.4"
TEST_UA = "UA-X"
BLOCKED_BOT_UA = "Mozilla/5.0 (compatible; AhrefsBot/7.0)"

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False

# ---------------------------------------------------------------------------
# Session-scoped engine & table setup
# ---------------------------------------------------------------------------

_test_engine: Any = None
_test_session_factory: Any = None
_TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///./audience_test.db")

# Tables to clean after each test (reverse dependency order)
_TABLES_TO_TRUNCATE = [
    "interaction_events",
    "audience_members",
    "creators",
]


def is_postgres() -> bool:
    return _TEST_DATABASE_URL.startswith("postgresql")


requires_postgres = pytest.mark.skipif(
    not is_postgres(),
    reason="needs PostgreSQL row locking (set TEST_DATABASE_URL)",
)


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def _create_tables() -> AsyncGenerator[None, None]:
    """Create all tables once per test session.

    Uses NullPool so every session gets its own connection, which keeps
    asyncpg/aiosqlite connections off the event loop they were not made on.
    """
    global _test_engine, _test_session_factory  # noqa: PLW0603
    _test_engine = create_async_engine(
        _TEST_DATABASE_URL,
        echo=False,
        poolclass=NullPool,
    )
    _test_session_factory = async_sessionmaker(
        _test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with _test_engine.begin() as conn:
        if not is_postgres():
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await _test_engine.dispose()


# ---------------------------------------------------------------------------
# Per-test database session + cleanup
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(loop_scope="session")
async def db_session(_create_tables: None) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for test setup (factory fixtures)."""
    async with _test_session_factory() as session:
        yield session


@pytest_asyncio.fixture(loop_scope="session")
async def session_factory(_create_tables: None) -> async_sessionmaker[AsyncSession]:
    """The session factory the code under test should use."""
    return _test_session_factory  # type: ignore[no-any-return]


@pytest_asyncio.fixture(autouse=True)
async def _cleanup_tables() -> AsyncGenerator[None, None]:
    """Empty all tables after each test to restore a clean state."""
    yield
    if _test_engine is not None:
        async with _test_engine.begin() as conn:
            if is_postgres():
                await conn.execute(text(f"TRUNCATE {', '.join(_TABLES_TO_TRUNCATE)} CASCADE"))
            else:
                for table in _TABLES_TO_TRUNCATE:
                    await conn.execute(text(f"DELETE FROM {table}"))


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


@pytest.fixture
def engagement_config() -> EngagementConfig:
    """Default scoring constants (listen=2, social=1, tip=5, other=1)."""
    return EngagementConfig()


@pytest.fixture
def recorder(
    session_factory: async_sessionmaker[AsyncSession],
    engagement_config: EngagementConfig,
) -> InteractionRecorder:
    return InteractionRecorder(
        session_factory,
        engagement_config,
        bot_block_patterns=["ahrefsbot"],
    )


# ---------------------------------------------------------------------------
# HTTP client (overrides DB; rate limiting disabled above)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """Async test client with the database dependencies overridden."""

    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as s:
            yield s

    # ASGITransport does not run the lifespan, so wire the factory by hand
    app.state.session_factory = session_factory
    app.dependency_overrides[get_async_session] = _override_session
    app.dependency_overrides[get_db] = _override_session

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def plain_client() -> AsyncGenerator[AsyncClient, None]:
    """Minimal async test client with NO dependency overrides."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Model Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def creator_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates Creator instances in the test database."""

    async def _create(
        *,
        username: str | None = None,
        display_name: str | None = "Test Artist",
        is_public: bool = True,
    ) -> Creator:
        creator = Creator(
            username=username or f"artist-{uuid.uuid4().hex[:8]}",
            display_name=display_name,
            is_public=is_public,
        )
        db_session.add(creator)
        await db_session.commit()
        await db_session.refresh(creator)
        return creator

    return _create


@pytest.fixture
def member_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates AudienceMember instances."""

    async def _create(
        *,
        creator_id: UUID,
        fingerprint: str | None = None,
        member_type: MemberType = MemberType.ANONYMOUS,
        engagement_score: int = 0,
        visit_count: int = 0,
        email: str | None = None,
        display_name: str | None = "Visitor",
        spotify_connected: bool = False,
    ) -> AudienceMember:
        now = datetime.now(UTC)
        member = AudienceMember(
            creator_id=creator_id,
            fingerprint=fingerprint,
            member_type=member_type,
            display_name=display_name,
            email=email,
            first_seen_at=now,
            last_seen_at=now,
            engagement_score=engagement_score,
            visit_count=visit_count,
            recent_actions=[],
            referrer_history=[],
            spotify_connected=spotify_connected,
        )
        db_session.add(member)
        await db_session.commit()
        await db_session.refresh(member)
        return member

    return _create


# ---------------------------------------------------------------------------
# Convenience fixtures (pre-built models)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def creator(creator_factory: Callable[..., Any]) -> Creator:
    """A default public creator."""
    return await creator_factory()  # type: ignore[no-any-return]


@pytest_asyncio.fixture
async def private_creator(creator_factory: Callable[..., Any]) -> Creator:
    """A creator whose profile is not public."""
    return await creator_factory(username="private-artist", is_public=False)  # type: ignore[no-any-return]


# ---------------------------------------------------------------------------
# Query helpers (fresh session so results never come from a stale identity map)
# ---------------------------------------------------------------------------


@pytest.fixture
def fetch_members(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Any]:
    async def _fetch(creator_id: UUID) -> list[AudienceMember]:
        async with session_factory() as s:
            result = await s.execute(
                select(AudienceMember).where(AudienceMember.creator_id == creator_id)
            )
            return list(result.scalars().all())

    return _fetch


@pytest.fixture
def fetch_events(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Any]:
    async def _fetch(creator_id: UUID) -> list[InteractionEvent]:
        async with session_factory() as s:
            result = await s.execute(
                select(InteractionEvent)
                .where(InteractionEvent.creator_id == creator_id)
                .order_by(InteractionEvent.created_at)
            )
            return list(result.scalars().all())

    return _fetch


@pytest.fixture
def count_rows(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Any]:
    async def _count(model: type[Base]) -> int:
        async with session_factory() as s:
            result = await s.execute(select(func.count()).select_from(model))
            return int(result.scalar_one())

    return _count
