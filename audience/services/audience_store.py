"""Point lookups and writes against the audience_members table."""

import uuid
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from audience.models.audience_member import AudienceMember
from audience.models.creator import Creator
from audience.services.engagement import EngagementState


class AudienceStore:
    """Data access for audience members, bound to one session/transaction."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_creator(self, creator_id: UUID) -> Creator | None:
        result = await self.db.execute(select(Creator).where(Creator.id == creator_id))
        return result.scalar_one_or_none()

    async def find_by_id(
        self,
        member_id: UUID,
        *,
        for_update: bool = False,
    ) -> AudienceMember | None:
        stmt = select(AudienceMember).where(AudienceMember.id == member_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def find_by_creator_and_fingerprint(
        self,
        creator_id: UUID,
        fingerprint: str,
        *,
        for_update: bool = False,
    ) -> AudienceMember | None:
        stmt = select(AudienceMember).where(
            AudienceMember.creator_id == creator_id,
            AudienceMember.fingerprint == fingerprint,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def insert_or_skip(self, values: dict[str, Any]) -> UUID | None:
        """Insert a member unless (creator_id, fingerprint) already exists.

        Returns the new id, or None when a concurrent writer got there first.
        """
        values = {"id": uuid.uuid4(), **values}
        insert = sqlite_insert if self.db.get_bind().dialect.name == "sqlite" else pg_insert
        stmt = (
            insert(AudienceMember)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["creator_id", "fingerprint"])
            .returning(AudienceMember.id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def apply_update(
        self,
        member_id: UUID,
        state: EngagementState,
        *,
        score_delta: int = 0,
        visit_delta: int = 0,
        now: datetime,
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Persist derived fields; counters are incremented in SQL."""
        values: dict[str, Any] = {
            "engagement_score": AudienceMember.engagement_score + score_delta,
            "visit_count": AudienceMember.visit_count + visit_delta,
            "intent_level": state.intent_level,
            "recent_actions": [record.to_json() for record in state.recent_actions],
            "referrer_history": list(state.referrer_history),
            "geo_city": state.geo_city,
            "geo_country": state.geo_country,
            "device_type": state.device_type,
            "spotify_connected": state.spotify_connected,
            "last_seen_at": state.last_seen_at or now,
            "updated_at": now,
        }
        if extra:
            values.update(extra)
        await self.db.execute(
            update(AudienceMember)
            .where(AudienceMember.id == member_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
