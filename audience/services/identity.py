"""Race-safe resolution of a visitor fingerprint to one audience member."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from audience.core.errors import ResolutionConflictError
from audience.models.audience_member import AudienceMember, DeviceType, IntentLevel, MemberType
from audience.services.audience_store import AudienceStore

logger = logging.getLogger(__name__)


@dataclass
class ResolvedMember:
    """The locked member row plus whether this call created it."""

    member: AudienceMember
    created: bool


def new_member_values(
    creator_id: UUID,
    fingerprint: str,
    now: datetime,
    seed: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Column values for a first-contact anonymous member."""
    values: dict[str, Any] = {
        "creator_id": creator_id,
        "fingerprint": fingerprint,
        "member_type": MemberType.ANONYMOUS,
        "display_name": "Visitor",
        "first_seen_at": now,
        "last_seen_at": now,
        "visit_count": 0,
        "engagement_score": 0,
        "intent_level": IntentLevel.LOW,
        "recent_actions": [],
        "referrer_history": [],
        "device_type": DeviceType.UNKNOWN,
        "spotify_connected": False,
        "created_at": now,
        "updated_at": now,
    }
    if seed:
        values.update({k: v for k, v in seed.items() if v is not None})
    return values


async def resolve_or_create_member(
    store: AudienceStore,
    creator_id: UUID,
    fingerprint: str,
    *,
    now: datetime,
    audience_member_id: UUID | None = None,
    seed: dict[str, Any] | None = None,
) -> ResolvedMember:
    """Find or create the member for (creator_id, fingerprint).

    Must run inside the caller's transaction. Concurrent first visits race
    on the unique constraint: the loser's insert is skipped and it re-reads
    the winner's row, so both converge on a single member. The returned row
    is locked for update.
    """
    if audience_member_id is not None:
        member = await store.find_by_id(audience_member_id, for_update=True)
        if member is not None and member.creator_id == creator_id:
            return ResolvedMember(member=member, created=False)

    member = await store.find_by_creator_and_fingerprint(creator_id, fingerprint, for_update=True)
    if member is not None:
        return ResolvedMember(member=member, created=False)

    inserted_id = await store.insert_or_skip(new_member_values(creator_id, fingerprint, now, seed))
    if inserted_id is not None:
        member = await store.find_by_id(inserted_id, for_update=True)
        created = True
    else:
        logger.info(
            "Audience member insert skipped on conflict, re-reading",
            extra={"creator_id": str(creator_id), "fingerprint": fingerprint},
        )
        member = await store.find_by_creator_and_fingerprint(
            creator_id, fingerprint, for_update=True
        )
        created = False

    if member is None:
        raise ResolutionConflictError(
            "Unable to resolve audience member",
            creator_id=str(creator_id),
            fingerprint=fingerprint,
        )
    return ResolvedMember(member=member, created=created)
