"""Audience interaction ingestion: click, visit and identification recording.

Every operation runs in one transaction: resolve the member, compute the
new engagement state, write the event and the member update, commit. Any
failure rolls everything back. Failures are returned as values so callers
attached to user-facing requests can decide whether to wait on them.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import pydantic
from sqlalchemy.exc import DataError, DBAPIError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from audience.core.encryption import encrypt_ip
from audience.core.errors import (
    AudienceError,
    ForbiddenError,
    InternalPipelineError,
    NotFoundError,
    TransientStoreError,
    ValidationError,
)
from audience.models.audience_member import AudienceMember, MemberType
from audience.models.interaction_event import InteractionEvent
from audience.schemas.audience import ClickRequest, IdentifyRequest, VisitRequest
from audience.schemas.common import BaseSchema
from audience.services.audience_store import AudienceStore
from audience.services.engagement import (
    ActionInput,
    EngagementConfig,
    EngagementState,
    accumulate,
    action_weight,
    mark_seen,
    register_visit,
    upgrade_member_type,
)
from audience.services.fingerprint import (
    BOT_FILTERED_FINGERPRINT,
    create_fingerprint,
    infer_device_type,
    is_bot_user_agent,
    should_block_bot,
)
from audience.services.identity import resolve_or_create_member

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected, lock_not_available, query_canceled
_TRANSIENT_SQLSTATES = frozenset({"40001", "40P01", "55P03", "57014"})

TRANSIENT_MESSAGE = "Unable to record interaction, please retry"
INTERNAL_MESSAGE = "Unable to record interaction"
REJECTED_MESSAGE = "Interaction payload rejected by the audience store"


def _sqlstate(exc: DBAPIError) -> str | None:
    # asyncpg errors expose sqlstate, psycopg2 errors pgcode
    return getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)


def is_transient(exc: BaseException) -> bool:
    """True for failures a replay of the same payload can get past."""
    if isinstance(exc, (TimeoutError, ConnectionError, PoolTimeoutError, OperationalError)):
        return True
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        state = _sqlstate(exc) or ""
        return state in _TRANSIENT_SQLSTATES or state.startswith("08")
    return False


@dataclass(frozen=True)
class RecordSuccess:
    """The interaction was committed (or deliberately not recorded)."""

    fingerprint: str
    audience_member_id: UUID | None = None
    created: bool = False
    recorded: bool = True


@dataclass(frozen=True)
class RecordFailure:
    """Nothing was written; ``error.retryable`` says whether to replay."""

    fingerprint: str | None
    error: AudienceError

    @property
    def retryable(self) -> bool:
        return self.error.retryable


type RecordResult = RecordSuccess | RecordFailure


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _coerce[M: BaseSchema](model: type[M], payload: M | Mapping[str, Any]) -> M:
    """Accept a parsed request or a raw mapping (queue consumers pass dicts)."""
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ValidationError("Invalid interaction payload", fields=fields) from e


class InteractionRecorder:
    """Records audience interactions for creators.

    The session factory is owned by the host application; each call opens
    its own session and transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: EngagementConfig,
        *,
        bot_block_patterns: list[str] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.config = config
        self.bot_block_patterns = bot_block_patterns or []
        self.clock = clock

    async def record_click(
        self,
        payload: ClickRequest | Mapping[str, Any],
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> RecordResult:
        """Record one click and fold it into the member's engagement state."""
        try:
            payload = _coerce(ClickRequest, payload)
        except ValidationError as exc:
            return self._failure(exc, None, {})

        resolved_ip = payload.ip_address or ip_address
        resolved_ua = payload.user_agent or user_agent
        fingerprint = create_fingerprint(resolved_ip, resolved_ua)

        if should_block_bot(resolved_ua, self.bot_block_patterns):
            logger.info("Blocked bot click for creator %s", payload.creator_id)
            return RecordSuccess(fingerprint=BOT_FILTERED_FINGERPRINT, recorded=False)

        device_type = payload.device_type or infer_device_type(resolved_ua)
        action = ActionInput(
            action_type=payload.action_type,
            label=payload.action_label,
            platform=payload.platform,
            geo_city=payload.city,
            geo_country=payload.country,
            device_type=device_type,
        )
        context = {
            "creator_id": str(payload.creator_id),
            "fingerprint": fingerprint,
            "action_type": payload.action_type.value,
        }

        try:
            async with self.session_factory() as session, session.begin():
                store = AudienceStore(session)
                await self._ensure_public_creator(store, payload.creator_id)

                now = self.clock()
                resolved = await resolve_or_create_member(
                    store,
                    payload.creator_id,
                    fingerprint,
                    now=now,
                    audience_member_id=payload.audience_member_id,
                    seed={
                        "device_type": device_type,
                        "geo_city": payload.city,
                        "geo_country": payload.country,
                    },
                )
                member = resolved.member
                state = accumulate(EngagementState.from_member(member), action, self.config, now)

                await self._insert_event(
                    session,
                    InteractionEvent(
                        creator_id=payload.creator_id,
                        link_id=payload.link_id,
                        action_type=payload.action_type,
                        ip_address=encrypt_ip(resolved_ip),
                        user_agent=resolved_ua,
                        referrer=payload.referrer,
                        geo_city=payload.city,
                        geo_country=payload.country,
                        device_type=device_type.value,
                        os=payload.os,
                        browser=payload.browser,
                        is_bot=is_bot_user_agent(resolved_ua),
                        metadata_=dict(payload.metadata),
                        audience_member_id=member.id,
                    ),
                )
                await store.apply_update(
                    member.id,
                    state,
                    score_delta=action_weight(payload.action_type, self.config),
                    now=now,
                )
                member_id = member.id
        except Exception as exc:
            return self._failure(exc, fingerprint, context)

        logger.debug("Recorded %s click for member %s", payload.action_type.value, member_id)
        return RecordSuccess(
            fingerprint=fingerprint,
            audience_member_id=member_id,
            created=resolved.created,
        )

    async def record_visit(
        self,
        payload: VisitRequest | Mapping[str, Any],
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> RecordResult:
        """Count a profile visit for the resolved member."""
        try:
            payload = _coerce(VisitRequest, payload)
        except ValidationError as exc:
            return self._failure(exc, None, {})

        resolved_ip = payload.ip_address or ip_address
        resolved_ua = payload.user_agent or user_agent
        fingerprint = create_fingerprint(resolved_ip, resolved_ua)

        if should_block_bot(resolved_ua, self.bot_block_patterns):
            return RecordSuccess(fingerprint=BOT_FILTERED_FINGERPRINT, recorded=False)

        device_type = payload.device_type or infer_device_type(resolved_ua)
        context = {"creator_id": str(payload.creator_id), "fingerprint": fingerprint}

        try:
            async with self.session_factory() as session, session.begin():
                store = AudienceStore(session)
                await self._ensure_public_creator(store, payload.creator_id)

                now = self.clock()
                resolved = await resolve_or_create_member(
                    store,
                    payload.creator_id,
                    fingerprint,
                    now=now,
                    audience_member_id=payload.audience_member_id,
                    seed={"device_type": device_type},
                )
                member = resolved.member
                state = register_visit(
                    EngagementState.from_member(member),
                    referrer=payload.referrer,
                    config=self.config,
                    now=now,
                    geo_city=payload.city,
                    geo_country=payload.country,
                    device_type=device_type,
                )
                await store.apply_update(member.id, state, visit_delta=1, now=now)
                member_id = member.id
        except Exception as exc:
            return self._failure(exc, fingerprint, context)

        return RecordSuccess(
            fingerprint=fingerprint,
            audience_member_id=member_id,
            created=resolved.created,
        )

    async def identify_member(
        self,
        payload: IdentifyRequest | Mapping[str, Any],
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> RecordResult:
        """Attach contact details to the visitor's member, upgrading its type."""
        try:
            payload = _coerce(IdentifyRequest, payload)
        except ValidationError as exc:
            return self._failure(exc, None, {})

        resolved_ip = payload.ip_address or ip_address
        resolved_ua = payload.user_agent or user_agent
        fingerprint = create_fingerprint(resolved_ip, resolved_ua)

        channel_type = MemberType(payload.channel)
        email = payload.email.strip().lower() if payload.email else None
        phone = payload.phone.strip() if payload.phone else None
        context = {
            "creator_id": str(payload.creator_id),
            "fingerprint": fingerprint,
            "channel": payload.channel,
        }

        try:
            async with self.session_factory() as session, session.begin():
                store = AudienceStore(session)
                await self._ensure_public_creator(store, payload.creator_id)

                now = self.clock()
                resolved = await resolve_or_create_member(
                    store,
                    payload.creator_id,
                    fingerprint,
                    now=now,
                    seed={
                        "member_type": channel_type,
                        "display_name": "Subscriber",
                        "email": email,
                        "phone": phone,
                        "device_type": payload.device_type or infer_device_type(resolved_ua),
                    },
                )
                member = resolved.member
                await store.apply_update(
                    member.id,
                    mark_seen(EngagementState.from_member(member), now),
                    now=now,
                    extra=self._identity_fields(member, channel_type, email, phone),
                )
                member_id = member.id
        except Exception as exc:
            return self._failure(exc, fingerprint, context)

        logger.info("Audience member %s identified via %s", member_id, payload.channel)
        return RecordSuccess(
            fingerprint=fingerprint,
            audience_member_id=member_id,
            created=resolved.created,
        )

    @staticmethod
    def _identity_fields(
        member: AudienceMember,
        channel_type: MemberType,
        email: str | None,
        phone: str | None,
    ) -> dict[str, object]:
        fields: dict[str, object] = {
            "member_type": upgrade_member_type(member.member_type, channel_type),
        }
        if email:
            fields["email"] = email
        if phone:
            fields["phone"] = phone
        if member.display_name in (None, "Visitor"):
            fields["display_name"] = "Subscriber"
        return fields

    async def _ensure_public_creator(self, store: AudienceStore, creator_id: UUID) -> None:
        creator = await store.get_creator(creator_id)
        if creator is None:
            raise NotFoundError("Creator profile not found", creator_id=str(creator_id))
        if not creator.is_public:
            raise ForbiddenError("Creator profile is not public", creator_id=str(creator_id))

    async def _insert_event(self, session: AsyncSession, event: InteractionEvent) -> None:
        session.add(event)
        await session.flush()

    def _failure(
        self,
        exc: Exception,
        fingerprint: str | None,
        context: dict[str, str],
    ) -> RecordFailure:
        """Classify an exception that aborted the transaction."""
        if isinstance(exc, AudienceError):
            error = exc
        elif is_transient(exc):
            error = TransientStoreError(TRANSIENT_MESSAGE)
        elif isinstance(exc, DataError):
            error = ValidationError(REJECTED_MESSAGE)
        else:
            error = InternalPipelineError(INTERNAL_MESSAGE)
        wrapped = error is not exc
        if wrapped:
            context = {**context, "error_type": type(exc).__name__}

        # Driver text (SQL and bound parameters) only ever reaches the log
        if wrapped or error.retryable:
            logger.error(
                "Audience interaction failed: %s",
                error.message,
                extra=context,
                exc_info=exc,
            )
        else:
            logger.warning("Audience interaction rejected: %s", error.message, extra=context)
        return RecordFailure(fingerprint=fingerprint, error=error)


__all__ = [
    "InteractionRecorder",
    "RecordFailure",
    "RecordResult",
    "RecordSuccess",
    "is_transient",
]
