"""InteractionEvent model: insert-only ledger of profile clicks."""

import uuid
from typing import Any

from sqlalchemy import Boolean, Enum, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from audience.models.audience_member import ActionType, _enum_values
from audience.models.base import Base, JSONType


class InteractionEvent(Base):
    """One recorded click or action on a creator profile.

    Rows are never updated after insert. The IP address is stored
    encrypted.
    """

    __tablename__ = "interaction_events"
    __table_args__ = (
        Index("ix_interaction_events_creator_created", "creator_id", "created_at"),
    )

    creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("creators.id", ondelete="CASCADE"),
        nullable=False,
    )
    link_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    action_type: Mapped[ActionType] = mapped_column(
        Enum(ActionType, name="interaction_action_type", values_callable=_enum_values),
        nullable=False,
    )

    # Request metadata
    ip_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    referrer: Mapped[str | None] = mapped_column(Text, nullable=True)
    geo_city: Mapped[str | None] = mapped_column(Text, nullable=True)
    geo_country: Mapped[str | None] = mapped_column(Text, nullable=True)
    device_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    os: Mapped[str | None] = mapped_column(String(64), nullable=True)
    browser: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_bot: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONType,
        default=dict,
        nullable=False,
    )

    audience_member_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("audience_members.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<InteractionEvent {self.action_type.value} member={self.audience_member_id}>"
