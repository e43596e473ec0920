"""AudienceMember model: one visitor's cumulative relationship with one creator."""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from audience.models.base import Base, JSONType

if TYPE_CHECKING:
    from audience.models.creator import Creator


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class MemberType(str, enum.Enum):
    """How strongly an audience member is identified."""

    ANONYMOUS = "anonymous"
    EMAIL = "email"
    SMS = "sms"
    SPOTIFY = "spotify"
    CUSTOMER = "customer"


class IntentLevel(str, enum.Enum):
    """Coarse purchase/fan intent derived from visits and recent actions."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DeviceType(str, enum.Enum):
    """Device class inferred from the user agent."""

    MOBILE = "mobile"
    DESKTOP = "desktop"
    TABLET = "tablet"
    UNKNOWN = "unknown"


class ActionType(str, enum.Enum):
    """Closed set of interactions a visitor can perform on a profile."""

    LISTEN = "listen"
    SOCIAL = "social"
    TIP = "tip"
    OTHER = "other"


class AudienceMember(Base):
    """Durable audience record for a creator.

    Anonymous visitors are keyed by (creator_id, fingerprint); the unique
    constraint is what makes concurrent first visits converge on one row.
    Identified members (email/sms) may carry the fingerprint of the device
    they signed up from.
    """

    __tablename__ = "audience_members"
    __table_args__ = (
        UniqueConstraint(
            "creator_id",
            "fingerprint",
            name="uq_audience_members_creator_fingerprint",
        ),
        CheckConstraint("visit_count >= 0", name="visit_count_non_negative"),
        CheckConstraint("engagement_score >= 0", name="engagement_score_non_negative"),
    )

    creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("creators.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Identity
    member_type: Mapped[MemberType] = mapped_column(
        Enum(MemberType, name="audience_member_type", values_callable=_enum_values),
        default=MemberType.ANONYMOUS,
        nullable=False,
    )
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    fingerprint: Mapped[str | None] = mapped_column(String(64), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Activity window
    first_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    last_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    # Engagement state
    visit_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    engagement_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    intent_level: Mapped[IntentLevel] = mapped_column(
        Enum(IntentLevel, name="audience_intent_level", values_callable=_enum_values),
        default=IntentLevel.LOW,
        nullable=False,
    )
    recent_actions: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType,
        default=list,
        nullable=False,
    )
    referrer_history: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType,
        default=list,
        nullable=False,
    )

    # Last-known context
    geo_city: Mapped[str | None] = mapped_column(Text, nullable=True)
    geo_country: Mapped[str | None] = mapped_column(Text, nullable=True)
    device_type: Mapped[DeviceType] = mapped_column(
        Enum(DeviceType, name="audience_device_type", values_callable=_enum_values),
        default=DeviceType.UNKNOWN,
        nullable=False,
    )
    spotify_connected: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    creator: Mapped["Creator"] = relationship("Creator", back_populates="audience_members")

    def __repr__(self) -> str:
        return f"<AudienceMember {self.id} {self.member_type.value} score={self.engagement_score}>"
