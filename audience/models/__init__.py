"""SQLAlchemy models."""

from audience.models.audience_member import (
    ActionType,
    AudienceMember,
    DeviceType,
    IntentLevel,
    MemberType,
)
from audience.models.base import Base
from audience.models.creator import Creator
from audience.models.interaction_event import InteractionEvent

__all__ = [
    # Base
    "Base",
    # Creators
    "Creator",
    # Audience
    "AudienceMember",
    "MemberType",
    "IntentLevel",
    "DeviceType",
    # Events
    "InteractionEvent",
    "ActionType",
]
