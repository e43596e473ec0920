"""Engagement accumulation: pure state transitions for audience members.

Nothing in this module touches the database. The recorder loads the prior
state of a member, runs it through these functions, and persists the
result.
"""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from audience.models.audience_member import ActionType, DeviceType, IntentLevel, MemberType

ACTION_MARKERS: dict[ActionType, str] = {
    ActionType.LISTEN: "🎧",
    ActionType.SOCIAL: "📸",
    ActionType.TIP: "💸",
    ActionType.OTHER: "🔗",
}

ACTION_LABELS: dict[ActionType, str] = {
    ActionType.LISTEN: "listened",
    ActionType.SOCIAL: "tapped a social link",
    ActionType.TIP: "sent a tip",
    ActionType.OTHER: "clicked a link",
}

DEFAULT_MARKER = "⭐"
DEFAULT_LABEL = "interacted"

# Higher rank means a stronger identity signal
MEMBER_TYPE_RANK: dict[MemberType, int] = {
    MemberType.ANONYMOUS: 0,
    MemberType.SPOTIFY: 1,
    MemberType.SMS: 2,
    MemberType.EMAIL: 3,
    MemberType.CUSTOMER: 4,
}


@dataclass(frozen=True)
class EngagementConfig:
    """Business-tunable scoring constants."""

    action_weights: dict[str, int] = field(
        default_factory=lambda: {"listen": 2, "social": 1, "tip": 5, "other": 1}
    )
    baseline_weight: int = 1
    high_visits: int = 5
    high_actions: int = 4
    medium_visits: int = 2
    medium_actions: int = 2
    recent_actions_limit: int = 5
    referrer_history_limit: int = 10

    def __post_init__(self) -> None:
        if self.baseline_weight <= 0 or any(w <= 0 for w in self.action_weights.values()):
            raise ValueError("Action weights must be positive integers")
        if self.recent_actions_limit < 1 or self.referrer_history_limit < 1:
            raise ValueError("History limits must be at least 1")


@dataclass(frozen=True)
class ActionRecord:
    """One entry of a member's recent activity."""

    label: str
    type: ActionType
    platform: str
    marker: str
    timestamp: datetime

    def to_json(self) -> dict[str, str]:
        return {
            "label": self.label,
            "type": self.type.value,
            "platform": self.platform,
            "emoji": self.marker,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_json(cls, data: Any) -> "ActionRecord | None":
        """Parse a stored entry; returns None for anything malformed."""
        if not isinstance(data, dict):
            return None
        try:
            action_type = ActionType(data["type"])
            timestamp = datetime.fromisoformat(str(data["timestamp"]))
        except (KeyError, ValueError):
            return None
        return cls(
            label=str(data.get("label") or ACTION_LABELS.get(action_type, DEFAULT_LABEL)),
            type=action_type,
            platform=str(data.get("platform") or action_type.value),
            marker=str(data.get("emoji") or ACTION_MARKERS.get(action_type, DEFAULT_MARKER)),
            timestamp=timestamp,
        )


@dataclass(frozen=True)
class ActionInput:
    """A new interaction plus the context signals that came with it."""

    action_type: ActionType
    label: str | None = None
    platform: str | None = None
    geo_city: str | None = None
    geo_country: str | None = None
    device_type: DeviceType | None = None


@dataclass(frozen=True)
class EngagementState:
    """The mutable engagement fields of an audience member."""

    visit_count: int = 0
    engagement_score: int = 0
    intent_level: IntentLevel = IntentLevel.LOW
    recent_actions: tuple[ActionRecord, ...] = ()
    referrer_history: tuple[dict[str, str], ...] = ()
    geo_city: str | None = None
    geo_country: str | None = None
    device_type: DeviceType = DeviceType.UNKNOWN
    spotify_connected: bool = False
    last_seen_at: datetime | None = None

    @classmethod
    def from_member(cls, member: Any) -> "EngagementState":
        """Snapshot an AudienceMember row (or any object with the same attributes)."""
        actions = [ActionRecord.from_json(entry) for entry in member.recent_actions or []]
        referrers = [r for r in member.referrer_history or [] if isinstance(r, dict)]
        return cls(
            visit_count=member.visit_count or 0,
            engagement_score=member.engagement_score or 0,
            intent_level=member.intent_level or IntentLevel.LOW,
            recent_actions=tuple(a for a in actions if a is not None),
            referrer_history=tuple(referrers),
            geo_city=member.geo_city,
            geo_country=member.geo_country,
            device_type=member.device_type or DeviceType.UNKNOWN,
            spotify_connected=bool(member.spotify_connected),
            last_seen_at=member.last_seen_at,
        )


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _latest(prior: datetime | None, now: datetime) -> datetime:
    if prior is None:
        return now
    return max(_as_utc(prior), _as_utc(now))


def action_weight(action_type: ActionType | str, config: EngagementConfig) -> int:
    """Weight of one action; unmapped types get the baseline weight."""
    key = action_type.value if isinstance(action_type, ActionType) else str(action_type)
    return config.action_weights.get(key, config.baseline_weight)


def build_action_record(
    action_type: ActionType,
    *,
    label: str | None = None,
    platform: str | None = None,
    now: datetime,
) -> ActionRecord:
    return ActionRecord(
        label=label or ACTION_LABELS.get(action_type, DEFAULT_LABEL),
        type=action_type,
        platform=platform or action_type.value,
        marker=ACTION_MARKERS.get(action_type, DEFAULT_MARKER),
        timestamp=now,
    )


def trim_history[T](entries: list[T] | tuple[T, ...], limit: int) -> list[T]:
    """Keep the first ``limit`` entries (callers keep lists newest first)."""
    return list(entries[: max(limit, 0)])


def derive_intent_level(
    visit_count: int,
    action_count: int,
    config: EngagementConfig,
) -> IntentLevel:
    if visit_count >= config.high_visits or action_count >= config.high_actions:
        return IntentLevel.HIGH
    if visit_count >= config.medium_visits or action_count >= config.medium_actions:
        return IntentLevel.MEDIUM
    return IntentLevel.LOW


def accumulate(
    prior: EngagementState,
    action: ActionInput,
    config: EngagementConfig,
    now: datetime,
) -> EngagementState:
    """Apply one action to a member's engagement state."""
    record = build_action_record(
        action.action_type,
        label=action.label,
        platform=action.platform,
        now=now,
    )
    recent = trim_history([record, *prior.recent_actions], config.recent_actions_limit)

    return replace(
        prior,
        engagement_score=prior.engagement_score + action_weight(action.action_type, config),
        intent_level=derive_intent_level(prior.visit_count, len(recent), config),
        recent_actions=tuple(recent),
        geo_city=action.geo_city or prior.geo_city,
        geo_country=action.geo_country or prior.geo_country,
        device_type=_coalesce_device(action.device_type, prior.device_type),
        spotify_connected=prior.spotify_connected or action.action_type == ActionType.LISTEN,
        last_seen_at=_latest(prior.last_seen_at, now),
    )


def register_visit(
    prior: EngagementState,
    *,
    referrer: str | None,
    config: EngagementConfig,
    now: datetime,
    geo_city: str | None = None,
    geo_country: str | None = None,
    device_type: DeviceType | None = None,
) -> EngagementState:
    """Count one profile visit and remember where it came from."""
    referrers = list(prior.referrer_history)
    if referrer and referrer.strip():
        referrers.insert(0, {"url": referrer.strip(), "timestamp": now.isoformat()})
    visit_count = prior.visit_count + 1

    return replace(
        prior,
        visit_count=visit_count,
        intent_level=derive_intent_level(visit_count, len(prior.recent_actions), config),
        referrer_history=tuple(trim_history(referrers, config.referrer_history_limit)),
        geo_city=geo_city or prior.geo_city,
        geo_country=geo_country or prior.geo_country,
        device_type=_coalesce_device(device_type, prior.device_type),
        last_seen_at=_latest(prior.last_seen_at, now),
    )


def mark_seen(prior: EngagementState, now: datetime) -> EngagementState:
    """Advance last_seen_at without touching any counter."""
    return replace(prior, last_seen_at=_latest(prior.last_seen_at, now))


def upgrade_member_type(current: MemberType, candidate: MemberType) -> MemberType:
    """Return the stronger of two identity types; never downgrades."""
    if MEMBER_TYPE_RANK[candidate] > MEMBER_TYPE_RANK[current]:
        return candidate
    return current


def _coalesce_device(new: DeviceType | None, prior: DeviceType) -> DeviceType:
    if new is None or new == DeviceType.UNKNOWN:
        return prior
    return new
