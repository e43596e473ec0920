"""Tests for the engagement accumulator (pure state transitions)."""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest

from audience.models.audience_member import ActionType, DeviceType, IntentLevel, MemberType
from audience.services.engagement import (
    ACTION_LABELS,
    ActionInput,
    ActionRecord,
    EngagementConfig,
    EngagementState,
    accumulate,
    action_weight,
    build_action_record,
    derive_intent_level,
    mark_seen,
    register_visit,
    trim_history,
    upgrade_member_type,
)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def config() -> EngagementConfig:
    return EngagementConfig()


def _apply(
    actions: list[ActionInput],
    config: EngagementConfig,
    prior: EngagementState | None = None,
) -> list[EngagementState]:
    """Fold actions one minute apart; returns every intermediate state."""
    state = prior or EngagementState()
    states = []
    for i, action in enumerate(actions):
        state = accumulate(state, action, config, T0 + timedelta(minutes=i))
        states.append(state)
    return states


# ---------------------------------------------------------------------------
# Weights and configuration
# ---------------------------------------------------------------------------


class TestActionWeight:
    def test_default_weights(self, config: EngagementConfig) -> None:
        assert action_weight(ActionType.LISTEN, config) == 2
        assert action_weight(ActionType.SOCIAL, config) == 1
        assert action_weight(ActionType.TIP, config) == 5
        assert action_weight(ActionType.OTHER, config) == 1

    def test_unmapped_type_gets_baseline(self) -> None:
        config = EngagementConfig(action_weights={"tip": 10}, baseline_weight=3)
        assert action_weight(ActionType.LISTEN, config) == 3
        assert action_weight("merch", config) == 3
        assert action_weight(ActionType.TIP, config) == 10

    def test_non_positive_weight_rejected(self) -> None:
        with pytest.raises(ValueError, match="positive"):
            EngagementConfig(action_weights={"listen": 0})

    def test_zero_history_limit_rejected(self) -> None:
        with pytest.raises(ValueError, match="at least 1"):
            EngagementConfig(recent_actions_limit=0)


# ---------------------------------------------------------------------------
# Score accumulation
# ---------------------------------------------------------------------------


class TestScoreAccumulation:
    def test_score_is_sum_of_weights_and_never_decreases(
        self, config: EngagementConfig
    ) -> None:
        sequence = [
            ActionType.TIP,
            ActionType.OTHER,
            ActionType.LISTEN,
            ActionType.SOCIAL,
            ActionType.TIP,
            ActionType.LISTEN,
        ]
        states = _apply([ActionInput(t) for t in sequence], config)

        scores = [s.engagement_score for s in states]
        assert scores == sorted(scores)
        assert scores[-1] == sum(action_weight(t, config) for t in sequence)

    def test_total_is_order_independent(self, config: EngagementConfig) -> None:
        forward = [ActionType.LISTEN, ActionType.TIP, ActionType.SOCIAL]
        a = _apply([ActionInput(t) for t in forward], config)[-1]
        b = _apply([ActionInput(t) for t in reversed(forward)], config)[-1]
        assert a.engagement_score == b.engagement_score == 8

    def test_prior_state_is_not_mutated(self, config: EngagementConfig) -> None:
        prior = EngagementState(engagement_score=4)
        accumulate(prior, ActionInput(ActionType.TIP), config, T0)
        assert prior.engagement_score == 4
        assert prior.recent_actions == ()


# ---------------------------------------------------------------------------
# Recent action history
# ---------------------------------------------------------------------------


class TestRecentActions:
    def test_history_keeps_last_five_newest_first(self, config: EngagementConfig) -> None:
        labels = [f"action-{i}" for i in range(8)]
        states = _apply([ActionInput(ActionType.OTHER, label=label) for label in labels], config)

        final = states[-1].recent_actions
        assert len(final) == 5
        assert [r.label for r in final] == list(reversed(labels[-5:]))
        timestamps = [r.timestamp for r in final]
        assert timestamps == sorted(timestamps, reverse=True)

    def test_history_never_exceeds_limit(self, config: EngagementConfig) -> None:
        states = _apply([ActionInput(ActionType.LISTEN)] * 12, config)
        assert all(len(s.recent_actions) <= 5 for s in states)

    def test_record_defaults_from_action_type(self) -> None:
        record = build_action_record(ActionType.TIP, now=T0)
        assert record.label == "sent a tip"
        assert record.platform == "tip"
        assert record.marker == "💸"

    def test_record_json_shape(self) -> None:
        record = build_action_record(ActionType.LISTEN, platform="spotify", now=T0)
        assert record.to_json() == {
            "label": ACTION_LABELS[ActionType.LISTEN],
            "type": "listen",
            "platform": "spotify",
            "emoji": "🎧",
            "timestamp": T0.isoformat(),
        }
        assert ActionRecord.from_json(record.to_json()) == record

    @pytest.mark.parametrize(
        "entry",
        [
            None,
            "listen",
            {"type": "listen"},
            {"type": "dance", "timestamp": T0.isoformat()},
            {"type": "tip", "timestamp": "yesterday"},
        ],
    )
    def test_malformed_stored_entries_are_dropped(self, entry: object) -> None:
        assert ActionRecord.from_json(entry) is None

    def test_stored_entry_without_label_gets_default(self) -> None:
        parsed = ActionRecord.from_json({"type": "social", "timestamp": T0.isoformat()})
        assert parsed is not None
        assert parsed.label == "tapped a social link"

    def test_trim_history_bounds(self) -> None:
        assert trim_history([1, 2, 3], 2) == [1, 2]
        assert trim_history((1,), 5) == [1]
        assert trim_history([1, 2], 0) == []


# ---------------------------------------------------------------------------
# Intent level
# ---------------------------------------------------------------------------


class TestIntentLevel:
    @pytest.mark.parametrize(
        ("visits", "actions", "expected"),
        [
            (0, 0, IntentLevel.LOW),
            (1, 1, IntentLevel.LOW),
            (2, 0, IntentLevel.MEDIUM),
            (0, 2, IntentLevel.MEDIUM),
            (5, 0, IntentLevel.HIGH),
            (0, 4, IntentLevel.HIGH),
            (3, 3, IntentLevel.MEDIUM),
        ],
    )
    def test_thresholds(
        self,
        config: EngagementConfig,
        visits: int,
        actions: int,
        expected: IntentLevel,
    ) -> None:
        assert derive_intent_level(visits, actions, config) == expected

    def test_accumulate_uses_post_action_history_length(self, config: EngagementConfig) -> None:
        states = _apply([ActionInput(ActionType.OTHER)] * 4, config)
        assert [s.intent_level for s in states] == [
            IntentLevel.LOW,
            IntentLevel.MEDIUM,
            IntentLevel.MEDIUM,
            IntentLevel.HIGH,
        ]

    def test_accumulate_does_not_count_a_visit(self, config: EngagementConfig) -> None:
        state = accumulate(EngagementState(visit_count=1), ActionInput(ActionType.TIP), config, T0)
        assert state.visit_count == 1
        assert state.intent_level == IntentLevel.LOW


# ---------------------------------------------------------------------------
# Null-coalescing context fields and the Spotify flag
# ---------------------------------------------------------------------------


class TestContextFields:
    def test_missing_city_keeps_prior_value(self, config: EngagementConfig) -> None:
        states = _apply(
            [
                ActionInput(ActionType.OTHER, geo_city="Austin", geo_country="US"),
                ActionInput(ActionType.OTHER, geo_city=None, geo_country=None),
                ActionInput(ActionType.OTHER, geo_city="Denver"),
            ],
            config,
        )
        assert [s.geo_city for s in states] == ["Austin", "Austin", "Denver"]
        assert states[-1].geo_country == "US"

    def test_unknown_device_keeps_prior_value(self, config: EngagementConfig) -> None:
        states = _apply(
            [
                ActionInput(ActionType.OTHER, device_type=DeviceType.MOBILE),
                ActionInput(ActionType.OTHER, device_type=DeviceType.UNKNOWN),
                ActionInput(ActionType.OTHER, device_type=None),
                ActionInput(ActionType.OTHER, device_type=DeviceType.DESKTOP),
            ],
            config,
        )
        assert [s.device_type for s in states] == [
            DeviceType.MOBILE,
            DeviceType.MOBILE,
            DeviceType.MOBILE,
            DeviceType.DESKTOP,
        ]

    def test_spotify_flag_is_one_way(self, config: EngagementConfig) -> None:
        states = _apply(
            [
                ActionInput(ActionType.SOCIAL),
                ActionInput(ActionType.LISTEN),
                ActionInput(ActionType.TIP),
                ActionInput(ActionType.OTHER),
            ],
            config,
        )
        assert [s.spotify_connected for s in states] == [False, True, True, True]

    def test_last_seen_never_moves_backwards(self, config: EngagementConfig) -> None:
        later = T0 + timedelta(hours=1)
        state = accumulate(
            EngagementState(last_seen_at=later), ActionInput(ActionType.OTHER), config, T0
        )
        assert state.last_seen_at == later

    def test_naive_stored_timestamp_is_treated_as_utc(self) -> None:
        naive = datetime(2026, 3, 1, 13, 0)
        state = mark_seen(EngagementState(last_seen_at=naive), T0)
        assert state.last_seen_at == naive.replace(tzinfo=UTC)


# ---------------------------------------------------------------------------
# Visits
# ---------------------------------------------------------------------------


class TestRegisterVisit:
    def test_counts_visit_and_records_referrer(self, config: EngagementConfig) -> None:
        state = register_visit(
            EngagementState(visit_count=1),
            referrer="https://instagram.com/artist",
            config=config,
            now=T0,
        )
        assert state.visit_count == 2
        assert state.intent_level == IntentLevel.MEDIUM
        assert state.referrer_history == (
            {"url": "https://instagram.com/artist", "timestamp": T0.isoformat()},
        )

    def test_blank_referrer_is_not_recorded(self, config: EngagementConfig) -> None:
        state = register_visit(EngagementState(), referrer="  ", config=config, now=T0)
        assert state.referrer_history == ()
        assert state.visit_count == 1

    def test_referrer_history_is_bounded(self, config: EngagementConfig) -> None:
        state = EngagementState()
        for i in range(15):
            state = register_visit(
                state,
                referrer=f"https://ref-{i}.example",
                config=config,
                now=T0 + timedelta(minutes=i),
            )
        assert len(state.referrer_history) == config.referrer_history_limit
        assert state.referrer_history[0]["url"] == "https://ref-14.example"
        assert state.visit_count == 15
        assert state.intent_level == IntentLevel.HIGH


# ---------------------------------------------------------------------------
# Snapshots and member type
# ---------------------------------------------------------------------------


class TestEngagementStateFromMember:
    def test_snapshot_skips_corrupt_history(self) -> None:
        member = SimpleNamespace(
            visit_count=3,
            engagement_score=7,
            intent_level=IntentLevel.MEDIUM,
            recent_actions=[
                {"type": "tip", "timestamp": T0.isoformat(), "label": "sent a tip"},
                {"garbage": True},
            ],
            referrer_history=[{"url": "https://x.example"}, "bad"],
            geo_city="Austin",
            geo_country="US",
            device_type=DeviceType.MOBILE,
            spotify_connected=True,
            last_seen_at=T0,
        )
        state = EngagementState.from_member(member)
        assert state.engagement_score == 7
        assert [r.type for r in state.recent_actions] == [ActionType.TIP]
        assert state.referrer_history == ({"url": "https://x.example"},)
        assert state.spotify_connected is True

    def test_snapshot_tolerates_null_columns(self) -> None:
        member = SimpleNamespace(
            visit_count=None,
            engagement_score=None,
            intent_level=None,
            recent_actions=None,
            referrer_history=None,
            geo_city=None,
            geo_country=None,
            device_type=None,
            spotify_connected=None,
            last_seen_at=None,
        )
        state = EngagementState.from_member(member)
        assert state == EngagementState()


class TestUpgradeMemberType:
    def test_upgrades_to_stronger_identity(self) -> None:
        assert upgrade_member_type(MemberType.ANONYMOUS, MemberType.EMAIL) == MemberType.EMAIL
        assert upgrade_member_type(MemberType.SMS, MemberType.EMAIL) == MemberType.EMAIL

    def test_never_downgrades(self) -> None:
        assert upgrade_member_type(MemberType.CUSTOMER, MemberType.EMAIL) == MemberType.CUSTOMER
        assert upgrade_member_type(MemberType.EMAIL, MemberType.SMS) == MemberType.EMAIL
        assert upgrade_member_type(MemberType.EMAIL, MemberType.ANONYMOUS) == MemberType.EMAIL
