"""
test_checkin_engine.py — tests for the daily safety check-in engine.

Covers:
    • Day keys (UTC formatting, yesterday across boundaries, staleness)
    • Participant registry (identity, names, blank ids)
    • Check-in state machine (streaks, history upsert / trim, coercion)
    • Missing-person sweep and danger zones (transitions, idempotence)
    • End-to-end scenarios (missing without location, zone at last location)

Run with:
    pytest tests/test_checkin_engine.py -v
"""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone

import pytest

from survivor_net.app.checkins.danger_zones import list_danger_zones, mark_missing, sweep
from survivor_net.app.checkins.day_keys import day_key, is_stale, yesterday_key
from survivor_net.app.checkins.models import (
    DEFAULT_NAME,
    HISTORY_LIMIT,
    STREAK_BROKEN,
    CheckInEntry,
    Location,
    Participant,
    ParticipantStatus,
    finite_or_none,
    normalize_note,
)
from survivor_net.app.checkins.registry import ParticipantRegistry
from survivor_net.app.checkins.state_machine import check_in, next_streak, upsert_history
from survivor_net.app.core.errors import InvalidArgumentError


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

UTC = timezone.utc
D = datetime(2024, 3, 10, 9, 0, tzinfo=UTC)


def _days(n: int, hours: float = 0.0) -> datetime:
    """D shifted by ``n`` days (and optional hours)."""
    return D + timedelta(days=n, hours=hours)


def _counter_ids():
    counter = itertools.count(1)
    return lambda: f"DZ-T{next(counter)}"


@pytest.fixture
def registry() -> ParticipantRegistry:
    return ParticipantRegistry(id_factory=_counter_ids())


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Day Keys
# ═══════════════════════════════════════════════════════════════════════════

class TestDayKey:
    """Test day_key / yesterday_key."""

    def test_zero_padded_utc_date(self):
        assert day_key(datetime(2024, 3, 5, 23, 59, tzinfo=UTC)) == "2024-03-05"

    def test_converts_offset_timestamps_to_utc(self):
        # 01:00 at UTC+5 is 20:00 the previous day in UTC
        ts = datetime(2024, 3, 6, 1, 0, tzinfo=timezone(timedelta(hours=5)))
        assert day_key(ts) == "2024-03-05"

    def test_naive_timestamp_is_treated_as_utc(self):
        assert day_key(datetime(2024, 3, 6, 23, 30)) == "2024-03-06"

    def test_midnight_boundary(self):
        assert day_key(datetime(2024, 3, 5, 23, 59, 59, tzinfo=UTC)) == "2024-03-05"
        assert day_key(datetime(2024, 3, 6, 0, 0, 0, tzinfo=UTC)) == "2024-03-06"

    def test_yesterday_across_month_and_leap_day(self):
        assert yesterday_key(datetime(2024, 3, 1, 12, tzinfo=UTC)) == "2024-02-29"

    def test_yesterday_across_year(self):
        assert yesterday_key(datetime(2024, 1, 1, 0, 30, tzinfo=UTC)) == "2023-12-31"


class TestIsStale:
    """Test the single staleness rule."""

    NOW = datetime(2024, 3, 10, 8, 0, tzinfo=UTC)

    @pytest.mark.parametrize("key, expected", [
        (None, False),
        ("", False),
        ("2024-03-10", False),   # today
        ("2024-03-09", False),   # yesterday
        ("2024-03-08", True),    # two days ago
        ("2023-03-10", True),    # a year ago
        ("2024-03-11", True),    # future
    ])
    def test_staleness_table(self, key, expected):
        assert is_stale(key, self.NOW) is expected


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Participant Registry
# ═══════════════════════════════════════════════════════════════════════════

class TestRegistry:
    """Test ParticipantRegistry.get_or_create and enumeration."""

    def test_creates_unknown_participant(self, registry):
        p = registry.get_or_create("p1")
        assert p.participant_id == "p1"
        assert p.name == DEFAULT_NAME
        assert p.streak == 0
        assert p.status == ParticipantStatus.UNKNOWN
        assert p.check_in_history == []
        assert p.last_known_location is None

    def test_identity_is_idempotent(self, registry):
        first = registry.get_or_create("p1", "Joyce")
        second = registry.get_or_create("p1")
        assert first is second
        assert len(registry) == 1

    def test_id_is_trimmed(self, registry):
        p = registry.get_or_create("  p1  ")
        assert p.participant_id == "p1"
        assert registry.get_or_create("p1") is p
        assert "p1" in registry

    @pytest.mark.parametrize("bad_id", [None, "", "   ", "\t\n"])
    def test_blank_id_rejected(self, registry, bad_id):
        with pytest.raises(InvalidArgumentError) as exc_info:
            registry.get_or_create(bad_id)
        assert exc_info.value.status_code == 400
        assert exc_info.value.details["field"] == "participant_id"
        assert len(registry) == 0

    def test_invalid_argument_is_a_value_error(self, registry):
        with pytest.raises(ValueError):
            registry.get_or_create(" ")

    def test_name_updated_and_truncated(self, registry):
        registry.get_or_create("p1", "Joyce")
        p = registry.get_or_create("p1", "  " + "J" * 80 + "  ")
        assert p.name == "J" * 60

    def test_blank_name_keeps_existing(self, registry):
        registry.get_or_create("p1", "Joyce")
        assert registry.get_or_create("p1", "   ").name == "Joyce"
        assert registry.get_or_create("p1", None).name == "Joyce"

    def test_lookup_never_touches_streak_or_status(self, registry):
        p = check_in(registry, "p1", now=D)
        registry.get_or_create("p1", "Renamed")
        assert p.streak == 1
        assert p.status == ParticipantStatus.OK
        assert p.last_check_in_day_key == "2024-03-10"

    def test_iteration_visits_each_participant_once_in_creation_order(self, registry):
        for pid in ("c", "a", "b"):
            registry.get_or_create(pid)
        assert [p.participant_id for p in registry] == ["c", "a", "b"]

    def test_iteration_tolerates_creation_mid_scan(self, registry):
        registry.get_or_create("a")
        seen = []
        for p in registry:
            seen.append(p.participant_id)
            registry.get_or_create("late")
        assert seen == ["a"]
        assert len(registry) == 2

    def test_get_missing_participant_returns_none(self, registry):
        assert registry.get("nobody") is None


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Coercion Helpers
# ═══════════════════════════════════════════════════════════════════════════

class TestCoercion:
    """Test defensive normalisation of optional inputs."""

    @pytest.mark.parametrize("value", [
        None,
        "nowhere",
        {"lat": 1.0},
        {"lat": "abc", "lng": 2.0},
        {"lat": float("nan"), "lng": 2.0},
        {"lat": 1.0, "lng": float("inf")},
        {"lat": "", "lng": 2.0},
    ])
    def test_invalid_locations_dropped(self, value):
        assert Location.coerce(value) is None

    def test_numeric_strings_accepted(self):
        assert Location.coerce({"lat": "10", "lng": "-20.5"}) == Location(10.0, -20.5)

    def test_object_with_attributes_accepted(self):
        class Point:
            lat = 3
            lng = 4
        assert Location.coerce(Point()) == Location(3.0, 4.0)

    def test_finite_or_none(self):
        assert finite_or_none("1.5") == 1.5
        assert finite_or_none("x") is None
        assert finite_or_none(float("-inf")) is None
        assert finite_or_none(None) is None

    def test_note_normalisation(self):
        assert normalize_note("  safe at the gym  ") == "safe at the gym"
        assert normalize_note("   ") is None
        assert normalize_note(None) is None
        assert len(normalize_note("x" * 500)) == 180


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: Check-In State Machine
# ═══════════════════════════════════════════════════════════════════════════

class TestStreaks:
    """Test streak transitions."""

    def test_first_check_in_starts_streak(self, registry):
        p = check_in(registry, "p1", now=D)
        assert p.streak == 1
        assert p.status == ParticipantStatus.OK
        assert p.last_check_in_at == D
        assert p.last_check_in_day_key == "2024-03-10"

    def test_same_day_repeat_keeps_streak(self, registry):
        check_in(registry, "p1", note="morning", now=D)
        p = check_in(registry, "p1", note="later", now=_days(0, hours=1))
        assert p.streak == 1
        assert len(p.check_in_history) == 1
        assert p.check_in_history[0].note == "later"
        assert p.check_in_history[0].at == _days(0, hours=1)

    def test_five_consecutive_days(self, registry):
        for n in range(5):
            p = check_in(registry, "p1", now=_days(n))
        assert p.streak == 5
        assert len(p.check_in_history) == 5

    def test_late_night_then_early_morning_counts_as_consecutive(self, registry):
        check_in(registry, "p1", now=datetime(2024, 3, 10, 23, 59, tzinfo=UTC))
        p = check_in(registry, "p1", now=datetime(2024, 3, 11, 0, 1, tzinfo=UTC))
        assert p.streak == 2

    def test_gap_resets_to_one(self, registry):
        for n in range(10):
            check_in(registry, "p1", now=_days(n))
        # days 10, 11, 12 missed
        p = check_in(registry, "p1", now=_days(13))
        assert p.streak == 1

    def test_single_missed_day_resets(self, registry):
        check_in(registry, "p1", now=D)
        p = check_in(registry, "p1", now=_days(2))
        assert p.streak == 1

    def test_streak_floor_is_one(self, registry):
        registry.restore(Participant(
            participant_id="p1",
            streak=0,
            last_check_in_day_key=yesterday_key(D),
        ))
        p = check_in(registry, "p1", now=D)
        assert p.streak == 1

    def test_next_streak_uses_previous_key(self):
        p = Participant(participant_id="p1", streak=4, last_check_in_day_key="2024-03-09")
        assert next_streak(p, "2024-03-10", "2024-03-09") == 5
        assert next_streak(p, "2024-03-09", "2024-03-08") == 4
        assert next_streak(p, "2024-03-12", "2024-03-11") == 1


class TestCheckInFields:
    """Test location, note and name handling during check-in."""

    def test_valid_location_recorded(self, registry):
        p = check_in(registry, "p1", location={"lat": 10, "lng": 20}, now=D)
        assert p.last_known_location == Location(10.0, 20.0)
        assert p.check_in_history[0].location == Location(10.0, 20.0)

    def test_invalid_location_ignored_not_error(self, registry):
        check_in(registry, "p1", location={"lat": 1, "lng": 2}, now=D)
        p = check_in(registry, "p1", location={"lat": "bad"}, now=_days(1))
        assert p.last_known_location == Location(1.0, 2.0)
        # The entry records what was supplied with that check-in
        assert p.check_in_history[-1].location is None

    def test_note_trimmed_and_truncated(self, registry):
        p = check_in(registry, "p1", note="  " + "n" * 300, now=D)
        assert p.check_in_history[0].note == "n" * 180

    def test_blank_note_absent(self, registry):
        p = check_in(registry, "p1", note="   ", now=D)
        assert p.check_in_history[0].note is None

    def test_name_refreshed(self, registry):
        check_in(registry, "p1", name="Will", now=D)
        p = check_in(registry, "p1", name="Will Byers", now=_days(1))
        assert p.name == "Will Byers"

    def test_blank_id_rejected_without_side_effects(self, registry):
        with pytest.raises(InvalidArgumentError):
            check_in(registry, "  ", location={"lat": 1, "lng": 2}, now=D)
        assert len(registry) == 0

    def test_serialised_timestamps_are_iso(self, registry):
        p = check_in(registry, "p1", now=D)
        d = p.to_dict()
        assert d["last_check_in_at"] == "2024-03-10T09:00:00+00:00"
        assert d["check_in_history"][0]["at"] == "2024-03-10T09:00:00+00:00"
        assert d["status"] == "ok"
        assert d["danger_zone"] is None


class TestHistory:
    """Test bounded history with same-day replacement."""

    def test_never_exceeds_limit_or_duplicates(self, registry):
        for n in range(30):
            p = check_in(registry, "p1", now=_days(n))
            p = check_in(registry, "p1", now=_days(n, hours=2))
        keys = [e.day_key for e in p.check_in_history]
        assert len(keys) == HISTORY_LIMIT
        assert len(set(keys)) == len(keys)
        assert keys[0] == day_key(_days(9))
        assert keys[-1] == day_key(_days(29))

    def test_same_day_entry_replaced_in_place(self, registry):
        check_in(registry, "p1", note="d0", now=D)
        check_in(registry, "p1", note="d1", now=_days(1))
        # Backfilled check-in for the first day keeps its slot
        p = check_in(registry, "p1", note="d0 again", now=_days(0, hours=3))
        assert [e.day_key for e in p.check_in_history] == ["2024-03-10", "2024-03-11"]
        assert p.check_in_history[0].note == "d0 again"

    def test_trim_is_by_insertion_order(self):
        history = [
            CheckInEntry(day_key=day_key(_days(n)), at=_days(n))
            for n in range(1, HISTORY_LIMIT + 1)
        ]
        backfill = CheckInEntry(day_key=day_key(D), at=D)
        upsert_history(history, backfill)
        assert len(history) == HISTORY_LIMIT
        assert history[-1] is backfill
        assert history[0].day_key == day_key(_days(2))


# ═══════════════════════════════════════════════════════════════════════════
# Section 5: Sweep & Danger Zones
# ═══════════════════════════════════════════════════════════════════════════

class TestSweep:
    """Test the stale-streak → missing transition."""

    def test_fresh_participants_untouched(self, registry):
        check_in(registry, "p1", now=D)
        assert sweep(registry, _days(1, hours=14)) == []
        assert registry.get("p1").status == ParticipantStatus.OK

    def test_unknown_participant_never_goes_missing(self, registry):
        registry.get_or_create("ghost")
        assert sweep(registry, _days(365)) == []
        assert registry.get("ghost").status == ParticipantStatus.UNKNOWN

    def test_stale_participant_marked_missing(self, registry):
        check_in(registry, "p1", location={"lat": 1, "lng": 2}, now=D)
        newly = sweep(registry, _days(2))
        p = registry.get("p1")
        assert newly == [p]
        assert p.status == ParticipantStatus.MISSING
        assert p.missing_since == D
        assert p.danger_zone is not None
        assert p.danger_zone.zone_id == "DZ-T1"

    def test_future_day_key_is_stale(self, registry):
        check_in(registry, "p1", now=_days(5))
        sweep(registry, D)
        assert registry.get("p1").is_missing

    def test_missing_without_location_has_no_zone(self, registry):
        check_in(registry, "p1", now=D)
        sweep(registry, _days(3))
        p = registry.get("p1")
        assert p.is_missing
        assert p.danger_zone is None
        assert list_danger_zones(registry, _days(3)) == []

    def test_sweep_is_idempotent(self, registry):
        check_in(registry, "p1", location={"lat": 1, "lng": 2}, now=D)
        sweep(registry, _days(3))
        p = registry.get("p1")
        zone_id, since = p.danger_zone.zone_id, p.missing_since

        assert sweep(registry, _days(3)) == []
        assert sweep(registry, _days(4)) == []
        assert p.danger_zone.zone_id == zone_id
        assert p.missing_since == since

    def test_mark_missing_falls_back_to_now(self, registry):
        p = registry.get_or_create("p1")
        assert mark_missing(registry, p, _days(1))
        assert p.missing_since == _days(1)
        assert not mark_missing(registry, p, _days(2))
        assert p.missing_since == _days(1)

    def test_check_in_clears_missing_state(self, registry):
        check_in(registry, "p1", location={"lat": 1, "lng": 2}, now=D)
        sweep(registry, _days(3))
        p = check_in(registry, "p1", now=_days(3, hours=1))
        assert p.status == ParticipantStatus.OK
        assert p.danger_zone is None
        assert p.missing_since is None
        assert p.streak == 1

    def test_each_episode_gets_fresh_zone(self, registry):
        check_in(registry, "p1", location={"lat": 1, "lng": 2}, now=D)
        sweep(registry, _days(3))
        first = registry.get("p1").danger_zone.zone_id

        check_in(registry, "p1", now=_days(3))
        sweep(registry, _days(6))
        second = registry.get("p1").danger_zone.zone_id
        assert first == "DZ-T1"
        assert second == "DZ-T2"


class TestListDangerZones:
    """Test list_danger_zones."""

    def test_sweeps_before_listing(self, registry):
        check_in(registry, "p1", location={"lat": 1, "lng": 2}, now=D)
        zones = list_danger_zones(registry, _days(2))
        assert len(zones) == 1
        assert registry.get("p1").is_missing

    def test_registry_order_and_one_zone_per_participant(self, registry):
        check_in(registry, "b", location={"lat": 2, "lng": 2}, now=D)
        check_in(registry, "a", location={"lat": 1, "lng": 1}, now=D)
        check_in(registry, "c", now=D)  # no location
        check_in(registry, "d", location={"lat": 4, "lng": 4}, now=_days(3))
        zones = list_danger_zones(registry, _days(3))
        assert [z.participant_id for z in zones] == ["b", "a"]
        assert list_danger_zones(registry, _days(3)) == zones

    def test_zone_serialisation(self, registry):
        check_in(registry, "p1", name="Barb", location={"lat": 1, "lng": 2}, now=D)
        zone = list_danger_zones(registry, _days(3))[0]
        assert zone.to_dict() == {
            "id": "DZ-T1",
            "type": "danger-zone",
            "reason": "streak-broken",
            "participant_id": "p1",
            "name": "Barb",
            "location": {"lat": 1.0, "lng": 2.0},
            "last_seen_at": "2024-03-10T09:00:00+00:00",
        }


# ═══════════════════════════════════════════════════════════════════════════
# Section 6: End-to-End Scenarios
# ═══════════════════════════════════════════════════════════════════════════

class TestScenarios:

    def test_missing_without_location_then_return_with_location(self, registry):
        p = check_in(registry, "p1", now=D)
        assert p.streak == 1
        assert p.status == ParticipantStatus.OK

        sweep(registry, datetime(2024, 3, 12, 12, 0, tzinfo=UTC))
        assert p.status == ParticipantStatus.MISSING
        assert p.danger_zone is None

        p = check_in(
            registry, "p1",
            location={"lat": 10, "lng": 20},
            now=datetime(2024, 3, 12, 13, 0, tzinfo=UTC),
        )
        assert p.streak == 1
        assert p.status == ParticipantStatus.OK
        assert p.danger_zone is None
        assert p.last_known_location == Location(10.0, 20.0)

    def test_stale_participant_zone_at_last_location(self, registry):
        check_in(registry, "p1", location={"lat": 1, "lng": 2}, now=D)
        zones = list_danger_zones(registry, _days(3))
        assert len(zones) == 1
        zone = zones[0]
        assert zone.location == Location(1.0, 2.0)
        assert zone.reason == STREAK_BROKEN
        assert zone.last_seen_at == D
        assert zone.participant_id == "p1"
