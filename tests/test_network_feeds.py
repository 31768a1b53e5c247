"""
test_network_feeds.py — tests for SOS / threat / chat feeds and the
realtime broadcast hub.

Covers:
    • Feed record builders (coercion, truncation, enum fallbacks)
    • NetworkFeeds (newest-first lists, zone buffers, presence)
    • SOS acknowledge / respond / resolve toggles and zone markers
    • Retention caps on the SOS, threat and marker stores
    • BroadcastHub (global and zone fan-out, slow subscribers)

Run with:
    pytest tests/test_network_feeds.py -v
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from survivor_net.app.core.config import settings
from survivor_net.app.core.errors import InvalidArgumentError, NotFoundError
from survivor_net.app.network.broadcast import BroadcastHub, envelope
from survivor_net.app.network.catalog import DEFAULT_ZONES, default_camps
from survivor_net.app.network.feeds import NetworkFeeds, normalize_zone_id
from survivor_net.app.network.models import (
    ChatMessage,
    MarkerKind,
    MessageKind,
    SosAlert,
    SosCategory,
    SosRole,
    SosSeverity,
    SosStatus,
    ThreatReport,
    ThreatSeverity,
    ZoneMarker,
)


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

T0 = datetime(2024, 3, 10, 9, 0, tzinfo=timezone.utc)


def _at(minutes: int) -> datetime:
    return T0 + timedelta(minutes=minutes)


@pytest.fixture
def feeds() -> NetworkFeeds:
    return NetworkFeeds()


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Feed Records
# ═══════════════════════════════════════════════════════════════════════════

class TestSosAlert:

    def test_from_payload(self):
        alert = SosAlert.from_payload(
            {"participant_id": " p1 ", "name": "Nancy", "message": "Help",
             "location": {"lat": 1, "lng": 2}},
            T0,
        )
        d = alert.to_dict()
        assert d["id"].startswith("SOS-")
        assert d["type"] == "sos"
        assert d["participant_id"] == "p1"
        assert d["location"] == {"lat": 1.0, "lng": 2.0}
        assert d["created_at"] == "2024-03-10T09:00:00+00:00"

    def test_message_truncated_and_defaults(self):
        alert = SosAlert.from_payload({"message": "x" * 1000, "location": "nope"}, T0)
        assert len(alert.message) == 400
        assert alert.participant_id is None
        assert alert.name == "Unknown Survivor"
        assert alert.location is None

    def test_lifecycle_defaults(self):
        d = SosAlert.from_payload({"message": "Help", "zone_id": "  "}, T0).to_dict()
        assert d["severity"] == "high"
        assert d["category"] == "general"
        assert d["status"] == "open"
        assert d["zone_id"] is None
        assert d["acknowledgements"] == [] and d["responders"] == []
        assert d["resolved_at"] is None and d["resolved_by"] is None

    def test_severity_and_category_coerced(self):
        alert = SosAlert.from_payload(
            {"severity": "critical", "category": "medical", "zone_id": " creel-house "}, T0,
        )
        assert alert.severity == SosSeverity.CRITICAL
        assert alert.category == SosCategory.MEDICAL
        assert alert.zone_id == "creel-house"
        alert = SosAlert.from_payload({"severity": "dire", "category": ["x"]}, T0)
        assert alert.severity == SosSeverity.HIGH
        assert alert.category == SosCategory.GENERAL

    def test_toggle_actor_adds_then_removes(self):
        alert = SosAlert.from_payload({}, T0)
        assert alert.toggle_actor(SosRole.ACK, "p1", "Nancy", _at(1)) is True
        assert [a.participant_id for a in alert.acknowledgements] == ["p1"]
        assert alert.responders == []
        assert alert.toggle_actor(SosRole.ACK, "p1", "Nancy", _at(2)) is False
        assert alert.acknowledgements == []

    def test_toggle_resolved_stamps_and_clears(self):
        alert = SosAlert.from_payload({}, T0)
        assert alert.toggle_resolved("p2", "Jonathan", _at(5)) is True
        d = alert.to_dict()
        assert d["status"] == "resolved"
        assert d["resolved_at"] == _at(5).isoformat()
        assert d["resolved_by"] == {"participant_id": "p2", "name": "Jonathan"}

        assert alert.toggle_resolved(None, None, _at(6)) is False
        assert alert.status == SosStatus.OPEN
        assert alert.resolved_at is None and alert.resolved_by is None


class TestZoneMarker:

    def test_defaults_and_clamping(self):
        marker = ZoneMarker.from_payload({"location": {"lat": 1, "lng": 2}, "radius_m": 1e9}, T0)
        assert marker.kind == MarkerKind.RALLY
        assert marker.radius_m == 5000.0
        tiny = ZoneMarker.from_payload(
            {"location": {"lat": 1, "lng": 2}, "radius_m": 1, "kind": "blocked"}, T0,
        )
        assert tiny.radius_m == 25.0
        assert tiny.kind == MarkerKind.BLOCKED
        d = ZoneMarker.from_payload({"location": {"lat": 1, "lng": 2}, "radius_m": "nan"}, T0).to_dict()
        assert d["radius_m"] == 250.0
        assert d["id"].startswith("MRK-")

    def test_requires_location(self):
        assert ZoneMarker.from_payload({"label": "rally"}, T0) is None
        assert ZoneMarker.from_payload({"location": {"lat": "x", "lng": 2}}, T0) is None


class TestThreatReport:

    def test_unknown_severity_falls_back_to_medium(self):
        threat = ThreatReport.from_payload({"label": "Demogorgon", "severity": "apocalyptic"}, T0)
        assert threat.severity == ThreatSeverity.MEDIUM

    def test_optional_fields_only_when_present(self):
        d = ThreatReport.from_payload({"severity": "high"}, T0).to_dict()
        assert d["label"] == "Threat"
        assert d["severity"] == "high"
        for key in ("confidence", "source", "amplitude", "baseline"):
            assert key not in d

    def test_numeric_fields_coerced(self):
        d = ThreatReport.from_payload(
            {"label": "Vines", "confidence": "0.8", "amplitude": float("nan"),
             "source": "a" * 100},
            T0,
        ).to_dict()
        assert d["confidence"] == 0.8
        assert "amplitude" not in d
        assert d["source"] == "a" * 40


class TestChatMessage:

    def test_kind_fallback_and_truncation(self):
        msg = ChatMessage.from_payload("castle-byers", {"kind": "gossip", "text": "t" * 700}, T0)
        assert msg.kind == MessageKind.INFO
        assert len(msg.text) == 600
        assert msg.to_dict()["zone_id"] == "castle-byers"


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: NetworkFeeds
# ═══════════════════════════════════════════════════════════════════════════

class TestFeedLists:

    def test_catalog_defaults(self, feeds):
        assert [z.zone_id for z in feeds.zones] == [z.zone_id for z in DEFAULT_ZONES]
        assert len(feeds.camps) == 3

    def test_camps_are_fresh_objects(self):
        assert default_camps()[0] is not default_camps()[0]

    def test_sos_newest_first(self, feeds):
        for n in range(3):
            feeds.record_sos({"message": f"sos {n}"}, _at(n))
        assert [a.message for a in feeds.list_sos()] == ["sos 2", "sos 1", "sos 0"]

    def test_threat_list_limit(self, feeds):
        for n in range(5):
            feeds.record_threat({"label": f"t{n}"}, _at(n))
        assert [t.label for t in feeds.list_threats(2)] == ["t4", "t3"]


class TestSosActions:

    def test_ack_and_responder_toggles(self, feeds):
        alert = feeds.record_sos({"message": "Help"}, T0)
        same, on = feeds.toggle_sos_actor(alert.alert_id, SosRole.RESPONDER, " p1 ", "Steve", _at(1))
        assert same is alert and on is True
        assert alert.responders[0].participant_id == "p1"
        _, on = feeds.toggle_sos_actor(alert.alert_id, SosRole.RESPONDER, "p1", now=_at(2))
        assert on is False
        assert alert.responders == []

    def test_actor_requires_participant(self, feeds):
        alert = feeds.record_sos({}, T0)
        with pytest.raises(InvalidArgumentError):
            feeds.toggle_sos_actor(alert.alert_id, SosRole.ACK, "   ")

    def test_unknown_and_blank_sos_id(self, feeds):
        with pytest.raises(NotFoundError) as exc:
            feeds.toggle_sos_resolved("SOS-NOPE")
        assert exc.value.status_code == 404
        with pytest.raises(InvalidArgumentError):
            feeds.toggle_sos_actor("", SosRole.ACK, "p1")

    def test_list_filtered_by_status(self, feeds):
        first = feeds.record_sos({"message": "a"}, T0)
        feeds.record_sos({"message": "b"}, _at(1))
        feeds.toggle_sos_resolved(first.alert_id, "p1", "Robin", _at(2))
        assert [a.message for a in feeds.list_sos(status=SosStatus.OPEN)] == ["b"]
        assert [a.message for a in feeds.list_sos(status=SosStatus.RESOLVED)] == ["a"]
        assert len(feeds.list_sos()) == 2


class TestZoneMarkers:

    def test_newest_first_and_rejects_missing_location(self, feeds):
        assert feeds.add_zone_marker({"kind": "safe"}, T0) is None
        for n in range(3):
            feeds.add_zone_marker({"label": f"m{n}", "location": {"lat": n, "lng": n}}, _at(n))
        assert [m.label for m in feeds.list_zone_markers()] == ["m2", "m1", "m0"]
        assert [m.label for m in feeds.list_zone_markers(1)] == ["m2"]


class TestRetention:

    def test_stores_keep_only_newest_records(self, feeds, monkeypatch):
        monkeypatch.setattr(settings, "FEED_RETAIN_LIMIT", 3)
        for n in range(5):
            feeds.record_sos({"message": f"s{n}"}, _at(n))
            feeds.record_threat({"label": f"t{n}"}, _at(n))
            feeds.add_zone_marker({"label": f"m{n}", "location": {"lat": 0, "lng": 0}}, _at(n))
        assert [a.message for a in feeds.sos_alerts] == ["s2", "s3", "s4"]
        assert [t.label for t in feeds.threats] == ["t2", "t3", "t4"]
        assert [m.label for m in feeds.zone_markers] == ["m2", "m3", "m4"]


class TestZoneChat:

    def test_zone_id_trimmed(self, feeds):
        msg = feeds.add_chat_message("  castle-byers ", {"text": "hi"}, T0)
        assert msg.zone_id == "castle-byers"
        assert feeds.zone_history("castle-byers") == [msg]

    @pytest.mark.parametrize("zone", [None, "", "   "])
    def test_blank_zone_ignored(self, feeds, zone):
        assert feeds.add_chat_message(zone, {"text": "hi"}, T0) is None
        assert feeds.zone_messages == {}

    def test_buffer_capped_per_zone(self, feeds):
        for n in range(305):
            feeds.add_chat_message("z", {"text": f"msg {n}"}, _at(n))
        messages = feeds.zone_messages["z"]
        assert len(messages) == 300
        assert messages[0].text == "msg 5"

    def test_history_replays_last_80(self, feeds):
        for n in range(100):
            feeds.add_chat_message("z", {"text": f"msg {n}"}, _at(n))
        history = feeds.zone_history("z")
        assert len(history) == 80
        assert history[0].text == "msg 20"
        assert history[-1].text == "msg 99"

    def test_history_of_unknown_zone_is_empty(self, feeds):
        assert feeds.zone_history("nowhere") == []

    def test_normalize_zone_id(self):
        assert normalize_zone_id(None) == ""
        assert normalize_zone_id(" a ") == "a"


class TestPresence:

    def test_snapshot_sorted_by_name(self, feeds):
        feeds.upsert_presence("z", "c1", "p1", "Steve", T0)
        feeds.upsert_presence("z", "c2", "p2", "Dustin", T0)
        snap = feeds.presence_snapshot("z")
        assert snap["count"] == 2
        assert [e["name"] for e in snap["participants"]] == ["Dustin", "Steve"]

    def test_upsert_replaces_same_connection(self, feeds):
        feeds.upsert_presence("z", "c1", "p1", "Steve", T0)
        feeds.upsert_presence("z", "c1", "p1", "Steve H.", T0)
        assert feeds.presence_snapshot("z")["count"] == 1

    def test_remove_last_entry_drops_zone(self, feeds):
        feeds.upsert_presence("z", "c1", None, None, T0)
        feeds.remove_presence("z", "c1")
        assert "z" not in feeds.zone_presence
        assert feeds.presence_snapshot("z") == {"zone_id": "z", "participants": [], "count": 0}

    def test_remove_unknown_is_noop(self, feeds):
        feeds.remove_presence("nowhere", "c1")


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: BroadcastHub
# ═══════════════════════════════════════════════════════════════════════════

def _drain(sub):
    frames = []
    while not sub.queue.empty():
        frames.append(sub.queue.get_nowait())
    return frames


class TestBroadcastHub:

    def test_envelope(self):
        assert envelope("ping", {"a": 1}) == {"event": "ping", "data": {"a": 1}}

    def test_publish_reaches_every_subscriber(self):
        async def _scenario():
            hub = BroadcastHub(queue_size=8)
            a, b = hub.subscribe(), hub.subscribe()
            delivered = hub.publish("sos_alert", {"id": "SOS-1"})
            return hub, delivered, _drain(a), _drain(b)

        hub, delivered, frames_a, frames_b = asyncio.run(_scenario())
        assert delivered == 2
        assert frames_a == frames_b == [{"event": "sos_alert", "data": {"id": "SOS-1"}}]
        assert hub.published == 1

    def test_zone_publish_only_reaches_members(self):
        async def _scenario():
            hub = BroadcastHub(queue_size=8)
            inside, outside = hub.subscribe(), hub.subscribe()
            hub.join_zone(inside, "castle-byers")
            delivered = hub.publish_zone("castle-byers", "chat_message", {"text": "hi"})
            hub.leave_zone(inside, "castle-byers")
            after_leave = hub.publish_zone("castle-byers", "chat_message", {"text": "bye"})
            return delivered, after_leave, _drain(inside), _drain(outside)

        delivered, after_leave, inside, outside = asyncio.run(_scenario())
        assert delivered == 1
        assert after_leave == 0
        assert len(inside) == 1
        assert outside == []

    def test_slow_subscriber_drops_without_blocking(self):
        async def _scenario():
            hub = BroadcastHub(queue_size=2)
            slow = hub.subscribe()
            results = [hub.publish("typing", {"n": n}) for n in range(4)]
            return slow, results

        slow, results = asyncio.run(_scenario())
        assert results == [1, 1, 0, 0]
        assert slow.dropped == 2

    def test_unsubscribe(self):
        async def _scenario():
            hub = BroadcastHub(queue_size=2)
            sub = hub.subscribe()
            hub.unsubscribe(sub)
            hub.unsubscribe(sub)
            return hub, hub.publish("ping", {})

        hub, delivered = asyncio.run(_scenario())
        assert hub.subscriber_count == 0
        assert delivered == 0

    def test_send_targets_one_subscriber(self):
        async def _scenario():
            hub = BroadcastHub(queue_size=2)
            a, b = hub.subscribe(), hub.subscribe()
            hub.send(a, "ack", {"ok": True})
            return _drain(a), _drain(b)

        frames_a, frames_b = asyncio.run(_scenario())
        assert frames_a == [{"event": "ack", "data": {"ok": True}}]
        assert frames_b == []
