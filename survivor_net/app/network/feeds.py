"""
feeds.py — bounded in-memory stores for SOS alerts, threat reports,
zone markers, zone chat and zone presence.

    Store            Cap                 Listing
    ──────────       ─────────────────   ─────────────────────────────
    SOS alerts       FEED_RETAIN_LIMIT   newest first, FEED_LIST_LIMIT
    Threat reports   FEED_RETAIN_LIMIT   newest first, FEED_LIST_LIMIT
    Zone markers     FEED_RETAIN_LIMIT   newest first, FEED_LIST_LIMIT
    Zone messages    300                 oldest first, last 80 on join
    Presence         —                   per zone, sorted by name

Zone ids are trimmed; a blank zone id is ignored rather than rejected,
matching how the realtime layer treats malformed client frames. SOS
actions on an unknown alert raise NotFoundError.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from survivor_net.app.checkins.day_keys import utc_now
from survivor_net.app.core.config import settings
from survivor_net.app.core.errors import InvalidArgumentError, NotFoundError
from survivor_net.app.network.catalog import DEFAULT_ZONES, default_camps
from survivor_net.app.network.models import (
    Camp,
    ChatMessage,
    PresenceEntry,
    SosAlert,
    SosRole,
    SosStatus,
    ThreatReport,
    Zone,
    ZoneMarker,
    display_name,
    optional_id,
)

logger = logging.getLogger(__name__)


def normalize_zone_id(zone_id: Any) -> str:
    if zone_id is None:
        return ""
    return str(zone_id).strip()


class NetworkFeeds:
    """Process-local feed state shared by the HTTP and realtime layers."""

    def __init__(
        self,
        zones: Optional[List[Zone]] = None,
        camps: Optional[List[Camp]] = None,
    ):
        self.zones: List[Zone] = list(zones if zones is not None else DEFAULT_ZONES)
        self.camps: List[Camp] = camps if camps is not None else default_camps()
        self.sos_alerts: List[SosAlert] = []
        self.threats: List[ThreatReport] = []
        self.zone_markers: List[ZoneMarker] = []
        self.zone_messages: Dict[str, List[ChatMessage]] = {}
        self.zone_presence: Dict[str, Dict[str, PresenceEntry]] = {}

    # ── SOS / threats / markers ──

    @staticmethod
    def _retain(records: List[Any]) -> None:
        overflow = len(records) - settings.FEED_RETAIN_LIMIT
        if overflow > 0:
            del records[:overflow]

    def record_sos(self, payload: Dict[str, Any], now: Optional[datetime] = None) -> SosAlert:
        alert = SosAlert.from_payload(
            payload, now or utc_now(), settings.SOS_MESSAGE_MAX_LENGTH,
        )
        self.sos_alerts.append(alert)
        self._retain(self.sos_alerts)
        logger.warning(
            "SOS %s from %s (%s, %s)",
            alert.alert_id, alert.participant_id or alert.name,
            alert.category.value, alert.severity.value,
            extra={"participant_id": alert.participant_id, "event": "sos_alert"},
        )
        return alert

    def get_sos(self, sos_id: Any) -> SosAlert:
        key = "" if sos_id is None else str(sos_id).strip()
        if not key:
            raise InvalidArgumentError("sos_id is required", field="sos_id")
        for alert in reversed(self.sos_alerts):
            if alert.alert_id == key:
                return alert
        raise NotFoundError("SOS alert", key)

    def toggle_sos_actor(
        self,
        sos_id: Any,
        role: SosRole,
        participant_id: Any,
        name: Any = None,
        now: Optional[datetime] = None,
    ) -> Tuple[SosAlert, bool]:
        """
        Add or remove a participant as acknowledger / responder.

        Returns the alert and whether the participant is now on the list.

        Raises
        ------
        InvalidArgumentError
            Blank ``sos_id`` or ``participant_id``.
        NotFoundError
            No alert with that id.
        """
        pid = optional_id(participant_id)
        if pid is None:
            raise InvalidArgumentError("participant_id is required", field="participant_id")
        alert = self.get_sos(sos_id)
        on = alert.toggle_actor(role, pid, name, now or utc_now())
        logger.info(
            "SOS %s %s %s by %s", alert.alert_id, role.value, "on" if on else "off", pid,
            extra={"participant_id": pid, "event": "sos_update"},
        )
        return alert, on

    def toggle_sos_resolved(
        self,
        sos_id: Any,
        participant_id: Any = None,
        name: Any = None,
        now: Optional[datetime] = None,
    ) -> Tuple[SosAlert, bool]:
        """Resolve or reopen an alert. Returns the alert and whether it is now resolved."""
        alert = self.get_sos(sos_id)
        resolved = alert.toggle_resolved(optional_id(participant_id), name, now or utc_now())
        logger.info(
            "SOS %s %s", alert.alert_id, "resolved" if resolved else "reopened",
            extra={"participant_id": optional_id(participant_id), "event": "sos_update"},
        )
        return alert, resolved

    def record_threat(self, payload: Dict[str, Any], now: Optional[datetime] = None) -> ThreatReport:
        threat = ThreatReport.from_payload(
            payload,
            now or utc_now(),
            settings.THREAT_LABEL_MAX_LENGTH,
            settings.THREAT_SOURCE_MAX_LENGTH,
        )
        self.threats.append(threat)
        self._retain(self.threats)
        logger.info(
            "Threat %s reported: %s (%s)",
            threat.threat_id, threat.label, threat.severity.value,
            extra={"participant_id": threat.participant_id, "event": "threat_report"},
        )
        return threat

    def add_zone_marker(
        self, payload: Dict[str, Any], now: Optional[datetime] = None,
    ) -> Optional[ZoneMarker]:
        """None when the payload carries no finite location."""
        marker = ZoneMarker.from_payload(
            payload, now or utc_now(), settings.MARKER_LABEL_MAX_LENGTH,
        )
        if marker is None:
            return None
        self.zone_markers.append(marker)
        self._retain(self.zone_markers)
        logger.info(
            "Zone marker %s (%s) placed", marker.marker_id, marker.kind.value,
            extra={"participant_id": marker.participant_id, "event": "zone_marker_add"},
        )
        return marker

    def list_sos(
        self, limit: Optional[int] = None, status: Optional[SosStatus] = None,
    ) -> List[SosAlert]:
        limit = limit or settings.FEED_LIST_LIMIT
        alerts = [a for a in reversed(self.sos_alerts) if status is None or a.status == status]
        return alerts[:limit]

    def list_threats(self, limit: Optional[int] = None) -> List[ThreatReport]:
        limit = limit or settings.FEED_LIST_LIMIT
        return list(reversed(self.threats[-limit:]))

    def list_zone_markers(self, limit: Optional[int] = None) -> List[ZoneMarker]:
        limit = limit or settings.FEED_LIST_LIMIT
        return list(reversed(self.zone_markers[-limit:]))

    # ── Zone chat ──

    def add_chat_message(
        self,
        zone_id: Any,
        payload: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Optional[ChatMessage]:
        zid = normalize_zone_id(zone_id)
        if not zid:
            return None
        msg = ChatMessage.from_payload(
            zid, payload, now or utc_now(), settings.CHAT_TEXT_MAX_LENGTH,
        )
        messages = self.zone_messages.setdefault(zid, [])
        messages.append(msg)
        if len(messages) > settings.ZONE_MESSAGE_LIMIT:
            del messages[: len(messages) - settings.ZONE_MESSAGE_LIMIT]
        return msg

    def zone_history(self, zone_id: Any, limit: Optional[int] = None) -> List[ChatMessage]:
        limit = limit or settings.ZONE_HISTORY_REPLAY
        return self.zone_messages.get(normalize_zone_id(zone_id), [])[-limit:]

    # ── Presence ──

    def upsert_presence(
        self,
        zone_id: Any,
        connection_id: str,
        participant_id: Any = None,
        name: Any = None,
        now: Optional[datetime] = None,
    ) -> None:
        zid = normalize_zone_id(zone_id)
        if not zid:
            return
        self.zone_presence.setdefault(zid, {})[connection_id] = PresenceEntry(
            connection_id=connection_id,
            participant_id=optional_id(participant_id),
            name=display_name(name),
            joined_at=now or utc_now(),
        )

    def remove_presence(self, zone_id: Any, connection_id: str) -> None:
        zid = normalize_zone_id(zone_id)
        zone_map = self.zone_presence.get(zid)
        if zone_map is None:
            return
        zone_map.pop(connection_id, None)
        if not zone_map:
            del self.zone_presence[zid]

    def presence_snapshot(self, zone_id: Any) -> Dict[str, Any]:
        zid = normalize_zone_id(zone_id)
        entries = sorted(
            self.zone_presence.get(zid, {}).values(),
            key=lambda e: e.name,
        )
        return {
            "zone_id": zid,
            "participants": [e.to_dict() for e in entries],
            "count": len(entries),
        }
