"""
models.py — Shared data structures for the safety check-in engine.

Defines:
    • ParticipantStatus — unknown / ok / missing
    • Location          — finite lat/lng pair
    • CheckInEntry      — one day's confirmation in a participant's history
    • DangerZone        — derived record for a missing participant
    • Participant       — per-survivor streak + status state

Plus the defensive coercion helpers used by every entry point:
malformed optional input is normalised or dropped, never an error.

═══════════════════════════════════════════════════════════════════════════
PARTICIPANT STATUS MACHINE
═══════════════════════════════════════════════════════════════════════════

    ┌─────────┐  check-in   ┌──────┐  sweep: day key stale  ┌─────────┐
    │ unknown │ ──────────► │  ok  │ ─────────────────────► │ missing │
    └─────────┘             └──────┘ ◄───────────────────── └─────────┘
                              ▲  │           check-in
                              └──┘ check-in

``unknown → missing`` is unreachable: a participant with no check-in has
no day key, and an absent day key is never stale.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

DEFAULT_NAME = "Unknown Survivor"
NAME_MAX_LENGTH = 60
NOTE_MAX_LENGTH = 180
HISTORY_LIMIT = 21
STREAK_BROKEN = "streak-broken"


class ParticipantStatus(str, Enum):
    """Safety state of a participant."""
    UNKNOWN = "unknown"   # never checked in
    OK      = "ok"        # checked in today or yesterday
    MISSING = "missing"   # streak went stale, detected by a sweep


# ═══════════════════════════════════════════════════════════════════════════
# Coercion Helpers
# ═══════════════════════════════════════════════════════════════════════════

def generate_zone_id() -> str:
    return f"DZ-{uuid.uuid4().hex[:12].upper()}"


def _isoformat(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts else None


def normalize_participant_id(value: Any) -> str:
    """Trimmed string form of an id; empty string when unusable."""
    if value is None:
        return ""
    return str(value).strip()


def normalize_name(value: Any, max_length: int = NAME_MAX_LENGTH) -> Optional[str]:
    """Trimmed display name truncated to ``max_length``; None when blank."""
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    return s[:max_length]


def normalize_note(value: Any, max_length: int = NOTE_MAX_LENGTH) -> Optional[str]:
    """Trim, empty → None, truncate to ``max_length``."""
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    return s[:max_length]


def finite_or_none(value: Any) -> Optional[float]:
    if value is None or isinstance(value, str) and not value.strip():
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


@dataclass(frozen=True)
class Location:
    """A finite latitude/longitude pair."""
    lat: float
    lng: float

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}

    @classmethod
    def coerce(cls, value: Any) -> Optional["Location"]:
        """
        Build a Location from a dict, an object with ``lat``/``lng``
        attributes, or a Location. Returns None for anything that does
        not yield two finite numbers.
        """
        if value is None:
            return None
        if isinstance(value, Location):
            return value
        if isinstance(value, dict):
            raw_lat, raw_lng = value.get("lat"), value.get("lng")
        else:
            raw_lat = getattr(value, "lat", None)
            raw_lng = getattr(value, "lng", None)
        lat, lng = finite_or_none(raw_lat), finite_or_none(raw_lng)
        if lat is None or lng is None:
            return None
        return cls(lat=lat, lng=lng)


# ═══════════════════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class CheckInEntry:
    """
    One day's check-in.

    ``location`` is the location supplied with that check-in, which can
    be None even when the participant has a last known location.
    """
    day_key: str
    at: datetime
    location: Optional[Location] = None
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "day_key": self.day_key,
            "at": self.at.isoformat(),
            "location": self.location.to_dict() if self.location else None,
            "note": self.note,
        }


@dataclass
class DangerZone:
    """
    Last known whereabouts of a participant whose streak broke.

    Regenerated with a fresh id on every transition into ``missing``;
    never patched in place.
    """
    participant_id: str
    name: str
    location: Optional[Location]
    last_seen_at: datetime
    reason: str = STREAK_BROKEN
    zone_id: str = field(default_factory=generate_zone_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.zone_id,
            "type": "danger-zone",
            "reason": self.reason,
            "participant_id": self.participant_id,
            "name": self.name,
            "location": self.location.to_dict() if self.location else None,
            "last_seen_at": self.last_seen_at.isoformat(),
        }


@dataclass
class Participant:
    """
    A survivor tracked by the check-in engine.

    Attributes
    ----------
    participant_id : str
        Caller-supplied opaque id, trimmed, immutable once created.
    name : str
        Display name (≤ 60 chars), refreshed on repeat contact.
    streak : int
        Consecutive UTC days with a check-in.
    last_check_in_at, last_check_in_day_key
        Timestamp and day key of the most recent check-in.
    last_known_location : Location | None
        Most recent valid location supplied with a check-in.
    check_in_history : list of CheckInEntry
        At most 21 entries, one per day key, in insertion order.
    status : ParticipantStatus
    missing_since : datetime | None
        Set when a sweep marks the participant missing.
    danger_zone : DangerZone | None
        Present only while missing with a known location.
    """
    participant_id: str
    name: str = DEFAULT_NAME
    streak: int = 0
    last_check_in_at: Optional[datetime] = None
    last_check_in_day_key: Optional[str] = None
    last_known_location: Optional[Location] = None
    check_in_history: List[CheckInEntry] = field(default_factory=list)
    status: ParticipantStatus = ParticipantStatus.UNKNOWN
    missing_since: Optional[datetime] = None
    danger_zone: Optional[DangerZone] = None

    @property
    def is_missing(self) -> bool:
        return self.status == ParticipantStatus.MISSING

    def history_entry(self, day: str) -> Optional[CheckInEntry]:
        for entry in self.check_in_history:
            if entry.day_key == day:
                return entry
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.participant_id,
            "name": self.name,
            "streak": self.streak,
            "last_check_in_at": _isoformat(self.last_check_in_at),
            "last_check_in_day_key": self.last_check_in_day_key,
            "last_known_location": (
                self.last_known_location.to_dict()
                if self.last_known_location else None
            ),
            "check_in_history": [e.to_dict() for e in self.check_in_history],
            "status": self.status.value,
            "missing_since": _isoformat(self.missing_since),
            "danger_zone": self.danger_zone.to_dict() if self.danger_zone else None,
        }
