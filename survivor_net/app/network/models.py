"""
models.py — data structures for the survivor network feeds.

Defines:
    • Zone / Camp        — static map catalog entries
    • SosAlert           — global distress broadcast with an open / resolved
                           lifecycle and ack / responder lists
    • ThreatReport       — crowd-sourced hazard sighting
    • ChatMessage        — zone-scoped chat line
    • ZoneMarker         — user-placed map marker (rally point, blockage, ...)
    • PresenceEntry      — a connection currently joined to a zone

Every builder coerces its raw payload: strings are truncated, unknown
enum values fall back to a default, non-finite numbers are dropped.
Nothing here raises on malformed input.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar

from survivor_net.app.checkins.models import (
    DEFAULT_NAME,
    NAME_MAX_LENGTH,
    Location,
    finite_or_none,
    normalize_name,
    normalize_participant_id,
)


class ThreatSeverity(str, Enum):
    LOW    = "low"
    MEDIUM = "medium"
    HIGH   = "high"


class MessageKind(str, Enum):
    INFO     = "info"
    THREAT   = "threat"
    RESOURCE = "resource"
    ROUTE    = "route"


class CampStatus(str, Enum):
    SAFE     = "safe"
    WATCH    = "watch"
    CRITICAL = "critical"


class SosSeverity(str, Enum):
    LOW      = "low"
    MEDIUM   = "medium"
    HIGH     = "high"
    CRITICAL = "critical"


class SosCategory(str, Enum):
    GENERAL  = "general"
    MEDICAL  = "medical"
    EVAC     = "evac"
    SUPPLIES = "supplies"
    THREAT   = "threat"
    LOST     = "lost"


class SosStatus(str, Enum):
    OPEN     = "open"
    RESOLVED = "resolved"


class SosRole(str, Enum):
    ACK       = "ack"
    RESPONDER = "responder"


class MarkerKind(str, Enum):
    RALLY    = "rally"
    SAFE     = "safe"
    RESOURCE = "resource"
    BLOCKED  = "blocked"
    DANGER   = "danger"


E = TypeVar("E", bound=Enum)


def _choice(enum: Type[E], value: Any, default: E) -> E:
    try:
        return enum(value)
    except ValueError:
        return default


def _generate_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"


def _text(value: Any, max_length: int, default: str = "") -> str:
    if value is None:
        return default
    return str(value)[:max_length]


def optional_id(value: Any) -> Optional[str]:
    return normalize_participant_id(value) or None


def display_name(value: Any) -> str:
    return normalize_name(value, NAME_MAX_LENGTH) or DEFAULT_NAME


def _optional_location(value: Any) -> Optional[Dict[str, float]]:
    location = Location.coerce(value)
    return location.to_dict() if location else None


# ═══════════════════════════════════════════════════════════════════════════
# Catalog
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Zone:
    zone_id: str
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.zone_id, "name": self.name}


@dataclass
class Camp:
    """A relief camp with 0–100 resource levels."""
    camp_id: str
    name: str
    status: CampStatus
    location: Location
    resources: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.camp_id,
            "name": self.name,
            "status": self.status.value,
            "location": self.location.to_dict(),
            "resources": dict(self.resources),
        }


# ═══════════════════════════════════════════════════════════════════════════
# Feed Records
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class SosActor:
    """A participant who acknowledged, responded to or resolved an alert."""
    participant_id: Optional[str]
    name: str
    at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"participant_id": self.participant_id, "name": self.name, "at": self.at.isoformat()}


@dataclass
class SosAlert:
    participant_id: Optional[str]
    name: str
    message: str
    location: Optional[Dict[str, float]]
    created_at: datetime
    severity: SosSeverity = SosSeverity.HIGH
    category: SosCategory = SosCategory.GENERAL
    zone_id: Optional[str] = None
    status: SosStatus = SosStatus.OPEN
    acknowledgements: List[SosActor] = field(default_factory=list)
    responders: List[SosActor] = field(default_factory=list)
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[SosActor] = None
    alert_id: str = field(default_factory=lambda: _generate_id("SOS"))

    @classmethod
    def from_payload(
        cls, payload: Dict[str, Any], now: datetime, message_max_length: int = 400,
    ) -> "SosAlert":
        zone_id = str(payload.get("zone_id") or "").strip()
        return cls(
            participant_id=optional_id(payload.get("participant_id")),
            name=display_name(payload.get("name")),
            message=_text(payload.get("message"), message_max_length),
            location=_optional_location(payload.get("location")),
            created_at=now,
            severity=_choice(SosSeverity, payload.get("severity"), SosSeverity.HIGH),
            category=_choice(SosCategory, payload.get("category"), SosCategory.GENERAL),
            zone_id=zone_id or None,
        )

    def actors(self, role: SosRole) -> List[SosActor]:
        return self.acknowledgements if role == SosRole.ACK else self.responders

    def toggle_actor(self, role: SosRole, participant_id: str, name: Any, now: datetime) -> bool:
        """Add or remove a participant from the ack / responder list. Returns True when added."""
        actors = self.actors(role)
        for i, actor in enumerate(actors):
            if actor.participant_id == participant_id:
                del actors[i]
                return False
        actors.append(SosActor(participant_id, display_name(name), now))
        return True

    def toggle_resolved(self, participant_id: Optional[str], name: Any, now: datetime) -> bool:
        """Resolve an open alert or reopen a resolved one. Returns True when now resolved."""
        if self.status == SosStatus.RESOLVED:
            self.status = SosStatus.OPEN
            self.resolved_at = None
            self.resolved_by = None
            return False
        self.status = SosStatus.RESOLVED
        self.resolved_at = now
        self.resolved_by = SosActor(participant_id, display_name(name), now)
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.alert_id,
            "type": "sos",
            "participant_id": self.participant_id,
            "name": self.name,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "zone_id": self.zone_id,
            "status": self.status.value,
            "acknowledgements": [a.to_dict() for a in self.acknowledgements],
            "responders": [a.to_dict() for a in self.responders],
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolved_by": (
                {"participant_id": self.resolved_by.participant_id, "name": self.resolved_by.name}
                if self.resolved_by else None
            ),
            "location": self.location,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class ThreatReport:
    participant_id: Optional[str]
    name: str
    label: str
    severity: ThreatSeverity
    location: Optional[Dict[str, float]]
    created_at: datetime
    confidence: Optional[float] = None
    source: Optional[str] = None
    amplitude: Optional[float] = None
    baseline: Optional[float] = None
    threat_id: str = field(default_factory=lambda: _generate_id("THR"))

    @classmethod
    def from_payload(
        cls,
        payload: Dict[str, Any],
        now: datetime,
        label_max_length: int = 120,
        source_max_length: int = 40,
    ) -> "ThreatReport":
        source = payload.get("source")
        return cls(
            participant_id=optional_id(payload.get("participant_id")),
            name=display_name(payload.get("name")),
            label=_text(payload.get("label") or "Threat", label_max_length),
            severity=_choice(ThreatSeverity, payload.get("severity"), ThreatSeverity.MEDIUM),
            location=_optional_location(payload.get("location")),
            created_at=now,
            confidence=finite_or_none(payload.get("confidence")),
            source=_text(source, source_max_length) if source else None,
            amplitude=finite_or_none(payload.get("amplitude")),
            baseline=finite_or_none(payload.get("baseline")),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.threat_id,
            "type": "threat",
            "participant_id": self.participant_id,
            "name": self.name,
            "label": self.label,
            "severity": self.severity.value,
            "location": self.location,
            "created_at": self.created_at.isoformat(),
        }
        for key in ("confidence", "source", "amplitude", "baseline"):
            value = getattr(self, key)
            if value is not None:
                d[key] = value
        return d


@dataclass
class ChatMessage:
    zone_id: str
    participant_id: Optional[str]
    name: str
    kind: MessageKind
    text: str
    created_at: datetime
    message_id: str = field(default_factory=lambda: _generate_id("MSG"))

    @classmethod
    def from_payload(
        cls, zone_id: str, payload: Dict[str, Any], now: datetime, text_max_length: int = 600,
    ) -> "ChatMessage":
        return cls(
            zone_id=zone_id,
            participant_id=optional_id(payload.get("participant_id")),
            name=display_name(payload.get("name")),
            kind=_choice(MessageKind, payload.get("kind"), MessageKind.INFO),
            text=_text(payload.get("text"), text_max_length),
            created_at=now,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.message_id,
            "type": "chat",
            "zone_id": self.zone_id,
            "participant_id": self.participant_id,
            "name": self.name,
            "kind": self.kind.value,
            "text": self.text,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class ZoneMarker:
    """A map marker dropped by a survivor; radius in metres."""
    kind: MarkerKind
    label: str
    radius_m: float
    participant_id: Optional[str]
    name: str
    location: Dict[str, float]
    created_at: datetime
    marker_id: str = field(default_factory=lambda: _generate_id("MRK"))

    RADIUS_DEFAULT = 250.0
    RADIUS_MIN = 25.0
    RADIUS_MAX = 5000.0

    @classmethod
    def from_payload(
        cls, payload: Dict[str, Any], now: datetime, label_max_length: int = 80,
    ) -> Optional["ZoneMarker"]:
        """None when the payload has no usable location."""
        location = _optional_location(payload.get("location"))
        if location is None:
            return None
        radius = finite_or_none(payload.get("radius_m"))
        if radius is None:
            radius = cls.RADIUS_DEFAULT
        return cls(
            kind=_choice(MarkerKind, payload.get("kind"), MarkerKind.RALLY),
            label=_text(payload.get("label"), label_max_length).strip(),
            radius_m=min(max(radius, cls.RADIUS_MIN), cls.RADIUS_MAX),
            participant_id=optional_id(payload.get("participant_id")),
            name=display_name(payload.get("name")),
            location=location,
            created_at=now,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.marker_id,
            "type": "zone_marker",
            "kind": self.kind.value,
            "label": self.label,
            "radius_m": self.radius_m,
            "participant_id": self.participant_id,
            "name": self.name,
            "location": self.location,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class PresenceEntry:
    connection_id: str
    participant_id: Optional[str]
    name: str
    joined_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connection_id": self.connection_id,
            "participant_id": self.participant_id,
            "name": self.name,
            "joined_at": self.joined_at.isoformat(),
        }
