"""
Pydantic request schemas for the survivor network API.

Optional fields are typed loosely on purpose: a malformed location,
note or severity is normalised by the engine instead of being rejected
with a 422. Only a blank participant id is an error, and that is raised
by the engine as a 400.

``userId`` is accepted as an alias of ``participant_id`` for older
clients.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field


def _participant_id_field() -> Any:
    return Field(
        None,
        validation_alias=AliasChoices("participant_id", "userId"),
        description="Self-asserted opaque participant id",
        examples=["survivor-042"],
    )


class CheckInRequest(BaseModel):
    """Request body for POST /api/v1/checkin."""
    participant_id: Any = _participant_id_field()
    name: Optional[Any] = Field(None, examples=["Joyce"])
    location: Optional[Any] = Field(
        None,
        description="{lat, lng}; ignored unless both values are finite",
        examples=[{"lat": 40.134, "lng": -85.668}],
    )
    note: Optional[Any] = Field(
        None, description="Free text, trimmed to 180 chars", examples=["Safe at the gym"],
    )


class SosRequest(BaseModel):
    """Request body for POST /api/v1/sos."""
    participant_id: Any = _participant_id_field()
    name: Optional[Any] = None
    message: Optional[Any] = Field(None, examples=["Trapped near the quarry"])
    location: Optional[Any] = None
    severity: Optional[Any] = Field(
        None, description="low | medium | high | critical", examples=["critical"],
    )
    category: Optional[Any] = Field(
        None, description="general | medical | evac | supplies | threat | lost", examples=["medical"],
    )
    zone_id: Optional[Any] = Field(None, examples=["castle-byers"])


class SosActionRequest(BaseModel):
    """Request body for the SOS acknowledge / respond / resolve toggles."""
    participant_id: Any = _participant_id_field()
    name: Optional[Any] = None


class ThreatRequest(BaseModel):
    """Request body for POST /api/v1/threats."""
    participant_id: Any = _participant_id_field()
    name: Optional[Any] = None
    label: Optional[Any] = Field(None, examples=["Demodog pack"])
    severity: Optional[Any] = Field(None, description="low | medium | high", examples=["high"])
    location: Optional[Any] = None
    confidence: Optional[Any] = Field(None, examples=[0.82])
    source: Optional[Any] = Field(None, examples=["audio"])
    amplitude: Optional[Any] = None
    baseline: Optional[Any] = None


class ChatMessageRequest(BaseModel):
    """Request body for POST /api/v1/zones/{zone_id}/messages."""
    participant_id: Any = _participant_id_field()
    name: Optional[Any] = None
    kind: Optional[Any] = Field(None, description="info | threat | resource | route")
    text: Optional[Any] = Field(None, examples=["Road to the lab is blocked"])


class ZoneMarkerRequest(BaseModel):
    """Request body for POST /api/v1/zone-markers."""
    participant_id: Any = _participant_id_field()
    name: Optional[Any] = None
    kind: Optional[Any] = Field(None, description="rally | safe | resource | blocked | danger")
    label: Optional[Any] = Field(None, examples=["Meet at the arcade"])
    radius_m: Optional[Any] = Field(None, description="25 to 5000 metres", examples=[250])
    location: Optional[Any] = Field(
        None,
        description="{lat, lng}; required, both values finite",
        examples=[{"lat": 40.134, "lng": -85.668}],
    )
