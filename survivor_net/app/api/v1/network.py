"""
FastAPI routes: map catalog, SOS alerts, threat reports and zone chat.

Provides endpoints to:
    GET  /api/v1/zones                      — chat zones
    GET  /api/v1/camps                      — relief camps
    GET  /api/v1/sos                        — newest SOS alerts
    POST /api/v1/sos                        — raise an SOS
    POST /api/v1/sos/{id}/ack               — toggle an acknowledgement
    POST /api/v1/sos/{id}/respond           — toggle a responder
    POST /api/v1/sos/{id}/resolve           — resolve or reopen
    GET  /api/v1/threats                    — newest threat reports
    POST /api/v1/threats                    — report a threat
    GET  /api/v1/zones/{zone_id}/messages   — recent zone chat
    POST /api/v1/zones/{zone_id}/messages   — post to a zone
    GET  /api/v1/map                        — camps, danger zones, threats, markers
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from survivor_net.app.api.schemas import (
    ChatMessageRequest,
    SosActionRequest,
    SosRequest,
    ThreatRequest,
)
from survivor_net.app.core.errors import InvalidArgumentError
from survivor_net.app.network.models import SosRole, SosStatus
from survivor_net.app.state import NetworkState, get_network_state

router = APIRouter(prefix="/api/v1", tags=["survivor-network"])


@router.get("/zones", summary="List chat zones")
async def list_zones(state: NetworkState = Depends(get_network_state)):
    return {"zones": [z.to_dict() for z in state.feeds.zones]}


@router.get("/camps", summary="List relief camps")
async def list_camps(state: NetworkState = Depends(get_network_state)):
    return {"camps": [c.to_dict() for c in state.feeds.camps]}


@router.get("/sos", summary="List SOS alerts (newest first)")
async def list_sos(
    limit: Optional[int] = Query(None, ge=1, le=500),
    status: Optional[SosStatus] = Query(None, description="open | resolved"),
    state: NetworkState = Depends(get_network_state),
):
    return {"sos": [a.to_dict() for a in state.feeds.list_sos(limit, status)]}


@router.post("/sos", summary="Raise an SOS alert")
async def post_sos(
    request: SosRequest,
    state: NetworkState = Depends(get_network_state),
):
    alert = state.feeds.record_sos(request.model_dump())
    data = alert.to_dict()
    state.hub.publish("sos_alert", data)
    return {"sos": data}


def _toggle_actor(state: NetworkState, sos_id: str, role: SosRole, request: SosActionRequest):
    alert, on = state.feeds.toggle_sos_actor(sos_id, role, request.participant_id, request.name)
    data = alert.to_dict()
    state.hub.publish("sos_update", {"sos": data})
    return {"sos": data, "on": on}


@router.post("/sos/{sos_id}/ack", summary="Toggle an acknowledgement on an SOS alert")
async def ack_sos(
    sos_id: str,
    request: SosActionRequest,
    state: NetworkState = Depends(get_network_state),
):
    return _toggle_actor(state, sos_id, SosRole.ACK, request)


@router.post("/sos/{sos_id}/respond", summary="Toggle responding to an SOS alert")
async def respond_sos(
    sos_id: str,
    request: SosActionRequest,
    state: NetworkState = Depends(get_network_state),
):
    return _toggle_actor(state, sos_id, SosRole.RESPONDER, request)


@router.post("/sos/{sos_id}/resolve", summary="Resolve or reopen an SOS alert")
async def resolve_sos(
    sos_id: str,
    request: SosActionRequest,
    state: NetworkState = Depends(get_network_state),
):
    alert, resolved = state.feeds.toggle_sos_resolved(sos_id, request.participant_id, request.name)
    data = alert.to_dict()
    state.hub.publish("sos_update", {"sos": data})
    return {"sos": data, "resolved": resolved}


@router.get("/threats", summary="List threat reports (newest first)")
async def list_threats(
    limit: Optional[int] = Query(None, ge=1, le=500),
    state: NetworkState = Depends(get_network_state),
):
    return {"threats": [t.to_dict() for t in state.feeds.list_threats(limit)]}


@router.post("/threats", summary="Report a threat")
async def post_threat(
    request: ThreatRequest,
    state: NetworkState = Depends(get_network_state),
):
    threat = state.feeds.record_threat(request.model_dump())
    data = threat.to_dict()
    state.hub.publish("threat_report", data)
    return {"threat": data}


@router.get("/zones/{zone_id}/messages", summary="Recent zone chat")
async def list_zone_messages(
    zone_id: str,
    limit: Optional[int] = Query(None, ge=1, le=300),
    state: NetworkState = Depends(get_network_state),
):
    messages = state.feeds.zone_history(zone_id, limit)
    return {"zone_id": zone_id.strip(), "messages": [m.to_dict() for m in messages]}


@router.post("/zones/{zone_id}/messages", summary="Post a zone chat message")
async def post_zone_message(
    zone_id: str,
    request: ChatMessageRequest,
    state: NetworkState = Depends(get_network_state),
):
    msg = state.feeds.add_chat_message(zone_id, request.model_dump())
    if msg is None:
        raise InvalidArgumentError("zone_id is required", field="zone_id")
    data = msg.to_dict()
    state.hub.publish_zone(msg.zone_id, "chat_message", data)
    return {"message": data}


@router.get("/map", summary="Map overlay: camps, danger zones, threats, markers")
async def get_map(state: NetworkState = Depends(get_network_state)):
    zones = await state.coordinator.danger_zones()
    return {
        "camps": [c.to_dict() for c in state.feeds.camps],
        "danger_zones": [z.to_dict() for z in zones],
        "threats": [t.to_dict() for t in state.feeds.list_threats()],
        "zone_markers": [m.to_dict() for m in state.feeds.list_zone_markers()],
    }
