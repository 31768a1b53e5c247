"""
FastAPI websocket route: the realtime survivor channel.

    WS /api/v1/realtime

Every frame, in both directions, is ``{"event": <name>, "data": {...}}``.

Client → server:
    join_zone       {zone_id, participant_id?, name?}
    leave_zone      {zone_id}
    typing          {zone_id, participant_id?, name?, is_typing}
    chat_message    {zone_id, participant_id?, name?, kind?, text}
    sos_alert       {participant_id?, name?, message, severity?, category?,
                     zone_id?, location?}
    threat_report   {participant_id?, name?, label, severity?, ...}
    checkin         {participant_id, name?, location?, note?}
    sos_ack         {sos_id, participant_id, name?}   toggle acknowledgement
    sos_take        {sos_id, participant_id, name?}   toggle responder
    sos_resolve     {sos_id, participant_id?, name?}  resolve / reopen
    zone_marker_add {kind?, label?, radius_m?, location, participant_id?, name?}

Server → client:
    hello, zone_history, zone_presence, typing, chat_message, sos_alert,
    threat_report, sos_update, zone_marker_add, checkin_update,
    danger_zones_update, ack, error

All outbound frames go through the connection's hub subscription; a
single pump task drains it onto the socket, so replies and broadcasts
never interleave mid-frame.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from survivor_net.app.core.config import settings
from survivor_net.app.core.errors import SurvivorNetworkError
from survivor_net.app.core.logging_config import bind_connection
from survivor_net.app.network.broadcast import BroadcastHub, Subscription
from survivor_net.app.network.feeds import normalize_zone_id
from survivor_net.app.network.models import SosRole
from survivor_net.app.state import NetworkState, get_network_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["realtime"])


async def _pump(websocket: WebSocket, sub: Subscription) -> None:
    while True:
        frame = await sub.queue.get()
        await websocket.send_json(frame)


async def _stop_pump(pump: "asyncio.Task[None]", subscriber_id: str) -> None:
    pump.cancel()
    try:
        await pump
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.warning("Realtime pump for %s failed: %s", subscriber_id, e)


class RealtimeSession:
    """Per-connection handler for client events."""

    def __init__(self, state: NetworkState, sub: Subscription):
        self.state = state
        self.sub = sub
        self.zones: Set[str] = set()

    @property
    def hub(self) -> BroadcastHub:
        return self.state.hub

    def error(self, message: str, event: str = "") -> None:
        self.hub.send(self.sub, "error", {"message": message, "event": event})

    def _publish_presence(self, zone_id: str) -> None:
        self.hub.publish_zone(
            zone_id, "zone_presence", self.state.feeds.presence_snapshot(zone_id),
        )

    # ── Zones ──

    def join_zone(self, data: Dict[str, Any]) -> None:
        zone_id = normalize_zone_id(data.get("zone_id"))
        if not zone_id:
            self.error("zone_id is required", "join_zone")
            return
        self.zones.add(zone_id)
        self.hub.join_zone(self.sub, zone_id)
        logger.debug(
            "Connection %s joined %s", self.sub.subscriber_id, zone_id,
            extra={"zone_id": zone_id},
        )
        self.state.feeds.upsert_presence(
            zone_id, self.sub.subscriber_id, data.get("participant_id"), data.get("name"),
        )
        history = self.state.feeds.zone_history(zone_id)
        self.hub.send(self.sub, "zone_history", {
            "zone_id": zone_id,
            "messages": [m.to_dict() for m in history],
        })
        self._publish_presence(zone_id)

    def leave_zone(self, data: Dict[str, Any]) -> None:
        zone_id = normalize_zone_id(data.get("zone_id"))
        if not zone_id:
            return
        self.zones.discard(zone_id)
        self.hub.leave_zone(self.sub, zone_id)
        self.state.feeds.remove_presence(zone_id, self.sub.subscriber_id)
        self._publish_presence(zone_id)

    def typing(self, data: Dict[str, Any]) -> None:
        zone_id = normalize_zone_id(data.get("zone_id"))
        if not zone_id:
            return
        self.hub.publish_zone(zone_id, "typing", {
            "zone_id": zone_id,
            "participant_id": data.get("participant_id"),
            "name": data.get("name"),
            "is_typing": bool(data.get("is_typing")),
        })

    def chat_message(self, data: Dict[str, Any]) -> None:
        msg = self.state.feeds.add_chat_message(data.get("zone_id"), data)
        if msg is None:
            self.error("zone_id is required", "chat_message")
            return
        self.hub.publish_zone(msg.zone_id, "chat_message", msg.to_dict())

    # ── Alerts ──

    def sos_alert(self, data: Dict[str, Any]) -> None:
        alert = self.state.feeds.record_sos(data)
        self.hub.publish("sos_alert", alert.to_dict())

    def threat_report(self, data: Dict[str, Any]) -> None:
        threat = self.state.feeds.record_threat(data)
        self.hub.publish("threat_report", threat.to_dict())

    def _sos_action(self, data: Dict[str, Any], role: Optional[SosRole]) -> None:
        feeds = self.state.feeds
        try:
            if role is None:
                alert, _ = feeds.toggle_sos_resolved(
                    data.get("sos_id"), data.get("participant_id"), data.get("name"),
                )
            else:
                alert, _ = feeds.toggle_sos_actor(
                    data.get("sos_id"), role, data.get("participant_id"), data.get("name"),
                )
        except SurvivorNetworkError as e:
            self.hub.send(self.sub, "ack", {"ok": False, "error": e.message})
            return
        sos = alert.to_dict()
        self.hub.send(self.sub, "ack", {"ok": True, "sos": sos})
        self.hub.publish("sos_update", {"sos": sos})

    def sos_ack(self, data: Dict[str, Any]) -> None:
        self._sos_action(data, SosRole.ACK)

    def sos_take(self, data: Dict[str, Any]) -> None:
        self._sos_action(data, SosRole.RESPONDER)

    def sos_resolve(self, data: Dict[str, Any]) -> None:
        self._sos_action(data, None)

    def zone_marker_add(self, data: Dict[str, Any]) -> None:
        marker = self.state.feeds.add_zone_marker(data)
        if marker is None:
            self.hub.send(self.sub, "ack", {
                "ok": False, "error": "location with finite lat/lng is required",
            })
            return
        payload = marker.to_dict()
        self.hub.send(self.sub, "ack", {"ok": True, "zone_marker": payload})
        self.hub.publish("zone_marker_add", payload)

    async def checkin(self, data: Dict[str, Any]) -> None:
        try:
            participant = await self.state.coordinator.record_check_in(
                data.get("participant_id"),
                name=data.get("name"),
                location=data.get("location"),
                note=data.get("note"),
            )
        except SurvivorNetworkError as e:
            self.hub.send(self.sub, "ack", {"ok": False, "error": e.message})
            return
        self.hub.send(self.sub, "ack", {"ok": True, "participant": participant.to_dict()})

    # ── Dispatch ──

    async def handle(self, raw: str) -> None:
        try:
            frame = json.loads(raw)
        except ValueError:
            self.error("Frames must be JSON")
            return
        if not isinstance(frame, dict):
            self.error("Frames must be JSON objects")
            return

        event = frame.get("event")
        if not isinstance(event, str):
            event = ""
        data = frame.get("data")
        if not isinstance(data, dict):
            data = {}

        if event == "checkin":
            await self.checkin(data)
            return
        handler = {
            "join_zone": self.join_zone,
            "leave_zone": self.leave_zone,
            "typing": self.typing,
            "chat_message": self.chat_message,
            "sos_alert": self.sos_alert,
            "threat_report": self.threat_report,
            "sos_ack": self.sos_ack,
            "sos_take": self.sos_take,
            "sos_resolve": self.sos_resolve,
            "zone_marker_add": self.zone_marker_add,
        }.get(event)
        if handler is None:
            self.error(f"Unknown event: {event}", event)
            return
        handler(data)

    def close(self) -> None:
        for zone_id in list(self.zones):
            self.state.feeds.remove_presence(zone_id, self.sub.subscriber_id)
            self.hub.leave_zone(self.sub, zone_id)
            self._publish_presence(zone_id)
        self.zones.clear()
        self.hub.unsubscribe(self.sub)


@router.websocket("/realtime")
async def realtime(websocket: WebSocket):
    state = get_network_state()
    await websocket.accept()

    sub = state.hub.subscribe()
    bind_connection(sub.subscriber_id)
    session = RealtimeSession(state, sub)
    state.hub.send(sub, "hello", {
        "name": settings.APP_NAME,
        "connection_id": sub.subscriber_id,
        "zones": [z.to_dict() for z in state.feeds.zones],
        "camps": [c.to_dict() for c in state.feeds.camps],
    })
    pump = asyncio.create_task(_pump(websocket, sub))
    logger.info(
        "Realtime client %s connected", sub.subscriber_id,
        extra={"subscriber_count": state.hub.subscriber_count},
    )

    try:
        while True:
            raw = await websocket.receive_text()
            await session.handle(raw)
    except WebSocketDisconnect:
        pass
    finally:
        session.close()
        await _stop_pump(pump, sub.subscriber_id)
        logger.info(
            "Realtime client %s disconnected", sub.subscriber_id,
            extra={"subscriber_count": state.hub.subscriber_count},
        )
