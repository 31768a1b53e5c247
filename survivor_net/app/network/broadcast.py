"""
broadcast.py — in-process fan-out of realtime events.

Each websocket connection owns a Subscription with a bounded asyncio
queue. Publishing is synchronous and never blocks the caller: when a
subscriber's queue is full the event is dropped for that subscriber
only. Delivery guarantees (retry, replay after reconnect) are out of
scope; clients re-fetch state over HTTP when they reconnect.

Event envelope (one JSON frame per event):

    {"event": "danger_zones_update", "data": {"danger_zones": [...]}}

    Event                 Scope    Emitted by
    ───────────────────   ──────   ───────────────────────────────────
    checkin_update        global   coordinator, after a check-in
    danger_zones_update   global   coordinator, after check-in / sweep
    sos_alert             global   HTTP + realtime SOS submissions
    threat_report         global   HTTP + realtime threat submissions
    chat_message          zone     realtime chat
    zone_presence         zone     join / leave / disconnect
    typing                zone     realtime typing indicator
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from survivor_net.app.core.config import settings

logger = logging.getLogger(__name__)


def envelope(event: str, data: Any) -> Dict[str, Any]:
    return {"event": event, "data": data}


@dataclass
class Subscription:
    subscriber_id: str
    queue: "asyncio.Queue[Dict[str, Any]]"
    zones: Set[str] = field(default_factory=set)
    dropped: int = 0


class BroadcastHub:
    """Registry of live subscribers plus global / zone-scoped publishing."""

    def __init__(self, queue_size: Optional[int] = None):
        self.queue_size = queue_size or settings.SUBSCRIBER_QUEUE_SIZE
        self._subscribers: Dict[str, Subscription] = {}
        self.published = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        sub = Subscription(
            subscriber_id=uuid.uuid4().hex[:12],
            queue=asyncio.Queue(maxsize=self.queue_size),
        )
        self._subscribers[sub.subscriber_id] = sub
        logger.debug(
            "Subscriber %s connected", sub.subscriber_id,
            extra={"subscriber_count": self.subscriber_count},
        )
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        self._subscribers.pop(sub.subscriber_id, None)
        logger.debug(
            "Subscriber %s disconnected", sub.subscriber_id,
            extra={"subscriber_count": self.subscriber_count},
        )

    def join_zone(self, sub: Subscription, zone_id: str) -> None:
        sub.zones.add(zone_id)

    def leave_zone(self, sub: Subscription, zone_id: str) -> None:
        sub.zones.discard(zone_id)

    def _offer(self, sub: Subscription, frame: Dict[str, Any]) -> bool:
        try:
            sub.queue.put_nowait(frame)
            return True
        except asyncio.QueueFull:
            sub.dropped += 1
            logger.warning(
                "Dropping %s for slow subscriber %s (%d dropped)",
                frame["event"], sub.subscriber_id, sub.dropped,
                extra={"event": frame["event"]},
            )
            return False

    def send(self, sub: Subscription, event: str, data: Any) -> bool:
        """Queue an event for a single subscriber (acks, history replay)."""
        return self._offer(sub, envelope(event, data))

    def publish(self, event: str, data: Any) -> int:
        """Queue an event for every subscriber. Returns the delivered count."""
        frame = envelope(event, data)
        self.published += 1
        return sum(self._offer(sub, frame) for sub in list(self._subscribers.values()))

    def publish_zone(self, zone_id: str, event: str, data: Any) -> int:
        """Queue an event for subscribers joined to ``zone_id``."""
        frame = envelope(event, data)
        self.published += 1
        return sum(
            self._offer(sub, frame)
            for sub in list(self._subscribers.values())
            if zone_id in sub.zones
        )
