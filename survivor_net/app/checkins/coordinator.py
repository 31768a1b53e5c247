"""
coordinator.py — runs the check-in engine and notifies its collaborators.

The engine functions (state_machine, danger_zones) are synchronous,
perform no I/O and never fail on sanitised input. This module wraps them
for the request and realtime layers:

    1. Apply the core transition under a single lock
    2. Snapshot what changed (participant, newly missing, zone list)
    3. Publish to the broadcast hub
    4. Write to the durable mirror

Steps 3 and 4 are best-effort. Once step 1 returns, the transition is
committed; a failing hub or mirror is logged and never rolls it back or
reaches the caller. Only InvalidArgumentError from step 1 propagates.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from survivor_net.app.checkins.danger_zones import list_danger_zones, sweep
from survivor_net.app.checkins.day_keys import utc_now
from survivor_net.app.checkins.mirror import DurableMirror
from survivor_net.app.checkins.models import (
    HISTORY_LIMIT,
    NOTE_MAX_LENGTH,
    DangerZone,
    Participant,
    normalize_participant_id,
)
from survivor_net.app.checkins.registry import ParticipantRegistry
from survivor_net.app.checkins.state_machine import check_in
from survivor_net.app.network.broadcast import BroadcastHub

logger = logging.getLogger(__name__)


class CheckInCoordinator:
    """
    Entry point for every check-in, lookup and sweep.

    Parameters
    ----------
    registry : ParticipantRegistry
    hub : BroadcastHub, optional
        Receives ``checkin_update`` and ``danger_zones_update`` events.
    mirror : DurableMirror, optional
        Durable copy of participants, check-ins and danger zones.
    """

    def __init__(
        self,
        registry: ParticipantRegistry,
        hub: Optional[BroadcastHub] = None,
        mirror: Optional[DurableMirror] = None,
        *,
        history_limit: int = HISTORY_LIMIT,
        note_max_length: int = NOTE_MAX_LENGTH,
    ):
        self.registry = registry
        self.hub = hub
        self.mirror = mirror or DurableMirror()
        self.history_limit = history_limit
        self.note_max_length = note_max_length
        # Serialises every read-modify-write on the registry.
        self._lock = threading.Lock()
        self.collaborator_failures = 0

    # ── Best-effort collaborators ──

    def _publish(self, event: str, data: Dict[str, Any]) -> None:
        if self.hub is None:
            return
        try:
            self.hub.publish(event, data)
        except Exception as e:
            self.collaborator_failures += 1
            logger.warning("Broadcast of %s failed: %s", event, e, extra={"event": event})

    async def _mirror(self, operation: str, *args: Any) -> None:
        try:
            await getattr(self.mirror, operation)(*args)
        except Exception as e:
            self.collaborator_failures += 1
            logger.warning("Mirror %s failed: %s", operation, e)

    async def _mirror_missing(self, newly_missing: List[Participant]) -> None:
        for participant in newly_missing:
            await self._mirror("save_participant", participant)
            if participant.danger_zone is not None:
                await self._mirror("save_danger_zone", participant.danger_zone)

    def _sweep_locked(self, now: datetime) -> Tuple[List[Participant], List[DangerZone]]:
        newly_missing = sweep(self.registry, now)
        zones = list_danger_zones(self.registry, now)
        return newly_missing, zones

    # ── Operations ──

    async def lookup(self, participant_id: Any) -> Participant:
        """Read-or-create a participant without checking them in."""
        with self._lock:
            existed = normalize_participant_id(participant_id) in self.registry
            participant = self.registry.get_or_create(participant_id)
        if not existed:
            await self._mirror("save_participant", participant)
        return participant

    async def record_check_in(
        self,
        participant_id: Any,
        name: Any = None,
        location: Any = None,
        note: Any = None,
        now: Optional[datetime] = None,
    ) -> Participant:
        """
        Apply a check-in, then broadcast and mirror the result.

        Raises
        ------
        InvalidArgumentError
            When ``participant_id`` is blank.
        """
        now = now or utc_now()
        with self._lock:
            participant = check_in(
                self.registry, participant_id, name, location, note, now,
                history_limit=self.history_limit,
                note_max_length=self.note_max_length,
            )
            entry = participant.history_entry(participant.last_check_in_day_key)
            snapshot = participant.to_dict()
            newly_missing, zones = self._sweep_locked(now)
            zone_dicts = [z.to_dict() for z in zones]

        self._publish("checkin_update", {"participant": snapshot})
        await self._mirror("save_participant", participant)
        if entry is not None:
            await self._mirror("save_check_in", participant, entry)
        await self._mirror_missing(newly_missing)
        self._publish("danger_zones_update", {"danger_zones": zone_dicts})
        return participant

    async def run_sweep(
        self, now: Optional[datetime] = None,
    ) -> Tuple[List[Participant], List[DangerZone]]:
        """Sweep the registry, mirror new missing states, broadcast the zone list."""
        now = now or utc_now()
        start = time.perf_counter()
        with self._lock:
            newly_missing, zones = self._sweep_locked(now)
            zone_dicts = [z.to_dict() for z in zones]

        await self._mirror_missing(newly_missing)
        self._publish("danger_zones_update", {"danger_zones": zone_dicts})

        logger.debug(
            "Sweep done: %d newly missing, %d danger zone(s) (%.1fms)",
            len(newly_missing), len(zones), (time.perf_counter() - start) * 1000,
            extra={"missing_count": len(newly_missing)},
        )
        return newly_missing, zones

    async def danger_zones(self, now: Optional[datetime] = None) -> List[DangerZone]:
        """Fresh danger-zone list (sweeps first)."""
        now = now or utc_now()
        with self._lock:
            newly_missing, zones = self._sweep_locked(now)
        await self._mirror_missing(newly_missing)
        return zones

    async def hydrate(self) -> int:
        """Load mirrored participants into the registry. Returns the count loaded."""
        try:
            participants = await self.mirror.load_participants()
        except Exception as e:
            logger.error("Could not hydrate registry from mirror: %s", e)
            return 0
        with self._lock:
            for participant in participants:
                self.registry.restore(participant)
        return len(participants)
