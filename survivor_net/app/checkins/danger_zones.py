"""
danger_zones.py — infer missing participants and their danger zones.

A sweep visits every participant in the registry. Anyone whose last
check-in day key has gone stale (older than yesterday, or in the future)
and who is not already missing becomes ``missing``:

    missing_since = last_check_in_at, or now if there is none
    danger_zone   = fresh record at last_known_location, only when one exists

Sweeping an already-missing participant changes nothing, so the zone id
and ``missing_since`` stay stable across repeated sweeps. The next
check-in clears both (state_machine.py).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from survivor_net.app.checkins.day_keys import is_stale, utc_now
from survivor_net.app.checkins.models import (
    STREAK_BROKEN,
    DangerZone,
    Participant,
    ParticipantStatus,
)
from survivor_net.app.checkins.registry import ParticipantRegistry

logger = logging.getLogger(__name__)


def mark_missing(
    registry: ParticipantRegistry,
    participant: Participant,
    now: datetime,
    reason: str = STREAK_BROKEN,
) -> bool:
    """Move ``participant`` into ``missing``. Returns False if already missing."""
    if participant.is_missing:
        return False

    last_seen = participant.last_check_in_at or now
    participant.status = ParticipantStatus.MISSING
    participant.missing_since = last_seen

    if participant.last_known_location is not None:
        participant.danger_zone = DangerZone(
            zone_id=registry.make_id(),
            reason=reason,
            participant_id=participant.participant_id,
            name=participant.name,
            location=participant.last_known_location,
            last_seen_at=last_seen,
        )
    else:
        participant.danger_zone = None

    logger.warning(
        "Participant %s missing since %s (last day key %s, location %s)",
        participant.participant_id,
        last_seen.isoformat(),
        participant.last_check_in_day_key,
        "known" if participant.danger_zone else "unknown",
        extra={"participant_id": participant.participant_id},
    )
    return True


def sweep(registry: ParticipantRegistry, now: Optional[datetime] = None) -> List[Participant]:
    """
    Apply the stale-streak → missing transition across the registry.

    Returns
    -------
    list of Participant
        Participants that became missing during this sweep.
    """
    now = now or utc_now()
    newly_missing: List[Participant] = []

    for participant in registry:
        if participant.is_missing:
            continue
        if is_stale(participant.last_check_in_day_key, now):
            if mark_missing(registry, participant, now):
                newly_missing.append(participant)

    if newly_missing:
        logger.info(
            "Sweep marked %d participant(s) missing",
            len(newly_missing),
            extra={"missing_count": len(newly_missing)},
        )
    return newly_missing


def list_danger_zones(
    registry: ParticipantRegistry,
    now: Optional[datetime] = None,
) -> List[DangerZone]:
    """Sweep, then return every standing danger zone in registry order."""
    sweep(registry, now)
    return [
        p.danger_zone
        for p in registry
        if p.is_missing and p.danger_zone is not None
    ]
