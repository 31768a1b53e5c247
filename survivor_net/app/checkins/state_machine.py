"""
state_machine.py — apply a daily safety check-in to a participant.

═══════════════════════════════════════════════════════════════════════════
STREAK TRANSITION
═══════════════════════════════════════════════════════════════════════════

Decided from the participant's previous day key (before this call):

    previous day key      new streak
    ────────────────      ──────────────────────
    today                 unchanged (same-day repeat)
    yesterday             max(1, streak + 1)
    anything else / None  1

A check-in always leaves the participant ``ok`` with no missing state and
no danger zone, however long the participant was gone. Marking someone
missing is the sweep's job (see danger_zones.py), never the check-in's.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Optional

from survivor_net.app.checkins.day_keys import day_key, utc_now, yesterday_key
from survivor_net.app.checkins.models import (
    HISTORY_LIMIT,
    NOTE_MAX_LENGTH,
    CheckInEntry,
    Location,
    Participant,
    ParticipantStatus,
    normalize_note,
)
from survivor_net.app.checkins.registry import ParticipantRegistry

logger = logging.getLogger(__name__)


def upsert_history(
    history: List[CheckInEntry],
    entry: CheckInEntry,
    limit: int = HISTORY_LIMIT,
) -> None:
    """
    Insert ``entry``, replacing any entry with the same day key in place.

    The list is then cut back to its ``limit`` most recently inserted
    entries. Trimming is by insertion position, not by day-key order.
    """
    for idx, existing in enumerate(history):
        if existing.day_key == entry.day_key:
            history[idx] = entry
            break
    else:
        history.append(entry)

    if len(history) > limit:
        del history[: len(history) - limit]


def next_streak(participant: Participant, today: str, yesterday: str) -> int:
    prev_key = participant.last_check_in_day_key
    if prev_key == today:
        return participant.streak
    if prev_key == yesterday:
        return max(1, participant.streak + 1)
    return 1


def check_in(
    registry: ParticipantRegistry,
    participant_id: Any,
    name: Any = None,
    location: Any = None,
    note: Any = None,
    now: Optional[datetime] = None,
    *,
    history_limit: int = HISTORY_LIMIT,
    note_max_length: int = NOTE_MAX_LENGTH,
) -> Participant:
    """
    Record a check-in and return the updated participant.

    Parameters
    ----------
    registry : ParticipantRegistry
    participant_id : str
        Blank ids raise InvalidArgumentError.
    name : str, optional
        Refreshes the display name when non-blank.
    location : dict | Location, optional
        ``{"lat": .., "lng": ..}``; ignored unless both values are finite.
    note : str, optional
        Trimmed and truncated to 180 chars; blank notes are dropped.
    now : datetime, optional
        Evaluation time; defaults to the current UTC time.
    """
    now = now or utc_now()
    participant = registry.get_or_create(participant_id, name)

    today = day_key(now)
    yesterday = yesterday_key(now)

    new_location = Location.coerce(location)
    if new_location is not None:
        participant.last_known_location = new_location

    upsert_history(
        participant.check_in_history,
        CheckInEntry(
            day_key=today,
            at=now,
            location=new_location,
            note=normalize_note(note, note_max_length),
        ),
        history_limit,
    )

    was_missing = participant.is_missing
    participant.streak = next_streak(participant, today, yesterday)
    participant.last_check_in_at = now
    participant.last_check_in_day_key = today
    participant.status = ParticipantStatus.OK
    participant.missing_since = None
    participant.danger_zone = None

    logger.info(
        "Check-in %s day=%s streak=%d%s",
        participant.participant_id, today, participant.streak,
        " (was missing)" if was_missing else "",
        extra={
            "participant_id": participant.participant_id,
            "streak": participant.streak,
        },
    )
    return participant
