"""
mirror.py — best-effort durable copy of the check-in state.

The in-memory registry is authoritative for a running process. The mirror
only receives writes after a state transition has been committed in
memory, and is read once at startup to rebuild the registry after a
restart.

Two implementations:
    DurableMirror     — base class; every operation is a no-op
    SqlAlchemyMirror  — users / checkins / danger_zones tables via
                        SQLAlchemy async sessions

Row ↔ participant conversion lives in plain functions so it can be
tested without a database.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from survivor_net.app.checkins.models import (
    HISTORY_LIMIT,
    STREAK_BROKEN,
    CheckInEntry,
    DangerZone,
    Location,
    Participant,
    ParticipantStatus,
)
from survivor_net.app.checkins.orm import CheckInRow, DangerZoneRow, UserRow
from survivor_net.app.core.database import close_db, init_db
from survivor_net.app.core.errors import MirrorError

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Row Conversion
# ═══════════════════════════════════════════════════════════════════════════

def _aware(ts: Optional[datetime]) -> Optional[datetime]:
    if ts is None:
        return None
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _lat_lng(location: Optional[Location]) -> Dict[str, Optional[float]]:
    if location is None:
        return {"lat": None, "lng": None}
    return {"lat": location.lat, "lng": location.lng}


def participant_to_row(participant: Participant) -> Dict[str, Any]:
    loc = _lat_lng(participant.last_known_location)
    return {
        "id": participant.participant_id,
        "name": participant.name,
        "streak": participant.streak,
        "last_check_in_at": participant.last_check_in_at,
        "last_check_in_day_key": participant.last_check_in_day_key,
        "last_lat": loc["lat"],
        "last_lng": loc["lng"],
        "status": participant.status.value,
        "missing_since": participant.missing_since,
    }


def check_in_to_row(participant_id: str, entry: CheckInEntry) -> Dict[str, Any]:
    return {
        "user_id": participant_id,
        "day_key": entry.day_key,
        "checked_in_at": entry.at,
        "note": entry.note,
        **_lat_lng(entry.location),
    }


def danger_zone_to_row(zone: DangerZone) -> Dict[str, Any]:
    return {
        "id": zone.zone_id,
        "user_id": zone.participant_id,
        "reason": zone.reason,
        "name": zone.name,
        "last_seen_at": zone.last_seen_at,
        **_lat_lng(zone.location),
    }


def row_to_participant(
    user: Dict[str, Any],
    check_ins: Optional[List[Dict[str, Any]]] = None,
    zone: Optional[Dict[str, Any]] = None,
) -> Participant:
    """
    Rebuild a Participant from mirrored rows.

    A ``missing`` row with a location but no danger-zone row is restored
    as ``ok`` so the next sweep regenerates the zone.
    """
    try:
        status = ParticipantStatus(user.get("status") or ParticipantStatus.UNKNOWN.value)
    except ValueError:
        status = ParticipantStatus.UNKNOWN

    location = Location.coerce({"lat": user.get("last_lat"), "lng": user.get("last_lng")})

    history = [
        CheckInEntry(
            day_key=row["day_key"],
            at=_aware(row["checked_in_at"]),
            location=Location.coerce({"lat": row.get("lat"), "lng": row.get("lng")}),
            note=row.get("note"),
        )
        for row in sorted(check_ins or [], key=lambda r: r["day_key"])
    ][-HISTORY_LIMIT:]

    participant = Participant(
        participant_id=user["id"],
        name=user.get("name") or "Unknown Survivor",
        streak=int(user.get("streak") or 0),
        last_check_in_at=_aware(user.get("last_check_in_at")),
        last_check_in_day_key=user.get("last_check_in_day_key"),
        last_known_location=location,
        check_in_history=history,
        status=status,
        missing_since=_aware(user.get("missing_since")),
    )

    if status == ParticipantStatus.MISSING and location is not None:
        zone_location = (
            Location.coerce({"lat": zone.get("lat"), "lng": zone.get("lng")})
            if zone else None
        )
        if zone_location is None:
            participant.status = ParticipantStatus.OK
            participant.missing_since = None
        else:
            participant.danger_zone = DangerZone(
                zone_id=zone["id"],
                reason=zone.get("reason") or STREAK_BROKEN,
                participant_id=participant.participant_id,
                name=zone.get("name") or participant.name,
                location=zone_location,
                last_seen_at=_aware(zone["last_seen_at"]),
            )
    return participant


# ═══════════════════════════════════════════════════════════════════════════
# Mirrors
# ═══════════════════════════════════════════════════════════════════════════

class DurableMirror:
    """No-op mirror used when persistence is disabled."""

    enabled = False
    last_error: Optional[str] = None

    async def prepare(self) -> None:
        return None

    async def save_participant(self, participant: Participant) -> None:
        return None

    async def save_check_in(self, participant: Participant, entry: CheckInEntry) -> None:
        return None

    async def save_danger_zone(self, zone: DangerZone) -> None:
        return None

    async def load_participants(self) -> List[Participant]:
        return []

    async def close(self) -> None:
        return None


def _columns(model: Any, row: Any) -> Dict[str, Any]:
    return {c.name: getattr(row, c.name) for c in model.__table__.columns}


class SqlAlchemyMirror(DurableMirror):
    """
    Upserts participant state into PostgreSQL (or any async SQLAlchemy URL).

    Every write uses its own short session; failures are re-raised as
    MirrorError for the coordinator to log.
    """

    enabled = True

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self.last_error = None

    async def _merge(self, operation: str, row: Any) -> None:
        try:
            async with self._session_factory() as session:
                await session.merge(row)
                await session.commit()
            self.last_error = None
        except (SQLAlchemyError, OSError) as e:
            self.last_error = str(e)
            raise MirrorError(operation, str(e)) from e

    async def prepare(self) -> None:
        try:
            await init_db()
        except (SQLAlchemyError, OSError) as e:
            self.last_error = str(e)
            raise MirrorError("prepare", str(e)) from e

    async def save_participant(self, participant: Participant) -> None:
        await self._merge("save_participant", UserRow(**participant_to_row(participant)))

    async def save_check_in(self, participant: Participant, entry: CheckInEntry) -> None:
        await self._merge(
            "save_check_in",
            CheckInRow(**check_in_to_row(participant.participant_id, entry)),
        )

    async def save_danger_zone(self, zone: DangerZone) -> None:
        await self._merge("save_danger_zone", DangerZoneRow(**danger_zone_to_row(zone)))

    async def load_participants(self) -> List[Participant]:
        try:
            async with self._session_factory() as session:
                users = (
                    await session.execute(select(UserRow).order_by(UserRow.id))
                ).scalars().all()
                check_ins = (
                    await session.execute(
                        select(CheckInRow).order_by(CheckInRow.user_id, CheckInRow.day_key)
                    )
                ).scalars().all()
                zones = (
                    await session.execute(
                        select(DangerZoneRow).order_by(DangerZoneRow.created_at)
                    )
                ).scalars().all()
        except (SQLAlchemyError, OSError) as e:
            self.last_error = str(e)
            raise MirrorError("load_participants", str(e)) from e

        history_by_user: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for row in check_ins:
            history_by_user[row.user_id].append(_columns(CheckInRow, row))

        # Latest episode wins
        zone_by_user: Dict[str, Dict[str, Any]] = {}
        for row in zones:
            zone_by_user[row.user_id] = _columns(DangerZoneRow, row)

        participants = [
            row_to_participant(
                _columns(UserRow, user),
                history_by_user.get(user.id),
                zone_by_user.get(user.id),
            )
            for user in users
        ]
        logger.info("Loaded %d participant(s) from durable mirror", len(participants))
        return participants

    async def close(self) -> None:
        await close_db()
