"""
registry.py — owner of every Participant known to this process.

One Participant per id, created lazily on first check-in or lookup and
never deleted. Iteration follows creation order, which keeps sweeps and
danger-zone listings deterministic.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterator, List, Optional

from survivor_net.app.checkins.models import (
    DEFAULT_NAME,
    NAME_MAX_LENGTH,
    Participant,
    generate_zone_id,
    normalize_name,
    normalize_participant_id,
)
from survivor_net.app.core.errors import InvalidArgumentError

logger = logging.getLogger(__name__)


class ParticipantRegistry:
    """
    In-memory keyed collection of participants.

    Parameters
    ----------
    id_factory : callable, optional
        Produces danger-zone ids. Tests inject a counter here.
    name_max_length : int
        Display names are truncated to this length.
    """

    def __init__(
        self,
        id_factory: Optional[Callable[[], str]] = None,
        name_max_length: int = NAME_MAX_LENGTH,
    ):
        self._participants: Dict[str, Participant] = {}
        self.make_id: Callable[[], str] = id_factory or generate_zone_id
        self.name_max_length = name_max_length

    def __len__(self) -> int:
        return len(self._participants)

    def __contains__(self, participant_id: object) -> bool:
        return participant_id in self._participants

    def __iter__(self) -> Iterator[Participant]:
        # Snapshot so a caller can create participants mid-scan.
        return iter(list(self._participants.values()))

    def get(self, participant_id: Any) -> Optional[Participant]:
        return self._participants.get(normalize_participant_id(participant_id))

    def get_or_create(self, participant_id: Any, name: Any = None) -> Participant:
        """
        Return the participant for ``participant_id``, creating it if needed.

        A non-blank ``name`` renames an existing participant. Streak and
        status are never touched: this is a lookup, not a check-in.

        Raises
        ------
        InvalidArgumentError
            If the id is blank after trimming.
        """
        pid = normalize_participant_id(participant_id)
        if not pid:
            raise InvalidArgumentError("participant_id is required", field="participant_id")

        clean_name = normalize_name(name, self.name_max_length)
        participant = self._participants.get(pid)
        if participant is None:
            participant = Participant(participant_id=pid, name=clean_name or DEFAULT_NAME)
            self._participants[pid] = participant
            logger.info("Registered participant %s", pid, extra={"participant_id": pid})
        elif clean_name:
            participant.name = clean_name
        return participant

    def restore(self, participant: Participant) -> Participant:
        """Insert a participant loaded from the durable mirror, replacing any in memory."""
        self._participants[participant.participant_id] = participant
        return participant

    def missing(self) -> List[Participant]:
        return [p for p in self._participants.values() if p.is_missing]

    def clear(self) -> None:
        self._participants.clear()
