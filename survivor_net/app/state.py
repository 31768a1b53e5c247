"""
Process-wide network state: one registry, one hub, one set of feeds.

The registry is an explicit object owned here and handed to the
coordinator; route handlers reach it through ``get_network_state()``.
Tests call ``reset_network_state()`` for a clean slate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from survivor_net.app.checkins.coordinator import CheckInCoordinator
from survivor_net.app.checkins.mirror import DurableMirror, SqlAlchemyMirror
from survivor_net.app.checkins.registry import ParticipantRegistry
from survivor_net.app.checkins.sweeper import SweepScheduler
from survivor_net.app.core.config import Settings, settings
from survivor_net.app.network.broadcast import BroadcastHub
from survivor_net.app.network.feeds import NetworkFeeds


@dataclass
class NetworkState:
    registry: ParticipantRegistry
    hub: BroadcastHub
    feeds: NetworkFeeds
    mirror: DurableMirror
    coordinator: CheckInCoordinator
    sweeper: SweepScheduler


def build_network_state(
    config: Optional[Settings] = None,
    mirror: Optional[DurableMirror] = None,
) -> NetworkState:
    config = config or settings
    if mirror is None:
        if config.MIRROR_ENABLED:
            from survivor_net.app.core.database import get_session_factory
            mirror = SqlAlchemyMirror(get_session_factory())
        else:
            mirror = DurableMirror()

    registry = ParticipantRegistry(name_max_length=config.NAME_MAX_LENGTH)
    hub = BroadcastHub(config.SUBSCRIBER_QUEUE_SIZE)
    coordinator = CheckInCoordinator(
        registry,
        hub,
        mirror,
        history_limit=config.CHECKIN_HISTORY_LIMIT,
        note_max_length=config.NOTE_MAX_LENGTH,
    )
    return NetworkState(
        registry=registry,
        hub=hub,
        feeds=NetworkFeeds(),
        mirror=mirror,
        coordinator=coordinator,
        sweeper=SweepScheduler(coordinator, config.SWEEP_INTERVAL_SECONDS),
    )


_state: Optional[NetworkState] = None


def get_network_state() -> NetworkState:
    """Get or create the global network state."""
    global _state
    if _state is None:
        _state = build_network_state()
    return _state


def set_network_state(state: NetworkState) -> None:
    global _state
    _state = state


def reset_network_state() -> NetworkState:
    state = build_network_state(mirror=DurableMirror())
    set_network_state(state)
    return state
