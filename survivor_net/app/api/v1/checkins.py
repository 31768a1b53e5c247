"""
FastAPI routes: daily safety check-ins and danger zones.

Provides endpoints to:
    GET  /api/v1/participants/{id}   — read-or-create a participant
    POST /api/v1/checkin             — record today's check-in
    GET  /api/v1/danger-zones        — current danger zones (sweeps first)
    POST /api/v1/sweep               — run a sweep now
    GET  /api/v1/checkins/health     — engine health
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from survivor_net.app.api.schemas import CheckInRequest
from survivor_net.app.state import NetworkState, get_network_state

router = APIRouter(prefix="/api/v1", tags=["safety-checkins"])


@router.get(
    "/participants/{participant_id}",
    summary="Get a participant",
    description="Returns the participant, creating an empty record on first lookup.",
)
async def get_participant(
    participant_id: str,
    state: NetworkState = Depends(get_network_state),
):
    participant = await state.coordinator.lookup(participant_id)
    return {"participant": participant.to_dict()}


@router.post(
    "/checkin",
    summary="Record a safety check-in",
    description=(
        "Updates the participant's streak, clears any missing / danger-zone "
        "state and broadcasts the change to realtime subscribers."
    ),
)
async def post_check_in(
    request: CheckInRequest,
    state: NetworkState = Depends(get_network_state),
):
    participant = await state.coordinator.record_check_in(
        request.participant_id,
        name=request.name,
        location=request.location,
        note=request.note,
    )
    return {"participant": participant.to_dict()}


@router.get(
    "/danger-zones",
    summary="List danger zones",
    description="Sweeps for broken streaks, then lists every standing danger zone.",
)
async def get_danger_zones(state: NetworkState = Depends(get_network_state)):
    zones = await state.coordinator.danger_zones()
    return {"danger_zones": [z.to_dict() for z in zones]}


@router.post(
    "/sweep",
    summary="Run a missing-person sweep",
)
async def post_sweep(state: NetworkState = Depends(get_network_state)):
    newly_missing, zones = await state.coordinator.run_sweep()
    return {
        "newly_missing": [p.to_dict() for p in newly_missing],
        "danger_zones": [z.to_dict() for z in zones],
    }


@router.get("/checkins/health", summary="Check-in engine health")
async def health(state: NetworkState = Depends(get_network_state)):
    return {
        "status": "healthy",
        "service": "safety-checkins",
        "participants": len(state.registry),
        "missing": len(state.registry.missing()),
        "sweeper": state.sweeper.to_dict(),
    }
