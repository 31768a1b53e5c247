"""
FastAPI routes: user-placed zone markers (rally points, blockages, ...).

    GET  /api/v1/zone-markers   — newest markers first
    POST /api/v1/zone-markers   — place a marker (location required)
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from survivor_net.app.api.schemas import ZoneMarkerRequest
from survivor_net.app.core.errors import InvalidArgumentError
from survivor_net.app.state import NetworkState, get_network_state

router = APIRouter(prefix="/api/v1", tags=["zone-markers"])


@router.get("/zone-markers", summary="List zone markers (newest first)")
async def list_zone_markers(
    limit: Optional[int] = Query(None, ge=1, le=500),
    state: NetworkState = Depends(get_network_state),
):
    return {"zone_markers": [m.to_dict() for m in state.feeds.list_zone_markers(limit)]}


@router.post("/zone-markers", summary="Place a zone marker")
async def post_zone_marker(
    request: ZoneMarkerRequest,
    state: NetworkState = Depends(get_network_state),
):
    marker = state.feeds.add_zone_marker(request.model_dump())
    if marker is None:
        raise InvalidArgumentError("location with finite lat/lng is required", field="location")
    data = marker.to_dict()
    state.hub.publish("zone_marker_add", data)
    return {"zone_marker": data}
