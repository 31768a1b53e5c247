"""Default chat zones and relief camps shown on the survivor map."""

from __future__ import annotations

from typing import List

from survivor_net.app.checkins.models import Location
from survivor_net.app.network.models import Camp, CampStatus, Zone

DEFAULT_ZONES: List[Zone] = [
    Zone("castle-byers", "Castle Byers"),
    Zone("starcourt-ruins", "Starcourt Ruins"),
    Zone("pumpkin-fields", "Rotten Pumpkin Fields"),
    Zone("creel-house", "Creel House Perimeter"),
]


def default_camps() -> List[Camp]:
    """Fresh camp objects (resource levels are mutable per process)."""
    return [
        Camp(
            camp_id="camp-hawkins-high",
            name="Hawkins High Gym Relief Camp",
            status=CampStatus.SAFE,
            location=Location(40.134, -85.668),
            resources={"food": 72, "water": 81, "medical": 34, "power": 62},
        ),
        Camp(
            camp_id="camp-forest-line",
            name="Forest Line Safe Camp",
            status=CampStatus.WATCH,
            location=Location(40.12, -85.64),
            resources={"food": 41, "water": 57, "medical": 18, "power": 39},
        ),
        Camp(
            camp_id="camp-quarry",
            name="Old Quarry Outpost",
            status=CampStatus.CRITICAL,
            location=Location(40.155, -85.705),
            resources={"food": 19, "water": 23, "medical": 7, "power": 21},
        ),
    ]
