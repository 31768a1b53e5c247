"""
Deep health probe over the survivor network's moving parts.

    component        degraded when
    ──────────────   ──────────────────────────────────────────
    registry         never (reports participant / missing counts)
    sweeper          enabled but not running, or last sweep failed
    durable_mirror   enabled and the last write failed
    broadcast        never (reports subscribers / collaborator failures)

A probe that raises is reported as ``unhealthy``. The overall status is
the worst component status; ``/health/ready`` answers 503 only when it is
``unhealthy`` since the in-memory engine keeps serving while degraded.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List

from survivor_net.app.core.config import settings

if TYPE_CHECKING:
    from survivor_net.app.state import NetworkState

logger = logging.getLogger(__name__)

_BOOTED_AT = time.monotonic()


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @property
    def rank(self) -> int:
        return _RANK[self]


_RANK = {HealthStatus.HEALTHY: 0, HealthStatus.DEGRADED: 1, HealthStatus.UNHEALTHY: 2}


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def degrade(self, message: str) -> "ComponentHealth":
        self.status = HealthStatus.DEGRADED
        self.message = message
        return self

    def to_dict(self) -> Dict[str, Any]:
        out = {"name": self.name, "status": self.status.value, "message": self.message}
        if self.details:
            out["details"] = self.details
        return out


@dataclass
class HealthReport:
    components: List[ComponentHealth]
    checked_at: datetime
    uptime_seconds: float

    @property
    def status(self) -> HealthStatus:
        if not self.components:
            return HealthStatus.HEALTHY
        return max((c.status for c in self.components), key=lambda s: s.rank)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "timestamp": self.checked_at.isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


# ── Probes ──

def check_registry(state: "NetworkState") -> ComponentHealth:
    total = len(state.registry)
    missing = len(state.registry.missing())
    return ComponentHealth(
        "registry",
        message=f"{total} participant(s), {missing} missing",
        details={"participants": total, "missing": missing},
    )


def check_sweeper(state: "NetworkState") -> ComponentHealth:
    sweeper = state.sweeper
    comp = ComponentHealth("sweeper", message="Sweeping", details=sweeper.to_dict())
    if not settings.SWEEP_ENABLED:
        comp.message = "Periodic sweep disabled"
    elif not sweeper.running:
        comp.degrade("Sweep scheduler not running")
    elif sweeper.last_error:
        comp.degrade(f"Last sweep failed: {sweeper.last_error}")
    return comp


def check_mirror(state: "NetworkState") -> ComponentHealth:
    mirror = state.mirror
    if not mirror.enabled:
        return ComponentHealth("durable_mirror", message="Disabled (in-memory only)")
    comp = ComponentHealth(
        "durable_mirror",
        message="Mirroring",
        details={"database": settings.DATABASE_URL.rsplit("@", 1)[-1]},
    )
    if mirror.last_error:
        comp.degrade(mirror.last_error)
    return comp


def check_broadcast(state: "NetworkState") -> ComponentHealth:
    return ComponentHealth(
        "broadcast",
        message=f"{state.hub.subscriber_count} subscriber(s)",
        details={
            "subscribers": state.hub.subscriber_count,
            "published": state.hub.published,
            "collaborator_failures": state.coordinator.collaborator_failures,
        },
    )


PROBES: List[Callable[["NetworkState"], ComponentHealth]] = [
    check_registry,
    check_sweeper,
    check_mirror,
    check_broadcast,
]


async def run_health_check(state: "NetworkState") -> HealthReport:
    components: List[ComponentHealth] = []
    for probe in PROBES:
        name = probe.__name__.replace("check_", "")
        try:
            components.append(probe(state))
        except Exception as e:
            logger.exception("Health probe %s raised", name)
            components.append(ComponentHealth(
                "durable_mirror" if name == "mirror" else name,
                status=HealthStatus.UNHEALTHY,
                message=str(e),
            ))
    return HealthReport(
        components=components,
        checked_at=datetime.now(timezone.utc),
        uptime_seconds=time.monotonic() - _BOOTED_AT,
    )
