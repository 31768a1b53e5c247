"""
sweeper.py — periodic missing-person sweep.

Runs ``CheckInCoordinator.run_sweep`` every ``SWEEP_INTERVAL_SECONDS``
(30 s by default) on the event loop so participants whose streak broke
overnight are flagged even when nobody queries the danger-zone list.

Usage:
    scheduler = SweepScheduler(coordinator, interval_seconds=30)
    await scheduler.start()
    ...
    await scheduler.stop()
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Dict, Optional

from survivor_net.app.checkins.coordinator import CheckInCoordinator
from survivor_net.app.checkins.day_keys import utc_now

logger = logging.getLogger(__name__)


class SweepScheduler:
    """Background asyncio task that sweeps on a fixed interval."""

    def __init__(self, coordinator: CheckInCoordinator, interval_seconds: float = 30.0):
        self.coordinator = coordinator
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

        self.runs = 0
        self.failures = 0
        self.last_run_at: Optional[datetime] = None
        self.last_duration_ms: Optional[float] = None
        self.last_error: Optional[str] = None

    @property
    def running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Sweep scheduler started (every %.0fs)", self.interval_seconds)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Sweep scheduler stopped after %d run(s)", self.runs)

    async def run_once(self, now: Optional[datetime] = None) -> None:
        """One sweep with bookkeeping; errors are recorded, not raised."""
        start = time.perf_counter()
        try:
            await self.coordinator.run_sweep(now)
            self.last_error = None
        except Exception as e:
            self.failures += 1
            self.last_error = str(e)
            logger.exception("Scheduled sweep failed: %s", e)
        finally:
            self.runs += 1
            self.last_run_at = now or utc_now()
            self.last_duration_ms = (time.perf_counter() - start) * 1000

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.run_once()
            except asyncio.CancelledError:
                break

    def to_dict(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "interval_seconds": self.interval_seconds,
            "runs": self.runs,
            "failures": self.failures,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_duration_ms": (
                round(self.last_duration_ms, 2)
                if self.last_duration_ms is not None else None
            ),
            "last_error": self.last_error,
        }
