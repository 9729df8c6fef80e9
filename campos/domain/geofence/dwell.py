"""Per-place dwell timers turning "inside" signals into one completion each."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Awaitable, Callable, Dict, Iterable, Optional, Set

from campos.domain.geofence.models import DwellState
from campos.obs import metrics as obs_metrics
from campos.settings import settings

logger = logging.getLogger(__name__)

DwellCallback = Callable[[str], Awaitable[None]]


class DwellDebouncer:
    """idle -> pending (inside) -> completed (timer fired) -> idle (outside).

    A place stays in the completed set until an "outside" signal so repeated
    "inside" signals while the user stays put never retrigger. Cancellation
    is synchronous: once ``region_outside`` returns, that timer cannot fire.
    """

    def __init__(self, on_complete: DwellCallback, *, dwell_seconds: Optional[float] = None) -> None:
        self._on_complete = on_complete
        self.dwell_seconds = dwell_seconds if dwell_seconds is not None else settings.geofence_dwell_seconds
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._completed: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._timers)

    def state(self, place_id: str) -> DwellState:
        if place_id in self._timers:
            return DwellState.PENDING
        if place_id in self._completed:
            return DwellState.COMPLETED
        return DwellState.IDLE

    def region_inside(self, place_id: str) -> bool:
        """Start a dwell unless one is pending or already completed. Returns True when started."""
        if place_id in self._completed:
            obs_metrics.inc_dwell("suppressed")
            return False
        if place_id in self._timers:
            return False
        loop = asyncio.get_running_loop()
        self._timers[place_id] = loop.call_later(self.dwell_seconds, self._fire, place_id)
        obs_metrics.inc_dwell("started")
        logger.debug("dwell started", extra={"place_id": place_id})
        return True

    def region_outside(self, place_id: str) -> None:
        handle = self._timers.pop(place_id, None)
        if handle is not None:
            handle.cancel()
            obs_metrics.inc_dwell("canceled")
            logger.debug("dwell canceled", extra={"place_id": place_id})
        self._completed.discard(place_id)

    def retain(self, place_ids: Iterable[str]) -> None:
        """Cancel pending dwells for places no longer monitored."""
        keep = set(place_ids)
        for place_id in [pid for pid in self._timers if pid not in keep]:
            self._timers.pop(place_id).cancel()
            obs_metrics.inc_dwell("canceled")

    def _fire(self, place_id: str) -> None:
        if self._timers.pop(place_id, None) is None:
            return
        # Suppress before the ledger runs, whatever its outcome.
        self._completed.add(place_id)
        obs_metrics.inc_dwell("completed")
        task = asyncio.get_running_loop().create_task(self._complete(place_id), name=f"dwell-complete:{place_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _complete(self, place_id: str) -> None:
        try:
            await self._on_complete(place_id)
        except Exception:
            logger.exception("dwell completion failed", extra={"place_id": place_id})

    def reset(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._completed.clear()

    async def drain(self) -> None:
        """Wait for completion callbacks already in flight."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        self.reset()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
