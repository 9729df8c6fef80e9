"""Automatic check-in: region events -> dwell -> visit ledger, per device session."""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime
from typing import Callable, Deque, Dict, List, Optional

from campos.domain.events import (
    AuthorizationChanged,
    EventBus,
    PositionUpdated,
    RegionEntered,
    RegionExited,
    RegionState,
    RegionStateDetermined,
)
from campos.domain.geofence.dwell import DwellDebouncer
from campos.domain.geofence.selector import RegionSelector
from campos.domain.geofence.watcher import RegionWatcher
from campos.domain.places.models import Place
from campos.domain.places.service import PlaceCatalog
from campos.domain.visits.ledger import RecordResult, VisitLedger

logger = logging.getLogger(__name__)


class AutoCheckin:
    """Owns one device's dwell state and monitored-region set.

    Bus events from other users or other devices of the same user are
    ignored. Detection runs only while enabled and location access is
    granted; otherwise only manual marking is available. Nothing here
    raises out of a background event; failures are logged and the next
    trigger retries.
    """

    def __init__(
        self,
        user_id: str,
        *,
        watcher: RegionWatcher,
        selector: RegionSelector,
        ledger: VisitLedger,
        catalog: PlaceCatalog,
        bus: EventBus,
        dwell_seconds: Optional[float] = None,
    ) -> None:
        self.user_id = user_id
        self.watcher = watcher
        self.selector = selector
        self._ledger = ledger
        self._catalog = catalog
        self._bus = bus
        self.debouncer = DwellDebouncer(self._dwell_completed, dwell_seconds=dwell_seconds)
        self.enabled = False
        self._places: Dict[str, Place] = {}
        self.recent_results: Deque[RecordResult] = deque(maxlen=32)
        self._unsubscribe: List[Callable[[], None]] = [
            bus.subscribe(PositionUpdated, self._on_position),
            bus.subscribe(RegionEntered, self._on_entered),
            bus.subscribe(RegionExited, self._on_exited),
            bus.subscribe(RegionStateDetermined, self._on_state),
            bus.subscribe(AuthorizationChanged, self._on_authorization),
        ]

    def _mine(self, event) -> bool:
        return event.user_id == self.user_id and event.device_sid == self.watcher.device_sid

    @property
    def detecting(self) -> bool:
        return self.enabled and self.watcher.authorization.allowed

    def _armable(self, region_id: str) -> bool:
        return self.detecting and region_id in self._places and region_id in self.watcher.monitored_ids

    async def refresh_catalog(self, force: bool = False) -> int:
        """Reload places; reselect regions while detection is running."""
        try:
            result = await self._catalog.load(force_refresh=force)
        except Exception:
            logger.exception("catalog load for region monitoring failed")
            return 0
        monitorable = result.monitorable()
        self._places = {place.id: place for place in monitorable}
        self.selector.update_catalog(monitorable)
        if self.detecting:
            await self._reselect("catalog")
        return len(monitorable)

    async def set_enabled(self, enabled: bool) -> None:
        if enabled == self.enabled:
            return
        self.enabled = enabled
        logger.info("auto check-in toggled", extra={"enabled": enabled})
        if not enabled:
            await self._stop_detection()
            return
        if not self._places:
            await self.refresh_catalog()
        elif self.detecting:
            await self._reselect("enabled")
        if not self.watcher.authorization.allowed:
            logger.info("auto check-in waiting for location permission", extra={"status": self.watcher.authorization.value})
            return
        await self._request_position()

    async def on_foreground(self, now: Optional[datetime] = None) -> bool:
        if not self.detecting:
            return False
        try:
            return await self.selector.refresh_if_stale(now)
        finally:
            self.debouncer.retain(self.watcher.monitored_ids)

    async def _reselect(self, reason: str) -> None:
        await self.selector.reselect(reason)
        self.debouncer.retain(self.watcher.monitored_ids)

    async def _request_position(self) -> None:
        try:
            await self.watcher.request_position_update()
        except Exception:
            logger.warning("position update request failed", exc_info=True)

    async def _stop_detection(self) -> None:
        self.debouncer.reset()
        try:
            await self.watcher.stop_all_monitoring()
        except Exception:
            logger.exception("stopping region monitoring failed")
        self.selector.last_reselected_at = None

    async def _dwell_completed(self, place_id: str) -> None:
        place = self._places.get(place_id)
        result = await self._ledger.record_visit_if_absent(
            self.user_id,
            place_id,
            place_name=place.name if place else None,
        )
        self.recent_results.append(result)
        logger.info("dwell resolved", extra={"place_id": place_id, "outcome": result.outcome.value, "reason": result.reason})

    # Bus handlers

    async def _on_position(self, event: PositionUpdated) -> None:
        if self._mine(event) and self.detecting:
            await self._reselect("position")

    async def _on_entered(self, event: RegionEntered) -> None:
        if self._mine(event) and self._armable(event.region_id):
            self.debouncer.region_inside(event.region_id)

    async def _on_exited(self, event: RegionExited) -> None:
        if self._mine(event):
            self.debouncer.region_outside(event.region_id)

    async def _on_state(self, event: RegionStateDetermined) -> None:
        if not self._mine(event):
            return
        if event.state is RegionState.INSIDE:
            if self._armable(event.region_id):
                self.debouncer.region_inside(event.region_id)
        elif event.state is RegionState.OUTSIDE:
            self.debouncer.region_outside(event.region_id)

    async def _on_authorization(self, event: AuthorizationChanged) -> None:
        if not self._mine(event):
            return
        if event.status.allowed and not event.previous.allowed:
            if self.enabled:
                await self._reselect("authorization")
                await self._request_position()
        elif not event.status.allowed:
            # Manual marking keeps working; automatic detection pauses.
            logger.info("location permission withdrawn", extra={"status": event.status.value})
            if self.enabled:
                await self._stop_detection()
            else:
                self.debouncer.reset()

    async def close(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        await self.debouncer.shutdown()
