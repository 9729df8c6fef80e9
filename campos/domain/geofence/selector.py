"""Chooses which places occupy the platform's bounded region-monitoring slots."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from campos.domain.geofence.models import MonitoredRegion
from campos.domain.geofence.watcher import RegionWatcher
from campos.domain.places.models import Place, Position
from campos.domain.visits.timestamps import day_of, utcnow
from campos.obs import metrics as obs_metrics
from campos.settings import settings

logger = logging.getLogger(__name__)


def select_regions(places: Sequence[Place], position: Optional[Position], capacity: int) -> List[Place]:
    """Return up to ``capacity`` monitorable places, nearest first.

    Without a position the catalog order is kept. ``sorted`` is stable, so
    equal distances also fall back to catalog order.
    """
    if capacity <= 0:
        return []
    candidates = [place for place in places if place.coordinate is not None]
    if position is None:
        return candidates[:capacity]
    origin = position.coordinate
    ranked = sorted(candidates, key=lambda place: origin.distance_to(place.coordinate))  # type: ignore[arg-type]
    return ranked[:capacity]


class RegionSelector:
    def __init__(
        self,
        watcher: RegionWatcher,
        *,
        capacity: Optional[int] = None,
        radius_m: Optional[float] = None,
        refresh_interval_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._watcher = watcher
        self.capacity = capacity if capacity is not None else settings.geofence_max_regions
        self.radius_m = radius_m if radius_m is not None else settings.geofence_region_radius_m
        self.refresh_interval_seconds = (
            refresh_interval_seconds
            if refresh_interval_seconds is not None
            else settings.geofence_refresh_interval_seconds
        )
        self._clock = clock
        self._places: List[Place] = []
        self.selection: List[Place] = []
        self.last_reselected_at: Optional[datetime] = None

    def update_catalog(self, places: Sequence[Place]) -> None:
        self._places = list(places)

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        if self.last_reselected_at is None:
            return True
        now = now or self._clock()
        if day_of(now) != day_of(self.last_reselected_at):
            return True
        return (now - self.last_reselected_at).total_seconds() >= self.refresh_interval_seconds

    async def reselect(self, reason: str, position: Optional[Position] = None) -> List[MonitoredRegion]:
        """Replace the monitored set with the current best selection.

        Failures are logged and leave the selector stale so the next
        refresh opportunity retries.
        """
        position = position or self._watcher.last_position
        chosen = select_regions(self._places, position, self.capacity)
        regions = [MonitoredRegion.from_place(place, self.radius_m) for place in chosen]
        try:
            await self._watcher.stop_all_monitoring()
            started = await self._watcher.start_monitoring(regions)
        except Exception:
            obs_metrics.region_reselect_failed()
            logger.exception("region reselection failed", extra={"reason": reason})
            self.last_reselected_at = None
            self.selection = []
            return []
        self.selection = chosen
        self.last_reselected_at = self._clock()
        obs_metrics.region_reselected(reason, len(started))
        logger.info(
            "monitored regions reselected",
            extra={"reason": reason, "count": len(started), "has_fix": position is not None},
        )
        return started

    async def refresh_if_stale(self, now: Optional[datetime] = None) -> bool:
        if not self.is_stale(now):
            return False
        await self.reselect("stale")
        return True
