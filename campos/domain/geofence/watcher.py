"""Async facade over the device's low-power location primitives."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

from campos.domain.events import (
    AuthorizationChanged,
    AuthorizationStatus,
    EventBus,
    MonitoringStarted,
    PositionUpdated,
    RegionEntered,
    RegionExited,
    RegionState,
    RegionStateDetermined,
)
from campos.domain.geofence.models import LocationPlatform, MonitoredRegion
from campos.domain.places.models import Position
from campos.obs import metrics as obs_metrics
from campos.settings import settings

logger = logging.getLogger(__name__)


def _settle(waiter: "asyncio.Future[Optional[Position]]", position: Optional[Position]) -> None:
    # First resolution wins; later callbacks and the timeout are no-ops.
    if not waiter.done():
        waiter.set_result(position)


class RegionWatcher:
    """Wraps one device's region monitoring and one-shot fixes.

    Platform callbacks enter through the ``on_*`` coroutines and are
    republished on the bus as typed events tagged with ``user_id`` and the
    ``device_sid`` of the connection that reported them.
    """

    def __init__(
        self,
        user_id: str,
        platform: LocationPlatform,
        bus: EventBus,
        *,
        device_sid: Optional[str] = None,
        position_timeout_seconds: Optional[float] = None,
    ) -> None:
        self.user_id = user_id
        self.device_sid = device_sid
        self._platform = platform
        self._bus = bus
        self._timeout = (
            position_timeout_seconds if position_timeout_seconds is not None else settings.position_timeout_seconds
        )
        self._waiters: List[asyncio.Future] = []
        self._monitored: Dict[str, MonitoredRegion] = {}
        self.authorization = AuthorizationStatus.NOT_DETERMINED
        self.last_position: Optional[Position] = None

    @property
    def monitored_ids(self) -> FrozenSet[str]:
        return frozenset(self._monitored)

    @property
    def pending_position_requests(self) -> int:
        return len(self._waiters)

    async def request_one_shot_position(self, timeout: Optional[float] = None) -> Optional[Position]:
        """Resolve with a fix, or None on timeout, denial or platform failure."""
        if self.authorization.refused:
            obs_metrics.inc_position_request("denied")
            return None
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[Optional[Position]] = loop.create_future()
        self._waiters.append(waiter)
        deadline = loop.call_later(self._timeout if timeout is None else timeout, _settle, waiter, None)
        try:
            try:
                await self._platform.request_location()
            except Exception:
                logger.warning("one-shot location request failed", exc_info=True)
                _settle(waiter, None)
            position = await waiter
        finally:
            deadline.cancel()
            if waiter in self._waiters:
                self._waiters.remove(waiter)
        obs_metrics.inc_position_request("fix" if position is not None else "no_fix")
        return position

    async def request_position_update(self) -> None:
        """Ask for a fix without waiting; it arrives through ``on_positions``."""
        await self._platform.request_location()

    async def start_monitoring(self, regions: Iterable[MonitoredRegion]) -> List[MonitoredRegion]:
        started: List[MonitoredRegion] = []
        for region in regions:
            await self._platform.start_monitoring(region)
            self._monitored[region.id] = region
            started.append(region)
        # A device already inside a new region gets no boundary crossing; ask explicitly.
        for region in started:
            await self._platform.request_state(region.id)
        return started

    async def stop_monitoring(self, region_id: str) -> None:
        self._monitored.pop(region_id, None)
        await self._platform.stop_monitoring(region_id)

    async def stop_all_monitoring(self) -> None:
        self._monitored.clear()
        await self._platform.stop_all_monitoring()

    async def request_state(self, region_id: str) -> None:
        await self._platform.request_state(region_id)

    # Platform callbacks

    async def on_positions(self, positions: Sequence[Position]) -> None:
        if not positions:
            return
        position = positions[-1]
        self.last_position = position
        for waiter in list(self._waiters):
            _settle(waiter, position)
        await self._bus.publish(
            PositionUpdated(
                user_id=self.user_id,
                latitude=position.latitude,
                longitude=position.longitude,
                accuracy_m=position.accuracy_m,
                device_sid=self.device_sid,
            )
        )

    async def on_location_error(self, error: str) -> None:
        logger.info("location error from device", extra={"error": error})
        for waiter in list(self._waiters):
            _settle(waiter, None)

    async def on_region_entered(self, region_id: str) -> None:
        await self._bus.publish(RegionEntered(user_id=self.user_id, region_id=region_id, device_sid=self.device_sid))

    async def on_region_exited(self, region_id: str) -> None:
        await self._bus.publish(RegionExited(user_id=self.user_id, region_id=region_id, device_sid=self.device_sid))

    async def on_region_state(self, region_id: str, state: RegionState) -> None:
        await self._bus.publish(
            RegionStateDetermined(user_id=self.user_id, region_id=region_id, state=state, device_sid=self.device_sid)
        )

    async def on_monitoring_started(self, region_id: str) -> None:
        await self._bus.publish(MonitoringStarted(user_id=self.user_id, region_id=region_id, device_sid=self.device_sid))
        if region_id in self._monitored:
            await self._platform.request_state(region_id)

    async def on_monitoring_failed(self, region_id: str, error: str) -> None:
        logger.warning("region monitoring failed", extra={"region_id": region_id, "error": error})
        self._monitored.pop(region_id, None)

    async def on_authorization_changed(self, status: AuthorizationStatus) -> None:
        previous = self.authorization
        self.authorization = status
        if status.refused:
            for waiter in list(self._waiters):
                _settle(waiter, None)
        if status is previous:
            return
        await self._bus.publish(
            AuthorizationChanged(user_id=self.user_id, status=status, previous=previous, device_sid=self.device_sid)
        )
