import asyncio

import pytest

from fakes import FakePlatform, wait_for
from campos.domain.events import AuthorizationChanged, AuthorizationStatus, EventBus, PositionUpdated, RegionEntered
from campos.domain.geofence.models import MonitoredRegion
from campos.domain.geofence.watcher import RegionWatcher
from campos.domain.places.models import Position


def _collect(bus, event_type):
    seen = []

    async def _handler(event):
        seen.append(event)

    bus.subscribe(event_type, _handler)
    return seen


@pytest.mark.asyncio
async def test_one_shot_resolves_with_first_fix():
    bus = EventBus()
    positions = _collect(bus, PositionUpdated)
    platform = FakePlatform()
    watcher = RegionWatcher("u1", platform, bus)
    task = asyncio.create_task(watcher.request_one_shot_position(timeout=1.0))
    await wait_for(lambda: watcher.pending_position_requests == 1)

    fix = Position(40.0, -3.0, 8.0)
    await watcher.on_positions([Position(41.0, -3.0, 50.0), fix])
    await watcher.on_positions([Position(42.0, -3.0, 5.0)])

    assert await task == fix
    assert platform.names() == ["request_location"]
    assert watcher.pending_position_requests == 0
    assert len(positions) == 2
    assert positions[0].user_id == "u1"


@pytest.mark.asyncio
async def test_one_shot_times_out_with_none():
    watcher = RegionWatcher("u1", FakePlatform(), EventBus())
    assert await watcher.request_one_shot_position(timeout=0.02) is None
    assert watcher.pending_position_requests == 0


@pytest.mark.asyncio
async def test_one_shot_returns_none_on_platform_failure():
    watcher = RegionWatcher("u1", FakePlatform(fail_location=True), EventBus())
    assert await watcher.request_one_shot_position(timeout=1.0) is None


@pytest.mark.asyncio
async def test_one_shot_resolves_none_on_location_error():
    watcher = RegionWatcher("u1", FakePlatform(), EventBus())
    task = asyncio.create_task(watcher.request_one_shot_position(timeout=1.0))
    await wait_for(lambda: watcher.pending_position_requests == 1)
    await watcher.on_location_error("kCLErrorLocationUnknown")
    assert await task is None


@pytest.mark.asyncio
async def test_denied_authorization_short_circuits():
    bus = EventBus()
    changes = _collect(bus, AuthorizationChanged)
    platform = FakePlatform()
    watcher = RegionWatcher("u1", platform, bus)
    await watcher.on_authorization_changed(AuthorizationStatus.DENIED)
    await watcher.on_authorization_changed(AuthorizationStatus.DENIED)

    assert await watcher.request_one_shot_position(timeout=1.0) is None
    assert platform.calls == []
    assert len(changes) == 1
    assert changes[0].previous is AuthorizationStatus.NOT_DETERMINED


@pytest.mark.asyncio
async def test_denial_resolves_waiting_requests():
    watcher = RegionWatcher("u1", FakePlatform(), EventBus())
    task = asyncio.create_task(watcher.request_one_shot_position(timeout=1.0))
    await wait_for(lambda: watcher.pending_position_requests == 1)
    await watcher.on_authorization_changed(AuthorizationStatus.RESTRICTED)
    assert await task is None


@pytest.mark.asyncio
async def test_monitoring_requests_initial_state():
    bus = EventBus()
    entered = _collect(bus, RegionEntered)
    platform = FakePlatform()
    watcher = RegionWatcher("u1", platform, bus)
    await watcher.start_monitoring([MonitoredRegion("p1", 40.0, -3.0, 50.0)])
    await watcher.on_monitoring_started("p1")
    await watcher.on_region_entered("p1")
    assert platform.calls == [("start_monitoring", "p1"), ("request_state", "p1"), ("request_state", "p1")]
    assert entered[0].region_id == "p1"

    await watcher.on_monitoring_failed("p1", "region limit")
    assert watcher.monitored_ids == frozenset()
