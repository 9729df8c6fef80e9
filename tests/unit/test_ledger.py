from datetime import datetime, timedelta, timezone

import pytest

from fakes import FixedClock
from campos.domain.errors import InvalidCoordinate, NotAuthenticated, NotNearby, PositionUnavailable
from campos.domain.events import EventBus, VisitsChanged
from campos.domain.places.cache import PlaceCache
from campos.domain.places.models import Position
from campos.domain.places.service import PlaceCatalog
from campos.domain.progress.service import ProgressEngine
from campos.domain.visits.ledger import RecordOutcome, VisitLedger

NOW = datetime(2024, 5, 1, 9, tzinfo=timezone.utc)


def _ledger(store, clock):
    bus = EventBus()
    catalog = PlaceCatalog(store, PlaceCache(), clock=clock)
    progress = ProgressEngine(store, catalog, bus, clock=clock)
    ledger = VisitLedger(store, progress, bus, visit_radius_m=500, max_accuracy_m=100, clock=clock)
    changes = []

    async def _record(event):
        changes.append(event)

    bus.subscribe(VisitsChanged, _record)
    return ledger, catalog, changes


@pytest.mark.asyncio
async def test_one_visit_per_place_per_day(store):
    clock = FixedClock(NOW)
    ledger, _, changes = _ledger(store, clock)

    first = await ledger.record_visit_if_absent("u1", "p-bridge", place_name="Bridge")
    assert first.outcome is RecordOutcome.CREATED
    assert first.visit_id
    clock.now = NOW + timedelta(hours=3)
    second = await ledger.record_visit_if_absent("u1", "p-bridge")
    assert second.outcome is RecordOutcome.ALREADY_EXISTED
    assert len(store.tables["visits"]) == 1
    assert [(c.action, c.place_name) for c in changes] == [("created", "Bridge")]

    clock.now = NOW + timedelta(days=1)
    third = await ledger.record_visit_if_absent("u1", "p-bridge")
    assert third.created
    assert len(store.tables["visits"]) == 2
    assert await ledger.visited_place_ids("u1") == {"p-bridge"}


@pytest.mark.asyncio
async def test_record_never_raises(store):
    ledger, _, changes = _ledger(store, FixedClock(NOW))
    missing_user = await ledger.record_visit_if_absent(None, "p-bridge")
    assert missing_user.outcome is RecordOutcome.FAILED
    assert missing_user.reason == "not_authenticated"

    store.failing.add(("visits", "insert"))
    failed = await ledger.record_visit_if_absent("u1", "p-bridge")
    assert failed.outcome is RecordOutcome.FAILED
    assert failed.reason == "remote_unavailable"
    assert store.tables["visits"] == []
    assert changes == []


@pytest.mark.asyncio
async def test_visit_write_survives_progress_failure(store):
    ledger, _, changes = _ledger(store, FixedClock(NOW))
    store.failing.add(("progress_snapshots", "*"))
    result = await ledger.record_visit_if_absent("u1", "p-bridge")
    assert result.created
    assert len(store.tables["visits"]) == 1
    assert len(changes) == 1


@pytest.mark.asyncio
async def test_manual_marking_requires_proximity(store):
    ledger, catalog, changes = _ledger(store, FixedClock(NOW))
    cathedral = await catalog.get("p-cathedral")
    bridge = await catalog.get("p-bridge")
    archive = await catalog.get("p-archive")
    here = Position(40.001, -3.0, 20.0)

    visit_id = await ledger.mark_visited_nearby("u1", cathedral, here)
    assert visit_id
    assert changes[-1].action == "marked"

    with pytest.raises(NotNearby) as far:
        await ledger.mark_visited_nearby("u1", bridge, here)
    assert far.value.distance_m > 2500
    assert far.value.radius_m == 500

    with pytest.raises(PositionUnavailable) as vague:
        await ledger.mark_visited_nearby("u1", cathedral, Position(40.001, -3.0, 150.0))
    assert vague.value.reason == "poor_accuracy"
    with pytest.raises(PositionUnavailable):
        await ledger.mark_visited_nearby("u1", cathedral, Position(40.001, -3.0, None))
    with pytest.raises(PositionUnavailable):
        await ledger.mark_visited_nearby("u1", cathedral, None)
    with pytest.raises(InvalidCoordinate):
        await ledger.mark_visited_nearby("u1", archive, here)
    with pytest.raises(NotAuthenticated):
        await ledger.mark_visited_nearby("", cathedral, here)
    assert len(store.tables["visits"]) == 1


@pytest.mark.asyncio
async def test_unmark_removes_every_visit_of_place(store):
    clock = FixedClock(NOW)
    ledger, _, changes = _ledger(store, clock)
    await ledger.record_visit_if_absent("u1", "p-bridge")
    clock.now = NOW + timedelta(days=1)
    await ledger.record_visit_if_absent("u1", "p-bridge")
    await ledger.record_visit_if_absent("u2", "p-bridge")

    assert await ledger.unmark_visited("u1", "p-bridge") == 2
    assert not await ledger.is_visited("u1", "p-bridge")
    assert await ledger.is_visited("u2", "p-bridge")
    assert changes[-1].action == "unmarked"
