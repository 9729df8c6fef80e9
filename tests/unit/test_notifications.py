from datetime import time

import pytest

from fakes import FakeNotifier
from campos.domain.events import AuthorizationStatus, EventBus, ProgressUpdated, VisitsChanged
from campos.domain.notifications.service import DAILY_REMINDER_ID, NotificationBridge


def _progress(**overrides):
    values = dict(
        user_id="u1",
        total_xp=110,
        level=2,
        next_level_xp=250,
        places_visited=1,
        regions_visited=1,
        day_streak=1,
        daily_streak=1,
        daily_xp=20,
        has_claimed_today=False,
    )
    values.update(overrides)
    return ProgressUpdated(**values)


def _bridge(bus, *notifiers):
    return NotificationBridge(
        bus,
        lambda user_id: list(notifiers) if user_id == "u1" else [],
        reminder_at=time(10, 0),
        visit_delay_seconds=1.0,
    ).attach()


@pytest.mark.asyncio
async def test_created_visit_schedules_alert():
    bus = EventBus()
    notifier = FakeNotifier()
    _bridge(bus, notifier)
    await bus.publish(VisitsChanged(user_id="u1", place_id="p-bridge", action="created", place_name="Bridge"))
    await bus.publish(VisitsChanged(user_id="u1", place_id="p-bridge", action="marked"))
    await bus.publish(VisitsChanged(user_id="u2", place_id="p-bridge", action="created"))
    assert len(notifier.scheduled) == 1
    alert = notifier.scheduled[0]
    assert alert["id"] == "visit:p-bridge"
    assert "Bridge" in alert["body"]
    assert alert["after_seconds"] == 1.0


@pytest.mark.asyncio
async def test_alerts_skipped_without_permission():
    bus = EventBus()
    denied = FakeNotifier(AuthorizationStatus.DENIED)
    allowed = FakeNotifier()
    _bridge(bus, denied, allowed)
    await bus.publish(VisitsChanged(user_id="u1", place_id="p-bridge", action="created"))
    assert denied.scheduled == []
    assert len(allowed.scheduled) == 1


@pytest.mark.asyncio
async def test_daily_reminder_follows_claim_state():
    bus = EventBus()
    notifier = FakeNotifier()
    _bridge(bus, notifier)

    await bus.publish(_progress())
    assert notifier.canceled == [DAILY_REMINDER_ID]
    reminder = notifier.scheduled[0]
    assert reminder["id"] == DAILY_REMINDER_ID
    assert reminder["at"] == time(10, 0)
    assert reminder["repeats_daily"] is True
    assert "20 XP" in reminder["body"]

    await bus.publish(_progress(has_claimed_today=True))
    assert notifier.canceled == [DAILY_REMINDER_ID, DAILY_REMINDER_ID]
    assert len(notifier.scheduled) == 1


@pytest.mark.asyncio
async def test_detach_stops_delivery():
    bus = EventBus()
    notifier = FakeNotifier()
    bridge = _bridge(bus, notifier)
    bridge.detach()
    await bus.publish(_progress())
    assert notifier.canceled == []
