"""Local alerts for confirmed visits and unclaimed daily rewards."""

from __future__ import annotations

import logging
from datetime import time
from typing import Callable, List, Optional, Protocol

from campos.domain.events import AuthorizationStatus, EventBus, ProgressUpdated, VisitsChanged
from campos.obs import metrics as obs_metrics
from campos.settings import settings

logger = logging.getLogger(__name__)

DAILY_REMINDER_ID = "daily-reward"


def visit_alert_id(place_id: str) -> str:
    return f"visit:{place_id}"


class LocalNotifier(Protocol):
    async def schedule_local(
        self,
        identifier: str,
        title: str,
        body: str,
        *,
        after_seconds: Optional[float] = None,
        at: Optional[time] = None,
        repeats_daily: bool = False,
    ) -> None:
        ...

    async def cancel_pending(self, identifier: str) -> None:
        ...

    async def authorization_status(self) -> AuthorizationStatus:
        ...


NotifierLookup = Callable[[str], List[LocalNotifier]]


class NotificationBridge:
    """Turns core events into alerts on the user's connected devices.

    Delivery is best effort: missing permission or a failing device is
    logged and skipped.
    """

    def __init__(
        self,
        bus: EventBus,
        notifiers_for: NotifierLookup,
        *,
        reminder_at: Optional[time] = None,
        visit_delay_seconds: Optional[float] = None,
    ) -> None:
        self._bus = bus
        self._notifiers_for = notifiers_for
        self.reminder_at = reminder_at or time(settings.daily_reminder_hour, settings.daily_reminder_minute)
        self.visit_delay_seconds = (
            visit_delay_seconds if visit_delay_seconds is not None else settings.visit_notification_delay_seconds
        )
        self._unsubscribe: List[Callable[[], None]] = []

    def attach(self) -> "NotificationBridge":
        self._unsubscribe.append(self._bus.subscribe(VisitsChanged, self._on_visits_changed))
        self._unsubscribe.append(self._bus.subscribe(ProgressUpdated, self._on_progress_updated))
        return self

    def detach(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()

    async def _allowed(self, notifier: LocalNotifier) -> bool:
        status = await notifier.authorization_status()
        if status.allowed:
            return True
        obs_metrics.inc_notification("any", "skipped_permission")
        return False

    async def visit_confirmed(self, user_id: str, place_id: str, place_name: Optional[str]) -> None:
        body = f"{place_name} added to your visits" if place_name else "A new place was added to your visits"
        for notifier in self._notifiers_for(user_id):
            try:
                if not await self._allowed(notifier):
                    continue
                await notifier.schedule_local(
                    visit_alert_id(place_id),
                    "Visit recorded",
                    body,
                    after_seconds=self.visit_delay_seconds,
                )
                obs_metrics.inc_notification("visit", "scheduled")
            except Exception:
                logger.warning("visit alert failed", extra={"place_id": place_id}, exc_info=True)

    async def sync_daily_reminder(self, user_id: str, *, has_claimed_today: bool, daily_xp: int) -> None:
        """Keep exactly one pending reminder while today's reward is unclaimed."""
        for notifier in self._notifiers_for(user_id):
            try:
                await notifier.cancel_pending(DAILY_REMINDER_ID)
                obs_metrics.inc_notification("daily", "canceled")
                if has_claimed_today or daily_xp <= 0:
                    continue
                if not await self._allowed(notifier):
                    continue
                await notifier.schedule_local(
                    DAILY_REMINDER_ID,
                    "Daily reward waiting",
                    f"Open the app to claim {daily_xp} XP",
                    at=self.reminder_at,
                    repeats_daily=True,
                )
                obs_metrics.inc_notification("daily", "scheduled")
            except Exception:
                logger.warning("daily reminder sync failed", exc_info=True)

    async def _on_visits_changed(self, event: VisitsChanged) -> None:
        if event.action != "created":
            return
        await self.visit_confirmed(event.user_id, event.place_id, event.place_name)

    async def _on_progress_updated(self, event: ProgressUpdated) -> None:
        await self.sync_daily_reminder(
            event.user_id,
            has_claimed_today=event.has_claimed_today,
            daily_xp=event.daily_xp,
        )
