"""Service construction and per-device session bookkeeping.

Services are built once at startup and handed to consumers explicitly;
nothing below is a module-level singleton.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from campos.domain.events import EventBus
from campos.domain.geofence.models import LocationPlatform
from campos.domain.geofence.selector import RegionSelector
from campos.domain.geofence.service import AutoCheckin
from campos.domain.geofence.watcher import RegionWatcher
from campos.domain.notifications.service import LocalNotifier, NotificationBridge
from campos.domain.places.cache import PlaceCache
from campos.domain.places.service import PlaceCatalog
from campos.domain.progress.service import ProgressEngine
from campos.domain.visits.ledger import VisitLedger
from campos.infra.store import PostgresStore, RemoteStore

logger = logging.getLogger(__name__)


@dataclass
class UserSession:
    sid: str
    user_id: str
    watcher: RegionWatcher
    selector: RegionSelector
    checkin: AutoCheckin
    notifier: Optional[LocalNotifier] = None


class SessionRegistry:
    """Connected devices keyed by socket id; a user may have several."""

    def __init__(self, core: "CoreServices") -> None:
        self._core = core
        self._sessions: Dict[str, UserSession] = {}
        self._lock = asyncio.Lock()

    async def open(
        self,
        sid: str,
        user_id: str,
        platform: LocationPlatform,
        notifier: Optional[LocalNotifier] = None,
        *,
        dwell_seconds: Optional[float] = None,
        position_timeout_seconds: Optional[float] = None,
    ) -> UserSession:
        core = self._core
        watcher = RegionWatcher(
            user_id, platform, core.bus, device_sid=sid, position_timeout_seconds=position_timeout_seconds
        )
        selector = RegionSelector(watcher)
        checkin = AutoCheckin(
            user_id,
            watcher=watcher,
            selector=selector,
            ledger=core.ledger,
            catalog=core.catalog,
            bus=core.bus,
            dwell_seconds=dwell_seconds,
        )
        session = UserSession(sid=sid, user_id=user_id, watcher=watcher, selector=selector, checkin=checkin, notifier=notifier)
        async with self._lock:
            previous = self._sessions.pop(sid, None)
            self._sessions[sid] = session
        if previous is not None:
            await previous.checkin.close()
        logger.info("device session opened", extra={"sid": sid})
        return session

    def get(self, sid: str) -> Optional[UserSession]:
        return self._sessions.get(sid)

    def for_user(self, user_id: str) -> List[UserSession]:
        return [session for session in self._sessions.values() if session.user_id == user_id]

    def notifiers_for(self, user_id: str) -> List[LocalNotifier]:
        return [session.notifier for session in self.for_user(user_id) if session.notifier is not None]

    def __len__(self) -> int:
        return len(self._sessions)

    async def close(self, sid: str) -> None:
        async with self._lock:
            session = self._sessions.pop(sid, None)
        if session is None:
            return
        await session.checkin.close()
        logger.info("device session closed", extra={"sid": sid})

    async def shutdown(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            await session.checkin.close()


@dataclass
class CoreServices:
    store: RemoteStore
    bus: EventBus
    catalog: PlaceCatalog
    progress: ProgressEngine
    ledger: VisitLedger
    sessions: SessionRegistry = field(init=False)
    notifications: NotificationBridge = field(init=False)

    def __post_init__(self) -> None:
        self.sessions = SessionRegistry(self)
        self.notifications = NotificationBridge(self.bus, self.sessions.notifiers_for).attach()

    async def shutdown(self) -> None:
        await self.sessions.shutdown()
        self.notifications.detach()


def build_core(
    store: Optional[RemoteStore] = None,
    *,
    cache: Optional[PlaceCache] = None,
    bus: Optional[EventBus] = None,
) -> CoreServices:
    store = store or PostgresStore()
    bus = bus or EventBus()
    catalog = PlaceCatalog(store, cache)
    progress = ProgressEngine(store, catalog, bus)
    ledger = VisitLedger(store, progress, bus)
    return CoreServices(store=store, bus=bus, catalog=catalog, progress=progress, ledger=ledger)
