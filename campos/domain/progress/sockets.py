"""Socket.IO namespace pushing progress changes to the user's screens."""

from __future__ import annotations

from dataclasses import asdict
from typing import Callable, Dict, List, Optional

import socketio

from campos.domain.events import AchievementsUnlocked, EventBus, ProgressUpdated, VisitsChanged
from campos.infra.auth import resolve_socket_user, socket_headers
from campos.obs import metrics as obs_metrics


class ProgressNamespace(socketio.AsyncNamespace):
    """Namespace for progress, achievement and visit-list events."""

    def __init__(self) -> None:
        super().__init__("/progress")
        self._users: Dict[str, str] = {}
        self._unsubscribe: List[Callable[[], None]] = []

    @staticmethod
    def user_room(user_id: str) -> str:
        return f"user:{user_id}"

    def attach(self, bus: EventBus) -> None:
        self._unsubscribe = [
            bus.subscribe(ProgressUpdated, self.emit_progress),
            bus.subscribe(AchievementsUnlocked, self.emit_achievements),
            bus.subscribe(VisitsChanged, self.emit_visits_changed),
        ]

    def detach(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []

    async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
        user_id = resolve_socket_user(auth, socket_headers(environ))
        if not user_id:
            raise ConnectionRefusedError("unauthorized")
        obs_metrics.socket_connected(self.namespace)
        self._users[sid] = user_id
        await self.enter_room(sid, self.user_room(user_id))

    async def on_disconnect(self, sid: str, *args) -> None:
        user_id = self._users.pop(sid, None)
        if user_id:
            obs_metrics.socket_disconnected(self.namespace)
            await self.leave_room(sid, self.user_room(user_id))

    async def emit_progress(self, event: ProgressUpdated) -> None:
        payload = asdict(event)
        payload["newly_unlocked"] = list(event.newly_unlocked)
        await self.emit("progress:updated", payload, room=self.user_room(event.user_id))

    async def emit_achievements(self, event: AchievementsUnlocked) -> None:
        await self.emit(
            "achievements:unlocked",
            {"achievement_ids": list(event.achievement_ids)},
            room=self.user_room(event.user_id),
        )

    async def emit_visits_changed(self, event: VisitsChanged) -> None:
        await self.emit(
            "visits:changed",
            {"place_id": event.place_id, "action": event.action},
            room=self.user_room(event.user_id),
        )
