"""Socket.IO namespace connecting devices to their automatic check-in session.

The device owns the real region monitoring and local notification center.
This namespace forwards its callbacks into the session and turns the
core's platform requests into commands emitted back to that device.
"""

from __future__ import annotations

import logging
from datetime import time
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import socketio

from campos.domain.errors import CoreError, PermissionDenied
from campos.domain.events import AuthorizationStatus, RegionState
from campos.domain.geofence.models import MonitoredRegion
from campos.domain.places.geo import valid_coordinate
from campos.domain.places.models import Position
from campos.infra.auth import resolve_socket_user, socket_headers
from campos.obs import logging as obs_logging
from campos.obs import metrics as obs_metrics

if TYPE_CHECKING:
    from campos.runtime import CoreServices, UserSession

logger = logging.getLogger(__name__)


def _status(raw: Any) -> AuthorizationStatus:
    try:
        return AuthorizationStatus(str(raw))
    except ValueError:
        return AuthorizationStatus.NOT_DETERMINED


def parse_positions(data: Any) -> List[Position]:
    """Accept ``{"positions": [...]}`` or a single ``{"lat", "lon", "accuracy_m"}``."""
    if not isinstance(data, dict):
        return []
    raw_items = data.get("positions")
    items = raw_items if isinstance(raw_items, list) else [data]
    positions: List[Position] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            lat = float(item.get("lat"))
            lon = float(item.get("lon"))
        except (TypeError, ValueError):
            continue
        if not valid_coordinate(lat, lon):
            continue
        accuracy = item.get("accuracy_m")
        try:
            accuracy_m = float(accuracy) if accuracy is not None else None
        except (TypeError, ValueError):
            accuracy_m = None
        positions.append(Position(lat, lon, accuracy_m))
    return positions


class DeviceChannel:
    """LocationPlatform and LocalNotifier for one connected device."""

    def __init__(self, namespace: "GeofenceNamespace", sid: str) -> None:
        self._namespace = namespace
        self.sid = sid
        self.notification_status = AuthorizationStatus.NOT_DETERMINED

    async def _send(self, event: str, payload: Optional[dict] = None) -> None:
        await self._namespace.emit(event, payload or {}, room=self.sid)

    async def request_location(self) -> None:
        await self._send("location:request")

    async def start_monitoring(self, region: MonitoredRegion) -> None:
        await self._send("monitor:start", region.to_payload())

    async def stop_monitoring(self, region_id: str) -> None:
        await self._send("monitor:stop", {"id": region_id})

    async def stop_all_monitoring(self) -> None:
        await self._send("monitor:stop_all")

    async def request_state(self, region_id: str) -> None:
        await self._send("state:request", {"id": region_id})

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
        payload: Dict[str, Any] = {"id": identifier, "title": title, "body": body, "repeats_daily": repeats_daily}
        if after_seconds is not None:
            payload["after_seconds"] = after_seconds
        if at is not None:
            payload["at"] = {"hour": at.hour, "minute": at.minute}
        await self._send("notify:schedule", payload)

    async def cancel_pending(self, identifier: str) -> None:
        await self._send("notify:cancel", {"id": identifier})

    async def authorization_status(self) -> AuthorizationStatus:
        return self.notification_status


class GeofenceNamespace(socketio.AsyncNamespace):
    def __init__(self, namespace: str = "/geofence") -> None:
        super().__init__(namespace)
        self._core: Optional["CoreServices"] = None
        self._channels: Dict[str, DeviceChannel] = {}

    def bind(self, core: "CoreServices") -> None:
        self._core = core

    @property
    def core(self) -> "CoreServices":
        if self._core is None:
            raise RuntimeError("geofence namespace used before startup")
        return self._core

    async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
        obs_metrics.socket_connected(self.namespace)
        user_id = resolve_socket_user(auth, socket_headers(environ))
        if not user_id:
            obs_metrics.socket_disconnected(self.namespace)
            raise ConnectionRefusedError("unauthorized")
        channel = DeviceChannel(self, sid)
        self._channels[sid] = channel
        await self.core.sessions.open(sid, user_id, channel, channel)
        logger.info("geofence connect", extra={"sid": sid})
        await self.emit("sys.ok", {"me": {"id": user_id}}, room=sid)

    async def on_disconnect(self, sid: str, *args) -> None:
        obs_metrics.socket_disconnected(self.namespace)
        self._channels.pop(sid, None)
        if self._core is not None:
            await self._core.sessions.close(sid)
        logger.info("geofence disconnect", extra={"sid": sid})

    def _session(self, sid: str, event: str) -> Optional["UserSession"]:
        obs_metrics.socket_event(self.namespace, event)
        return self.core.sessions.get(sid)

    async def _guard(self, sid: str, session: "UserSession", coro) -> Optional[dict]:
        tokens = obs_logging.bind_context(user_id=session.user_id, device_sid=sid)
        try:
            return await coro
        except CoreError as exc:
            await self.emit("sys.warn", {"code": exc.reason, "message": exc.message}, room=sid)
            return {"ok": False, "error": exc.reason}
        finally:
            obs_logging.reset_context(tokens)

    async def on_position(self, sid: str, data: Any) -> None:
        session = self._session(sid, "position")
        if session is None:
            return
        positions = parse_positions(data)
        if not positions:
            await self.emit("sys.warn", {"code": "invalid_payload"}, room=sid)
            return
        await self._guard(sid, session, session.watcher.on_positions(positions))

    async def on_location_error(self, sid: str, data: Any) -> None:
        session = self._session(sid, "location_error")
        if session is None:
            return
        error = str((data or {}).get("error") or "unknown") if isinstance(data, dict) else "unknown"
        await self._guard(sid, session, session.watcher.on_location_error(error))

    async def on_region_enter(self, sid: str, data: Any) -> None:
        session = self._session(sid, "region_enter")
        region_id = (data or {}).get("id") if isinstance(data, dict) else None
        if session is None or not region_id:
            return
        await self._guard(sid, session, session.watcher.on_region_entered(str(region_id)))

    async def on_region_exit(self, sid: str, data: Any) -> None:
        session = self._session(sid, "region_exit")
        region_id = (data or {}).get("id") if isinstance(data, dict) else None
        if session is None or not region_id:
            return
        await self._guard(sid, session, session.watcher.on_region_exited(str(region_id)))

    async def on_region_state(self, sid: str, data: Any) -> None:
        session = self._session(sid, "region_state")
        if session is None or not isinstance(data, dict) or not data.get("id"):
            return
        try:
            state = RegionState(str(data.get("state")))
        except ValueError:
            state = RegionState.UNKNOWN
        await self._guard(sid, session, session.watcher.on_region_state(str(data["id"]), state))

    async def on_monitoring_started(self, sid: str, data: Any) -> None:
        session = self._session(sid, "monitoring_started")
        if session is None or not isinstance(data, dict) or not data.get("id"):
            return
        await self._guard(sid, session, session.watcher.on_monitoring_started(str(data["id"])))

    async def on_monitoring_failed(self, sid: str, data: Any) -> None:
        session = self._session(sid, "monitoring_failed")
        if session is None or not isinstance(data, dict) or not data.get("id"):
            return
        error = str(data.get("error") or "unknown")
        await self._guard(sid, session, session.watcher.on_monitoring_failed(str(data["id"]), error))

    async def on_authorization(self, sid: str, data: Any) -> None:
        session = self._session(sid, "authorization")
        if session is None or not isinstance(data, dict):
            return
        channel = self._channels.get(sid)
        if channel is not None and "notifications" in data:
            channel.notification_status = _status(data["notifications"])
        if "location" in data:
            await self._guard(sid, session, session.watcher.on_authorization_changed(_status(data["location"])))

    async def on_auto_checkin(self, sid: str, data: Any) -> Optional[dict]:
        session = self._session(sid, "auto_checkin")
        if session is None:
            return None
        enabled = bool((data or {}).get("enabled")) if isinstance(data, dict) else False

        async def _toggle() -> dict:
            await session.checkin.set_enabled(enabled)
            return {"ok": True, "enabled": session.checkin.enabled}

        return await self._guard(sid, session, _toggle())

    async def on_foreground(self, sid: str, data: Any = None) -> Optional[dict]:
        session = self._session(sid, "foreground")
        if session is None:
            return None

        async def _foreground() -> dict:
            refreshed = await session.checkin.on_foreground()
            await self.core.progress.recompute(session.user_id)
            return {"ok": True, "reselected": refreshed}

        return await self._guard(sid, session, _foreground())

    async def on_catalog_refresh(self, sid: str, data: Any = None) -> Optional[dict]:
        session = self._session(sid, "catalog_refresh")
        if session is None:
            return None
        force = bool((data or {}).get("force")) if isinstance(data, dict) else False

        async def _refresh() -> dict:
            count = await session.checkin.refresh_catalog(force=force)
            return {"ok": True, "places": count}

        return await self._guard(sid, session, _refresh())

    async def on_mark_nearby(self, sid: str, data: Any) -> Optional[dict]:
        """Manual marking gated on a fresh one-shot fix from this device."""
        session = self._session(sid, "mark_nearby")
        place_id = (data or {}).get("place_id") if isinstance(data, dict) else None
        if session is None or not place_id:
            return None

        async def _mark() -> dict:
            place = await self.core.catalog.get(str(place_id))
            if place is None:
                return {"ok": False, "error": "not_found"}
            if session.watcher.authorization.refused:
                raise PermissionDenied("location access refused; mark places from the list instead")
            position = await session.watcher.request_one_shot_position()
            visit_id = await self.core.ledger.mark_visited_nearby(session.user_id, place, position)
            return {"ok": True, "visit_id": visit_id}

        return await self._guard(sid, session, _mark())
