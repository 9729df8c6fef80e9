"""Typed publish/subscribe channel between the core components."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)


class RegionState(str, Enum):
    INSIDE = "inside"
    OUTSIDE = "outside"
    UNKNOWN = "unknown"


class AuthorizationStatus(str, Enum):
    NOT_DETERMINED = "not_determined"
    DENIED = "denied"
    RESTRICTED = "restricted"
    WHEN_IN_USE = "when_in_use"
    ALWAYS = "always"

    @property
    def allowed(self) -> bool:
        return self in (AuthorizationStatus.WHEN_IN_USE, AuthorizationStatus.ALWAYS)

    @property
    def refused(self) -> bool:
        return self in (AuthorizationStatus.DENIED, AuthorizationStatus.RESTRICTED)


@dataclass(frozen=True, slots=True)
class PositionUpdated:
    user_id: str
    latitude: float
    longitude: float
    accuracy_m: Optional[float] = None
    device_sid: Optional[str] = None


@dataclass(frozen=True, slots=True)
class RegionEntered:
    user_id: str
    region_id: str
    device_sid: Optional[str] = None


@dataclass(frozen=True, slots=True)
class RegionExited:
    user_id: str
    region_id: str
    device_sid: Optional[str] = None


@dataclass(frozen=True, slots=True)
class RegionStateDetermined:
    user_id: str
    region_id: str
    state: RegionState
    device_sid: Optional[str] = None


@dataclass(frozen=True, slots=True)
class MonitoringStarted:
    user_id: str
    region_id: str
    device_sid: Optional[str] = None


@dataclass(frozen=True, slots=True)
class AuthorizationChanged:
    user_id: str
    status: AuthorizationStatus
    previous: AuthorizationStatus
    device_sid: Optional[str] = None


@dataclass(frozen=True, slots=True)
class VisitsChanged:
    user_id: str
    place_id: str
    action: str  # created | marked | unmarked
    place_name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ProgressUpdated:
    user_id: str
    total_xp: int
    level: int
    next_level_xp: int
    places_visited: int
    regions_visited: int
    day_streak: int
    daily_streak: int
    daily_xp: int
    has_claimed_today: bool
    newly_unlocked: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class AchievementsUnlocked:
    user_id: str
    achievement_ids: Tuple[str, ...]


E = TypeVar("E")
Handler = Callable[[E], Awaitable[None]]


class EventBus:
    """Deliver events to handlers registered per event type.

    Handlers run in subscription order. A failing handler is logged and does
    not affect the publisher or later handlers.
    """

    def __init__(self) -> None:
        self._handlers: Dict[type, List[Handler]] = {}

    def subscribe(self, event_type: Type[E], handler: Handler) -> Callable[[], None]:
        handlers = self._handlers.setdefault(event_type, [])
        handlers.append(handler)

        def _unsubscribe() -> None:
            try:
                handlers.remove(handler)
            except ValueError:
                pass

        return _unsubscribe

    async def publish(self, event: object) -> None:
        for handler in list(self._handlers.get(type(event), ())):
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    "event handler failed",
                    extra={"event": type(event).__name__, "handler": getattr(handler, "__qualname__", repr(handler))},
                )
