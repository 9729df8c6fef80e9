"""Check-then-write reconciliation of visits against the remote store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Set

from campos.domain.errors import CoreError, InvalidCoordinate, NotAuthenticated, NotNearby, PositionUnavailable
from campos.domain.events import EventBus, VisitsChanged
from campos.domain.places.models import Place, Position
from campos.domain.progress.service import ProgressEngine
from campos.domain.visits.timestamps import format_timestamp, start_of_day, utcnow
from campos.infra.store import RemoteStore
from campos.obs import metrics as obs_metrics
from campos.settings import settings

logger = logging.getLogger(__name__)


class RecordOutcome(str, Enum):
    CREATED = "created"
    ALREADY_EXISTED = "already_existed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class RecordResult:
    outcome: RecordOutcome
    visit_id: Optional[str] = None
    reason: Optional[str] = None

    @property
    def created(self) -> bool:
        return self.outcome is RecordOutcome.CREATED


def _require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise NotAuthenticated()
    return user_id


class VisitLedger:
    """One visit per (user, place, reference day), best effort.

    The day check and the insert are separate remote calls, so two
    simultaneous triggers can both write. Progress counts distinct places
    and days, which tolerates such duplicates.
    """

    def __init__(
        self,
        store: RemoteStore,
        progress: ProgressEngine,
        bus: EventBus,
        *,
        visit_radius_m: Optional[float] = None,
        max_accuracy_m: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._progress = progress
        self._bus = bus
        self.visit_radius_m = visit_radius_m if visit_radius_m is not None else settings.visit_radius_m
        self.max_accuracy_m = max_accuracy_m if max_accuracy_m is not None else settings.visit_max_accuracy_m
        self._clock = clock

    async def has_visit_today(self, user_id: str, place_id: str, now: Optional[datetime] = None) -> bool:
        user_id = _require_user(user_id)
        since = start_of_day(now or self._clock())
        rows = await self._store.select(
            "visits",
            eq={"user_id": user_id, "place_id": place_id},
            gte={"created_at": format_timestamp(since)},
            limit=1,
        )
        return bool(rows)

    async def record_visit_if_absent(
        self,
        user_id: Optional[str],
        place_id: str,
        *,
        place_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RecordResult:
        """Insert today's visit unless one exists. Never raises for store failures."""
        if not user_id:
            obs_metrics.inc_visit_outcome("failed")
            return RecordResult(RecordOutcome.FAILED, reason=NotAuthenticated.reason)
        now = now or self._clock()
        try:
            if await self.has_visit_today(user_id, place_id, now):
                obs_metrics.inc_visit_outcome("already_existed")
                logger.info("visit already recorded today", extra={"place_id": place_id})
                return RecordResult(RecordOutcome.ALREADY_EXISTED)
            row = await self._store.insert(
                "visits",
                {"user_id": user_id, "place_id": place_id, "created_at": format_timestamp(now)},
            )
        except CoreError as exc:
            obs_metrics.inc_visit_outcome("failed")
            logger.warning("visit not recorded", extra={"place_id": place_id, "reason": exc.reason})
            return RecordResult(RecordOutcome.FAILED, reason=exc.reason)
        obs_metrics.inc_visit_outcome("created")
        logger.info("visit recorded", extra={"place_id": place_id})
        await self._after_change(user_id, place_id, "created", place_name)
        return RecordResult(RecordOutcome.CREATED, visit_id=str(row.get("id")) if row.get("id") else None)

    async def mark_visited(self, user_id: Optional[str], place_id: str, *, place_name: Optional[str] = None) -> str:
        """Explicit user action: insert without the same-day check."""
        user_id = _require_user(user_id)
        row = await self._store.insert(
            "visits",
            {"user_id": user_id, "place_id": place_id, "created_at": format_timestamp(self._clock())},
        )
        obs_metrics.inc_visit_outcome("marked")
        await self._after_change(user_id, place_id, "marked", place_name)
        return str(row.get("id") or "")

    def check_proximity(self, place: Place, position: Position) -> float:
        """Distance to ``place`` in metres, or a typed failure when too far or too vague."""
        if place.coordinate is None:
            raise InvalidCoordinate(f"place {place.id} has no coordinate")
        accuracy = position.accuracy_m
        if accuracy is None or accuracy < 0 or accuracy > self.max_accuracy_m:
            raise PositionUnavailable("location accuracy too poor", reason="poor_accuracy")
        distance = position.coordinate.distance_to(place.coordinate)
        if distance > self.visit_radius_m:
            raise NotNearby(distance, self.visit_radius_m)
        return distance

    async def mark_visited_nearby(self, user_id: Optional[str], place: Place, position: Optional[Position]) -> str:
        user_id = _require_user(user_id)
        if position is None:
            raise PositionUnavailable("no location fix")
        self.check_proximity(place, position)
        return await self.mark_visited(user_id, place.id, place_name=place.name)

    async def unmark_visited(self, user_id: Optional[str], place_id: str) -> int:
        user_id = _require_user(user_id)
        removed = await self._store.delete("visits", eq={"user_id": user_id, "place_id": place_id})
        obs_metrics.inc_visit_outcome("unmarked")
        logger.info("visits removed", extra={"place_id": place_id, "removed": removed})
        await self._after_change(user_id, place_id, "unmarked", None)
        return removed

    async def is_visited(self, user_id: Optional[str], place_id: str) -> bool:
        user_id = _require_user(user_id)
        rows = await self._store.select("visits", eq={"user_id": user_id, "place_id": place_id}, limit=1)
        return bool(rows)

    async def visited_place_ids(self, user_id: Optional[str]) -> Set[str]:
        user_id = _require_user(user_id)
        rows = await self._store.select("visits", eq={"user_id": user_id})
        return {str(row["place_id"]) for row in rows}

    async def _after_change(self, user_id: str, place_id: str, action: str, place_name: Optional[str]) -> None:
        await self._bus.publish(VisitsChanged(user_id=user_id, place_id=place_id, action=action, place_name=place_name))
        try:
            await self._progress.recompute(user_id)
        except CoreError:
            # The visit write stands; the next recompute catches up.
            logger.warning("progress recompute after visit change failed", extra={"place_id": place_id}, exc_info=True)
