"""Derives XP, level, achievements and daily streak from the visit history."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from campos.domain.errors import DataAnomaly, NotAuthenticated, RewardAlreadyClaimed
from campos.domain.events import AchievementsUnlocked, EventBus
from campos.domain.places.service import PlaceCatalog
from campos.domain.progress.curve import LevelCurve
from campos.domain.progress.models import Achievement, DailyAccessRecord, ProgressSnapshot
from campos.domain.progress.rules import daily_xp_value, next_daily_streak, parse_condition, visit_stats
from campos.domain.visits.timestamps import day_of, format_timestamp, parse_timestamp, utcnow
from campos.infra.store import RemoteStore
from campos.obs import metrics as obs_metrics
from campos.settings import settings

logger = logging.getLogger(__name__)


def _require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise NotAuthenticated()
    return user_id


class ProgressEngine:
    """Recomputes a user's progress; safe to call any number of times.

    Every write is check-then-write, so repeated runs over unchanged
    visits produce the same snapshot and unlock nothing new.
    """

    def __init__(
        self,
        store: RemoteStore,
        catalog: PlaceCatalog,
        bus: EventBus,
        *,
        curve: Optional[LevelCurve] = None,
        xp_per_place: Optional[int] = None,
        welcome_enabled: Optional[bool] = None,
        welcome_id: Optional[str] = None,
        welcome_xp: Optional[int] = None,
        streak_cap: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._bus = bus
        self.curve = curve or LevelCurve.from_settings()
        self.xp_per_place = xp_per_place if xp_per_place is not None else settings.xp_per_place
        self.welcome_enabled = welcome_enabled if welcome_enabled is not None else settings.welcome_achievement_enabled
        self.welcome_id = welcome_id or settings.welcome_achievement_id
        self.welcome_xp = welcome_xp if welcome_xp is not None else settings.welcome_xp
        self.streak_cap = streak_cap if streak_cap is not None else settings.daily_streak_cap
        self._clock = clock

    # Achievements

    def _welcome(self) -> Achievement:
        return Achievement(
            id=self.welcome_id,
            title="Welcome",
            description="Joined and started exploring",
            condition="places_visited>=0",
            xp_reward=self.welcome_xp,
        )

    async def achievements(self) -> List[Achievement]:
        rows = await self._store.select("achievements")
        catalog = [Achievement.from_row(row) for row in rows]
        if self.welcome_enabled and not any(a.id == self.welcome_id for a in catalog):
            welcome = self._welcome()
            await self._store.insert("achievements", welcome.to_row())
            logger.info("welcome achievement restored", extra={"achievement_id": welcome.id})
            catalog.append(welcome)
        return catalog

    async def unlocked_ids(self, user_id: str) -> Set[str]:
        rows = await self._store.select("unlocked_achievements", eq={"user_id": _require_user(user_id)})
        return {str(row["achievement_id"]) for row in rows}

    async def _unlock(self, user_id: str, achievement: Achievement, now: datetime) -> bool:
        existing = await self._store.select(
            "unlocked_achievements",
            eq={"user_id": user_id, "achievement_id": achievement.id},
            limit=1,
        )
        if existing:
            return False
        await self._store.insert(
            "unlocked_achievements",
            {"user_id": user_id, "achievement_id": achievement.id, "unlocked_at": format_timestamp(now)},
        )
        return True

    # Daily access

    async def _daily_record(self, user_id: str) -> Optional[DailyAccessRecord]:
        rows = await self._store.select("daily_access", eq={"user_id": user_id})
        if not rows:
            return None
        records = sorted((DailyAccessRecord.from_row(row) for row in rows), key=lambda r: r.last_access, reverse=True)
        if len(records) > 1:
            keep, extra = records[0], records[1:]
            obs_metrics.inc_data_anomaly("daily_access_duplicate")
            logger.warning("collapsing duplicate daily access rows", extra={"duplicates": len(extra)})
            await self._store.delete("daily_access", in_={"id": [r.id for r in extra]})
            return keep
        return records[0]

    async def touch_daily_access(self, user_id: str, now: Optional[datetime] = None) -> Tuple[DailyAccessRecord, int, bool]:
        """Advance the access streak on a day transition.

        Returns the record, the reward available for its streak day and
        whether today's reward has been claimed.
        """
        user_id = _require_user(user_id)
        now = now or self._clock()
        today = day_of(now)
        record = await self._daily_record(user_id)
        if record is None:
            row = await self._store.insert(
                "daily_access",
                {
                    "user_id": user_id,
                    "last_access": format_timestamp(now),
                    "streak": 1,
                    "last_claimed_reward": None,
                    "reward_xp_total": 0,
                },
            )
            record = DailyAccessRecord.from_row(row)
        else:
            last_day = day_of(record.last_access)
            if last_day < today:
                record.streak = next_daily_streak(last_day, record.streak, today, self.streak_cap)
                record.last_access = now
                await self._store.update(
                    "daily_access",
                    {"last_access": format_timestamp(now), "streak": record.streak},
                    eq={"id": record.id},
                )
            elif last_day > today:
                logger.warning("daily access recorded in the future", extra={"last_access": format_timestamp(record.last_access)})
        claimed = record.last_claimed_reward == today
        return record, daily_xp_value(record.streak), claimed

    async def has_claimed_today(self, user_id: str, now: Optional[datetime] = None) -> bool:
        user_id = _require_user(user_id)
        record = await self._daily_record(user_id)
        if record is None:
            return False
        return record.last_claimed_reward == day_of(now or self._clock())

    # Snapshot

    async def current(self, user_id: str) -> Optional[Dict[str, Any]]:
        rows = await self._store.select("progress_snapshots", eq={"user_id": _require_user(user_id)})
        return rows[0] if rows else None

    async def _save_snapshot(self, snapshot: ProgressSnapshot, now: datetime) -> None:
        row = snapshot.to_row()
        row["updated_at"] = format_timestamp(now)
        existing = await self._store.select("progress_snapshots", eq={"user_id": snapshot.user_id})
        if not existing:
            await self._store.insert("progress_snapshots", row)
        elif len(existing) == 1:
            await self._store.update("progress_snapshots", row, eq={"id": existing[0]["id"]})
        else:
            obs_metrics.inc_data_anomaly("progress_duplicate")
            logger.warning("replacing duplicate progress rows", extra={"duplicates": len(existing)})
            await self._store.delete("progress_snapshots", eq={"user_id": snapshot.user_id})
            await self._store.insert("progress_snapshots", row)

    async def _publish(self, snapshot: ProgressSnapshot) -> None:
        await self._bus.publish(snapshot.to_event())
        if snapshot.newly_unlocked:
            await self._bus.publish(AchievementsUnlocked(user_id=snapshot.user_id, achievement_ids=snapshot.newly_unlocked))

    async def recompute(self, user_id: str) -> ProgressSnapshot:
        user_id = _require_user(user_id)
        now = self._clock()
        try:
            snapshot = await self._recompute(user_id, now)
        except Exception:
            obs_metrics.inc_progress_recompute("failed")
            raise
        obs_metrics.inc_progress_recompute("ok")
        await self._publish(snapshot)
        return snapshot

    async def _recompute(self, user_id: str, now: datetime) -> ProgressSnapshot:
        visits = await self._store.select("visits", eq={"user_id": user_id})
        place_ids: List[str] = []
        days = []
        for row in visits:
            place_ids.append(str(row["place_id"]))
            try:
                days.append(day_of(parse_timestamp(row.get("created_at"))))
            except DataAnomaly:
                obs_metrics.inc_data_anomaly("timestamp")
                logger.warning("visit with unreadable timestamp", extra={"visit_id": row.get("id")})
        catalog = await self._catalog.load()
        stats = visit_stats(place_ids, days, catalog.region_index())
        base_xp = stats.places_visited * self.xp_per_place

        achievements = await self.achievements()
        unlocked = await self.unlocked_ids(user_id)
        newly: List[str] = []
        for achievement in achievements:
            if achievement.id in unlocked:
                continue
            try:
                condition = parse_condition(achievement.condition)
            except DataAnomaly:
                obs_metrics.inc_data_anomaly("condition")
                logger.warning("skipping achievement with bad condition", extra={"achievement_id": achievement.id})
                continue
            if condition.satisfied_by(stats) and await self._unlock(user_id, achievement, now):
                unlocked.add(achievement.id)
                newly.append(achievement.id)
        if newly:
            obs_metrics.inc_achievements_unlocked(len(newly))
            logger.info("achievements unlocked", extra={"achievement_ids": newly})
        achievement_xp = sum(a.xp_reward for a in achievements if a.id in unlocked)

        record, daily_xp, claimed = await self.touch_daily_access(user_id, now)
        total_xp = base_xp + achievement_xp + record.reward_xp_total
        level, next_level_xp = self.curve.level_and_next_threshold(total_xp)
        snapshot = ProgressSnapshot(
            user_id=user_id,
            total_xp=total_xp,
            level=level,
            next_level_xp=next_level_xp,
            places_visited=stats.places_visited,
            regions_visited=stats.regions_visited,
            day_streak=stats.day_streak,
            daily_streak=record.streak,
            daily_xp=daily_xp,
            has_claimed_today=claimed,
            newly_unlocked=tuple(newly),
        )
        await self._save_snapshot(snapshot, now)
        return snapshot

    async def claim_daily_reward(self, user_id: str) -> ProgressSnapshot:
        """Add today's streak reward on top of the current total.

        Refuses a second claim on the same day.
        """
        user_id = _require_user(user_id)
        now = self._clock()
        record, reward, claimed = await self.touch_daily_access(user_id, now)
        if claimed:
            obs_metrics.inc_daily_reward("already_claimed")
            raise RewardAlreadyClaimed()
        await self._store.update(
            "daily_access",
            {"last_claimed_reward": day_of(now).isoformat(), "reward_xp_total": record.reward_xp_total + reward},
            eq={"id": record.id},
        )
        obs_metrics.inc_daily_reward("claimed")
        current = await self.current(user_id)
        if current is None:
            # Nothing persisted yet; the full derivation already includes the reward.
            return await self.recompute(user_id)
        total_xp = int(current.get("total_xp") or 0) + reward
        level, next_level_xp = self.curve.level_and_next_threshold(total_xp)
        snapshot = ProgressSnapshot(
            user_id=user_id,
            total_xp=total_xp,
            level=level,
            next_level_xp=next_level_xp,
            places_visited=int(current.get("places_visited") or 0),
            regions_visited=int(current.get("regions_visited") or 0),
            day_streak=int(current.get("day_streak") or 0),
            daily_streak=record.streak,
            daily_xp=reward,
            has_claimed_today=True,
        )
        await self._save_snapshot(snapshot, now)
        logger.info("daily reward claimed", extra={"reward_xp": reward, "streak": record.streak})
        await self._publish(snapshot)
        return snapshot
