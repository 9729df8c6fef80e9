"""Progress records and the derived snapshot."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional, Tuple

from campos.domain.events import ProgressUpdated
from campos.domain.visits.timestamps import parse_day, parse_timestamp


@dataclass(frozen=True, slots=True)
class Achievement:
    id: str
    title: str
    condition: str
    xp_reward: int
    description: str = ""

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Achievement":
        return cls(
            id=str(row["id"]),
            title=str(row.get("title") or ""),
            condition=str(row.get("condition") or ""),
            xp_reward=int(row.get("xp_reward") or 0),
            description=str(row.get("description") or ""),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "condition": self.condition,
            "xp_reward": self.xp_reward,
        }


@dataclass(slots=True)
class DailyAccessRecord:
    id: str
    user_id: str
    last_access: datetime
    streak: int = 1
    last_claimed_reward: Optional[date] = None
    reward_xp_total: int = 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "DailyAccessRecord":
        claimed = row.get("last_claimed_reward")
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            last_access=parse_timestamp(row["last_access"]),
            streak=int(row.get("streak") or 1),
            last_claimed_reward=parse_day(claimed) if claimed else None,
            reward_xp_total=int(row.get("reward_xp_total") or 0),
        )


@dataclass(frozen=True, slots=True)
class ProgressSnapshot:
    user_id: str
    total_xp: int
    level: int
    next_level_xp: int
    places_visited: int
    regions_visited: int
    day_streak: int
    daily_streak: int = 1
    daily_xp: int = 0
    has_claimed_today: bool = False
    newly_unlocked: Tuple[str, ...] = field(default=(), compare=False)

    def to_row(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "total_xp": self.total_xp,
            "level": self.level,
            "next_level_xp": self.next_level_xp,
            "places_visited": self.places_visited,
            "regions_visited": self.regions_visited,
            "day_streak": self.day_streak,
        }

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["newly_unlocked"] = list(self.newly_unlocked)
        return payload

    def to_event(self) -> ProgressUpdated:
        return ProgressUpdated(**asdict(self))
