"""Declarative achievement conditions and streak arithmetic."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional

from campos.domain.errors import DataAnomaly

DAILY_XP: Dict[int, int] = {1: 20, 2: 30, 3: 40, 4: 50, 5: 70, 6: 70}
DEFAULT_DAILY_XP = 20

_CONDITION_RE = re.compile(r"^\s*([a-z_]+)\s*>=\s*(\d+)\s*$")


class Metric(str, Enum):
    PLACES_VISITED = "places_visited"
    REGIONS_VISITED = "regions_visited"
    DAYS_VISITED = "days_visited"


@dataclass(frozen=True, slots=True)
class VisitStats:
    places_visited: int = 0
    regions_visited: int = 0
    day_streak: int = 0

    def value(self, metric: Metric) -> int:
        if metric is Metric.PLACES_VISITED:
            return self.places_visited
        if metric is Metric.REGIONS_VISITED:
            return self.regions_visited
        return self.day_streak


@dataclass(frozen=True, slots=True)
class Condition:
    metric: Metric
    threshold: int

    def satisfied_by(self, stats: VisitStats) -> bool:
        return stats.value(self.metric) >= self.threshold

    def __str__(self) -> str:
        return f"{self.metric.value}>={self.threshold}"


def parse_condition(text: str) -> Condition:
    match = _CONDITION_RE.match(text or "")
    if not match:
        raise DataAnomaly(f"unparseable condition {text!r}", kind="condition")
    try:
        metric = Metric(match.group(1))
    except ValueError:
        raise DataAnomaly(f"unknown metric {match.group(1)!r}", kind="condition") from None
    return Condition(metric=metric, threshold=int(match.group(2)))


def daily_xp_value(streak_day: int) -> int:
    return DAILY_XP.get(streak_day, DEFAULT_DAILY_XP)


def consecutive_days(days: Iterable[date]) -> int:
    """Back-to-back days counted from the most recent one, stopping at the first gap."""
    ordered = sorted(set(days), reverse=True)
    if not ordered:
        return 0
    streak = 1
    for newer, older in zip(ordered, ordered[1:]):
        if (newer - older).days != 1:
            break
        streak += 1
    return streak


def visit_stats(
    place_ids: Iterable[str],
    visit_days: Iterable[date],
    region_of: Mapping[str, Optional[str]],
) -> VisitStats:
    places = set(place_ids)
    regions = {region_of[pid] for pid in places if region_of.get(pid)}
    return VisitStats(
        places_visited=len(places),
        regions_visited=len(regions),
        day_streak=consecutive_days(visit_days),
    )


def next_daily_streak(last_access: date, streak: int, today: date, cap: int) -> int:
    """Streak after a day transition: +1 (capped) after exactly one day, else restart."""
    if (today - last_access).days == 1:
        return min(streak + 1, cap)
    return 1
