"""Cumulative XP thresholds per level (arithmetic series)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from campos.settings import settings


@dataclass(frozen=True, slots=True)
class LevelCurve:
    """Reaching level L from L-1 costs ``base + growth * (L - 2)`` XP.

    ``max_level`` bounds the level search; thresholds themselves are
    defined for any level.
    """

    base: int = 100
    growth: int = 50
    max_level: int = 200

    @classmethod
    def from_settings(cls) -> "LevelCurve":
        return cls(base=settings.level_base_xp, growth=settings.level_growth_xp, max_level=settings.level_cap)

    def xp_needed_to_reach(self, level: int) -> int:
        if level <= 1:
            return 0
        n = level - 1
        return n * (2 * self.base + (n - 1) * self.growth) // 2

    def xp_span_for_level(self, level: int) -> int:
        return self.base + self.growth * (max(level, 1) - 1)

    def level_and_next_threshold(self, total_xp: int) -> Tuple[int, int]:
        level = 1
        while level < self.max_level and total_xp >= self.xp_needed_to_reach(level + 1):
            level += 1
        return level, self.xp_needed_to_reach(level + 1)

    def in_level_progress(self, total_xp: int) -> Tuple[int, int]:
        """XP earned inside the current level and the size of that level."""
        level, next_threshold = self.level_and_next_threshold(total_xp)
        floor = self.xp_needed_to_reach(level)
        return max(0, total_xp - floor), next_threshold - floor
