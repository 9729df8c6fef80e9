from datetime import date

import pytest

from campos.domain.errors import DataAnomaly
from campos.domain.progress.rules import (
    Metric,
    VisitStats,
    consecutive_days,
    daily_xp_value,
    next_daily_streak,
    parse_condition,
    visit_stats,
)


def test_parse_condition():
    condition = parse_condition("places_visited >= 5")
    assert condition.metric is Metric.PLACES_VISITED
    assert condition.threshold == 5
    assert str(condition) == "places_visited>=5"
    assert condition.satisfied_by(VisitStats(places_visited=5))
    assert not condition.satisfied_by(VisitStats(places_visited=4))


@pytest.mark.parametrize("text", ["", "places_visited > 5", "friends>=3", "places_visited>=-1"])
def test_parse_condition_rejects_unknown_forms(text):
    with pytest.raises(DataAnomaly) as exc:
        parse_condition(text)
    assert exc.value.kind == "condition"


def test_consecutive_days_counts_back_from_latest():
    days = [date(2024, 5, 1), date(2024, 5, 3), date(2024, 5, 4), date(2024, 5, 4), date(2024, 5, 5)]
    assert consecutive_days(days) == 3
    assert consecutive_days([]) == 0
    assert consecutive_days([date(2024, 5, 1)]) == 1


def test_visit_stats_counts_distinct_places_and_regions():
    stats = visit_stats(
        ["a", "a", "b", "c"],
        [date(2024, 5, 1), date(2024, 5, 2)],
        {"a": "north", "b": "north", "c": None},
    )
    assert stats == VisitStats(places_visited=3, regions_visited=1, day_streak=2)


def test_daily_xp_table():
    assert [daily_xp_value(day) for day in range(1, 7)] == [20, 30, 40, 50, 70, 70]
    assert daily_xp_value(9) == 20


def test_next_daily_streak():
    today = date(2024, 5, 10)
    assert next_daily_streak(date(2024, 5, 9), 2, today, 6) == 3
    assert next_daily_streak(date(2024, 5, 9), 6, today, 6) == 6
    assert next_daily_streak(date(2024, 5, 7), 4, today, 6) == 1
