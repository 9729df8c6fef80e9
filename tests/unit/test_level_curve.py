from campos.domain.progress.curve import LevelCurve


def test_thresholds_follow_arithmetic_series():
    curve = LevelCurve(base=100, growth=50)
    assert curve.xp_needed_to_reach(1) == 0
    assert curve.xp_needed_to_reach(2) == 100
    assert curve.xp_needed_to_reach(3) == 250
    assert curve.xp_needed_to_reach(4) == 450
    assert curve.xp_span_for_level(3) == 200


def test_level_and_next_threshold():
    curve = LevelCurve(base=100, growth=50)
    assert curve.level_and_next_threshold(0) == (1, 100)
    assert curve.level_and_next_threshold(99) == (1, 100)
    assert curve.level_and_next_threshold(100) == (2, 250)
    assert curve.level_and_next_threshold(110) == (2, 250)
    assert curve.level_and_next_threshold(250) == (3, 450)


def test_level_search_stops_at_cap():
    curve = LevelCurve(base=100, growth=50, max_level=3)
    level, next_threshold = curve.level_and_next_threshold(10**9)
    assert level == 3
    assert next_threshold == curve.xp_needed_to_reach(4)


def test_in_level_progress():
    curve = LevelCurve(base=100, growth=50)
    assert curve.in_level_progress(110) == (10, 150)
    assert curve.in_level_progress(0) == (0, 100)
