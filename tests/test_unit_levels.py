"""Unit tests for services/level_service.py — no database required."""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-unit-tests")

from chorechamp.services.level_service import (  # noqa: E402
    LEVEL_DEFINITIONS,
    calculate_level_progress,
    get_level_from_points,
    get_level_info,
    get_next_level,
)


class TestLevelFromPoints:
    def test_zero_points_is_level_one(self):
        level = get_level_from_points(0)
        assert level.level == 1
        assert level.title == "Neuling"

    def test_negative_points_floor_at_level_one(self):
        assert get_level_from_points(-50).level == 1

    def test_exact_threshold_reaches_level(self):
        assert get_level_from_points(100).level == 2
        assert get_level_from_points(99).level == 1

    def test_between_thresholds(self):
        assert get_level_from_points(2499).level == 6
        assert get_level_from_points(2500).level == 7

    def test_beyond_max_stays_at_max(self):
        level = get_level_from_points(50_000)
        assert level.level == 10
        assert level.title == "ChoreChamp"

    def test_thresholds_strictly_increasing(self):
        thresholds = [d.points_required for d in LEVEL_DEFINITIONS]
        assert thresholds == sorted(set(thresholds))


class TestNextLevel:
    def test_next_level(self):
        assert get_next_level(1).level == 2
        assert get_next_level(9).points_required == 10000

    def test_no_next_level_at_max(self):
        assert get_next_level(10) is None


class TestLevelProgress:
    def test_halfway(self):
        assert calculate_level_progress(200, 100, 300) == 50

    def test_clamped_below(self):
        assert calculate_level_progress(50, 100, 300) == 0

    def test_clamped_above(self):
        assert calculate_level_progress(400, 100, 300) == 100

    def test_malformed_table_is_complete(self):
        assert calculate_level_progress(150, 300, 300) == 100
        assert calculate_level_progress(150, 300, 100) == 100


class TestLevelInfo:
    def test_new_user(self):
        info = get_level_info(0)
        assert info["level"]["level"] == 1
        assert info["next_level"]["level"] == 2
        assert info["progress"]["points_to_next_level"] == 100
        assert info["progress"]["progress_percentage"] == 0
        assert info["progress"]["is_max_level"] is False
        assert len(info["levels"]) == 10

    def test_max_level(self):
        info = get_level_info(12_000)
        assert info["level"]["level"] == 10
        assert info["next_level"] is None
        assert info["progress"]["is_max_level"] is True
        assert info["progress"]["progress_percentage"] == 100
        assert info["progress"]["points_to_next_level"] == 0
