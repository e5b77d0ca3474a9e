"""Tests for ActivityClassifier — speed bands and motion-energy fallback."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import pytest

from drivelog.core.storage.models import MotionSample
from drivelog.domains.driving.domain_logic.activity_classifier import ActivityClassifier
from drivelog.domains.driving.domain_logic.tracking_models import (
    MPH_10,
    ActivityState,
    TrackingConfig,
)

T0 = datetime(2024, 5, 1, 8, 0, 0, tzinfo=timezone.utc)


def _motion(seconds: float, magnitude: float) -> MotionSample:
    return MotionSample(timestamp=T0 + timedelta(seconds=seconds),
                        acceleration=(magnitude, 0.0, 0.0))


@pytest.fixture
def classifier() -> ActivityClassifier:
    return ActivityClassifier(TrackingConfig())


class TestSpeedBands:
    @pytest.mark.parametrize(
        ("speed", "expected"),
        [
            (0.0, ActivityState.STATIONARY),
            (0.49, ActivityState.STATIONARY),
            (1.0, ActivityState.WALKING),
            (3.0, ActivityState.RUNNING),
            (MPH_10, ActivityState.DRIVING),
            (30.0, ActivityState.DRIVING),
        ],
    )
    def test_bands(self, classifier, speed, expected):
        assert classifier.classify(speed) is expected

    def test_speed_wins_over_motion(self, classifier):
        assert classifier.classify(20.0, _motion(0, 0.0)) is ActivityState.DRIVING


class TestMotionFallback:
    def test_no_inputs_is_unknown(self, classifier):
        assert classifier.classify(None) is ActivityState.UNKNOWN

    @pytest.mark.parametrize("bad_speed", [-1.0, math.nan, None])
    def test_invalid_speed_uses_motion(self, classifier, bad_speed):
        assert classifier.classify(bad_speed, _motion(0, 0.01)) is ActivityState.STATIONARY

    def test_energy_bands(self, classifier):
        assert classifier.classify(None, _motion(0, 0.2)) is ActivityState.WALKING

        hard = ActivityClassifier(TrackingConfig())
        assert hard.classify(None, _motion(0, 0.8)) is ActivityState.RUNNING

    def test_window_averages(self):
        classifier = ActivityClassifier(TrackingConfig(motion_window=2))
        classifier.observe(_motion(0, 1.0))
        classifier.observe(_motion(1, 0.0))
        classifier.observe(_motion(2, 0.0))
        assert classifier.motion_energy == 0.0

    def test_stale_reading_ignored(self, classifier):
        classifier.observe(_motion(5, 0.2))
        classifier.observe(_motion(1, 5.0))
        assert classifier.motion_energy == pytest.approx(0.2)


class TestRobustness:
    def test_never_raises(self, classifier):
        assert classifier.classify("fast") is ActivityState.UNKNOWN

    def test_reconfigure_changes_thresholds(self, classifier):
        classifier.reconfigure(TrackingConfig(walk_threshold=0.1, run_threshold=0.2,
                                              driving_threshold=0.3))
        assert classifier.classify(0.5) is ActivityState.DRIVING
