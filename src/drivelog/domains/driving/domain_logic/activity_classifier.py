"""Activity classification from the latest speed and motion readings.

Speed decides whenever it is valid. Motion energy (mean user-acceleration
magnitude over a short window) is consulted only when GPS speed is missing,
so an idling vehicle with no fix reads as stationary rather than driving.
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime

from drivelog.core.storage.models import MotionSample, is_valid_speed
from drivelog.domains.driving.domain_logic.tracking_models import ActivityState, TrackingConfig

logger = logging.getLogger(__name__)


class ActivityClassifier:
    """Maps (speed, motion) to an ActivityState. Never raises."""

    def __init__(self, config: TrackingConfig | None = None) -> None:
        self._config = config or TrackingConfig()
        self._window: deque[float] = deque(maxlen=self._config.motion_window)
        self._last_motion_at: datetime | None = None

    @property
    def config(self) -> TrackingConfig:
        return self._config

    def reconfigure(self, config: TrackingConfig) -> None:
        """Adopt new thresholds; the smoothing window keeps its newest readings."""
        self._config = config
        self._window = deque(self._window, maxlen=config.motion_window)

    def classify(
        self,
        latest_speed: float | None,
        latest_motion: MotionSample | None = None,
    ) -> ActivityState:
        """Classify the current activity.

        Args:
            latest_speed: Most recent GPS speed in m/s, or None/negative/NaN
                when no usable fix is available.
            latest_motion: Most recent motion reading, if any. A reading newer
                than the last one seen joins the smoothing window.
        """
        try:
            if latest_motion is not None:
                self.observe(latest_motion)
            if is_valid_speed(latest_speed):
                return self._from_speed(float(latest_speed))
            return self._from_motion()
        except Exception:
            logger.exception("Activity classification failed; reporting unknown")
            return ActivityState.UNKNOWN

    @property
    def motion_energy(self) -> float | None:
        """Mean acceleration magnitude (g) over the window, None when empty."""
        if not self._window:
            return None
        return sum(self._window) / len(self._window)

    def observe(self, motion: MotionSample) -> None:
        """Add a motion reading to the smoothing window; stale readings are ignored."""
        if self._last_motion_at is not None and motion.timestamp <= self._last_motion_at:
            return
        self._last_motion_at = motion.timestamp
        self._window.append(motion.acceleration_magnitude)

    def _from_speed(self, speed: float) -> ActivityState:
        cfg = self._config
        if speed < cfg.walk_threshold:
            return ActivityState.STATIONARY
        if speed < cfg.run_threshold:
            return ActivityState.WALKING
        if speed < cfg.driving_threshold:
            return ActivityState.RUNNING
        return ActivityState.DRIVING

    def _from_motion(self) -> ActivityState:
        energy = self.motion_energy
        if energy is None:
            return ActivityState.UNKNOWN
        if energy < self._config.idle_energy:
            return ActivityState.STATIONARY
        if energy < self._config.walk_energy:
            return ActivityState.WALKING
        return ActivityState.RUNNING
