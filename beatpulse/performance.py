"""Frame-rate monitoring for adaptive effect selection."""

from collections import deque
from typing import Deque, List

import numpy as np

from .config import DEFAULT_CONFIG, MonitorConfig
from .logging_config import get_logger
from .models import PerformanceLevel

logger = get_logger(__name__)

# Recommended polling interval (seconds) for latency-insensitive per-frame work
RECOMMENDED_INTERVALS = {
    PerformanceLevel.LOW: 0.15,
    PerformanceLevel.MEDIUM: 0.1,
    PerformanceLevel.HIGH: 0.033,
}


class PerformanceMonitor:
    """Smoothed judgment of whether the host can absorb expensive effects.

    Frames are counted between samples; every sample_interval seconds the
    observed FPS is pushed into a fixed-size window and the window's mean and
    population standard deviation are recomputed. If frames stop arriving the
    last classification simply stays in place.
    """

    def __init__(self, config: MonitorConfig = None):
        self.config = config or DEFAULT_CONFIG.monitor
        self._history: Deque[float] = deque(maxlen=self.config.stability_sample_count)
        self.reset()

    def reset(self):
        """Drop all samples and return to the initial assumption."""
        self._history.clear()
        self._frame_count = 0
        self._time_accumulator = 0.0
        self.current_fps = self.config.initial_fps
        self.average_fps = self.config.initial_fps
        self.std_dev = 0.0
        self.is_stable = False
        self.level = self._classify(self.average_fps)

    def _classify(self, fps: float) -> PerformanceLevel:
        if fps >= self.config.high_fps_cutoff:
            return PerformanceLevel.HIGH
        if fps >= self.config.medium_fps_cutoff:
            return PerformanceLevel.MEDIUM
        return PerformanceLevel.LOW

    def record_frame(self, delta: float) -> bool:
        """Count one rendered frame.

        Args:
            delta: Unscaled time since the previous frame, in seconds.

        Returns:
            True if this frame closed a sample window.
        """
        self._frame_count += 1
        self._time_accumulator += max(0.0, delta)

        if self._time_accumulator < self.config.sample_interval:
            return False

        self.add_sample(self._frame_count / self._time_accumulator)
        self._frame_count = 0
        self._time_accumulator = 0.0
        return True

    def add_sample(self, fps: float):
        """Push a throughput measurement and reclassify."""
        previous_heavy = self.can_use_heavy_effects
        self.current_fps = fps
        self._history.append(fps)

        samples = np.asarray(self._history, dtype=float)
        self.average_fps = float(samples.mean())
        self.std_dev = float(samples.std())
        self.is_stable = (
            self.std_dev < self.config.stable_std_threshold
            and len(self._history) >= self.config.stability_sample_count
        )
        self.level = self._classify(self.average_fps)

        if self.can_use_heavy_effects != previous_heavy:
            logger.debug(
                "Heavy effects %s (avg %.1f fps, std %.2f)",
                "allowed" if self.can_use_heavy_effects else "restricted",
                self.average_fps,
                self.std_dev,
            )

    @property
    def samples(self) -> List[float]:
        return list(self._history)

    @property
    def can_use_heavy_effects(self) -> bool:
        return self.is_stable and self.average_fps >= self.config.stable_fps_threshold

    def should_use_heavy_effect(self) -> bool:
        return self.can_use_heavy_effects and self.level >= PerformanceLevel.MEDIUM

    def recommended_update_interval(self) -> float:
        return RECOMMENDED_INTERVALS[self.level]
