"""Explicit wiring of detector, monitor and scheduler around one media source."""

import random
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from .config import DEFAULT_CONFIG, BeatPulseConfig
from .detector import BeatDetector
from .effects import EffectSink, ToggleEffect, build_effect_descriptors
from .logging_config import get_logger
from .models import (
    BeatEvent,
    DetectionMode,
    EffectName,
    EffectSelection,
    PerformanceLevel,
    PulseRecord,
)
from .performance import PerformanceMonitor
from .scheduler import EffectScheduler
from .spectrum import FileSpectrumSource
from .tasks import TaskQueue
from .timeline import EffectTimelineTracker

logger = get_logger(__name__)


@dataclass
class SimulationReport:
    """Outcome of an offline run over one media file."""

    source_name: str
    duration: float
    beats: List[BeatEvent]
    pulses: List[PulseRecord]
    final_mode: DetectionMode
    performance_level: PerformanceLevel
    average_fps: float
    timeline: List[EffectSelection] = field(default_factory=list)

    @property
    def pulse_counts(self) -> Dict[str, int]:
        """Pulses per effect name, most frequent first."""
        return dict(Counter(p.effect.value for p in self.pulses).most_common())

    @property
    def spectral_beats(self) -> int:
        return sum(1 for b in self.beats if not b.synthetic)


def default_sinks(clock: Optional[Callable[[], float]] = None) -> Dict[EffectName, ToggleEffect]:
    """One in-memory sink per known effect."""
    return {name: ToggleEffect(name, clock=clock) for name in EffectName}


class BeatSession:
    """Owns and connects every core component for one playback source.

    tick() is the single entry point of the cooperative loop: it samples the
    frame rate, runs due pulse releases and lets the detector run its cycle,
    whose beat listeners (the scheduler first) complete before tick() returns.
    """

    def __init__(
        self,
        source: FileSpectrumSource,
        sinks: Optional[Mapping[EffectName, Optional[EffectSink]]] = None,
        config: BeatPulseConfig = None,
        rng: random.Random = None,
        mute_probe: Optional[Callable[[], bool]] = None,
        record_pulses: bool = False,
    ):
        self.config = config or DEFAULT_CONFIG
        self.source = source
        self.sinks = sinks if sinks is not None else default_sinks(source.current_playback_time)

        self.tasks = TaskQueue()
        self.monitor = PerformanceMonitor(self.config.monitor)
        self.detector = BeatDetector(source, self.config.detection, mute_probe=mute_probe)
        self.tracker = EffectTimelineTracker(source)
        self.scheduler = EffectScheduler(
            build_effect_descriptors(self.sinks),
            self.monitor,
            self.tasks,
            source,
            config=self.config.scheduler,
            rng=rng,
            tracker=self.tracker,
            record_pulses=record_pulses,
        )

        self.beats: List[BeatEvent] = []
        self._mode = self.detector.mode
        self._listeners = [
            self.detector.add_listener(self.scheduler.on_beat),
            self.detector.add_listener(self.beats.append),
        ]

    def tick(self, now: float, frame_delta: float) -> Optional[BeatEvent]:
        """Advance the loop by one rendered frame."""
        self.monitor.record_frame(frame_delta)
        self.tasks.run_due(now)
        event = self.detector.update(now)
        if self.detector.mode is not self._mode:
            logger.info("Detection mode %s -> %s", self._mode.value, self.detector.mode.value)
            self._mode = self.detector.mode
            self.scheduler.stop_all()
        return event

    def load_media(self):
        """New media: re-sync analysis, stop effects, forget the old timeline."""
        self.detector.reset_for_new_media()
        self._mode = self.detector.mode
        self.scheduler.on_media_started()
        self.tracker.clear()
        self.beats.clear()

    def end_media(self):
        self.scheduler.on_media_ended()

    def start_capture(self, timeline: Optional[Sequence[EffectSelection]] = None):
        """Hand the audio over to a capture pass, optionally replaying a timeline."""
        self.detector.set_capture_active(True)
        self.scheduler.stop_all()
        if timeline:
            self.scheduler.replay_timeline(timeline)

    def end_capture(self):
        self.scheduler.stop_replay()
        self.scheduler.stop_all()
        self.detector.set_capture_active(False)

    def close(self):
        for handle in self._listeners:
            self.detector.remove_listener(handle)
        self._listeners = []
        self.scheduler.stop_all()
        self.tasks.cancel_all()

    def simulate(
        self,
        fps: float = 60.0,
        duration: Optional[float] = None,
        timeline: Optional[Sequence[EffectSelection]] = None,
    ) -> SimulationReport:
        """Play the source from the start, one tick per rendered frame.

        Args:
            fps: Simulated render rate.
            duration: Stop after this much media time (default: whole file).
            timeline: Replay these selections as a capture pass instead of
                reacting to live beats.

        Returns:
            SimulationReport for the run.
        """
        dt = 1.0 / fps
        limit = min(duration, self.source.duration) if duration else self.source.duration

        self.source.stop()
        self.load_media()
        self.source.play()
        if timeline is not None:
            self.start_capture(timeline)

        now = 0.0
        while self.source.is_playing() and self.source.current_playback_time() < limit:
            self.source.advance(dt)
            now += dt
            self.tick(now, dt)

        selections = self.tracker.timeline()
        if timeline is not None:
            self.end_capture()
        self.source.pause()
        self.tasks.run_due(now + self.scheduler.pulse_duration)
        self.end_media()

        logger.info(
            "Simulated %.1fs: %d beats, %d pulses, mode=%s",
            self.source.current_playback_time(),
            len(self.beats),
            len(self.scheduler.pulses),
            self.detector.mode.value,
        )
        return SimulationReport(
            source_name=self.source.name,
            duration=self.source.current_playback_time(),
            beats=list(self.beats),
            pulses=list(self.scheduler.pulses),
            final_mode=self.detector.mode,
            performance_level=self.monitor.level,
            average_fps=self.monitor.average_fps,
            timeline=selections,
        )
