"""Adaptive, performance-aware effect scheduling on beat events."""

import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

from .config import DEFAULT_CONFIG, SchedulerConfig
from .logging_config import get_logger
from .models import BeatEvent, EffectDescriptor, EffectName, EffectSelection, EffectTier, PulseRecord
from .performance import PerformanceMonitor
from .spectrum import PlaybackProbe
from .tasks import TaskHandle, TaskQueue
from .timeline import EffectTimelineTracker
from .weighting import build_pools, pick_effect

logger = get_logger(__name__)


@dataclass
class _ReplayState:
    entries: List[EffectSelection]
    index: int = 0
    current: Optional[EffectName] = None
    last_trigger: float = 0.0
    handle: Optional[TaskHandle] = None


class EffectScheduler:
    """Picks one effect per beat and pulses it for a bounded duration.

    Effects are grouped into light / medium / heavy pools. Heavy effects are
    only drawn while the performance monitor confirms headroom. A selection is
    kept for at least min_switch_interval so one effect persists across
    several beats. A pulse that is already running is never restarted; each
    pulse carries a generation number so a release that was cancelled by
    stop_all() can never switch a later pulse off.
    """

    def __init__(
        self,
        descriptors: Sequence[EffectDescriptor],
        monitor: Optional[PerformanceMonitor],
        tasks: TaskQueue,
        media: Optional[PlaybackProbe],
        config: SchedulerConfig = None,
        rng: random.Random = None,
        tracker: Optional[EffectTimelineTracker] = None,
        record_pulses: bool = False,
    ):
        """Initialize scheduler.

        Args:
            descriptors: Connected effects with their tiers and sinks.
            monitor: Performance monitor; None means heavy effects are never used.
            tasks: Queue that runs the deferred pulse releases.
            media: Playback probe; beats are ignored while nothing plays.
            config: Scheduler configuration. Uses DEFAULT_CONFIG if not provided.
            rng: Random source for effect selection.
            tracker: Optional timeline tracker that records selections.
            record_pulses: Keep a PulseRecord for every pulse (offline runs).
        """
        self.config = config or DEFAULT_CONFIG.scheduler
        self.descriptors: Dict[EffectName, EffectDescriptor] = {d.name: d for d in descriptors}
        self.pools = build_pools(self.descriptors.values())
        self.monitor = monitor
        self.tasks = tasks
        self.media = media
        self.rng = rng or random.Random()
        self.tracker = tracker

        self.auto_mode = True
        self.randomize = True
        self.pinned: Optional[EffectName] = None
        self.current_effect: Optional[EffectName] = None
        self.last_switch_time = 0.0
        self.pulse_duration = self.config.effect_duration

        self._warmed_up = False
        self._media_started_at: Optional[float] = None
        self._generations: Dict[EffectName, int] = {name: 0 for name in self.descriptors}
        self._in_flight: Dict[EffectName, TaskHandle] = {}
        self._replay: Optional[_ReplayState] = None
        self._saved_duration: Optional[float] = None

        self.record_pulses = record_pulses
        self.pulses: List[PulseRecord] = []
        self._open_pulses: Dict[EffectName, PulseRecord] = {}

        logger.info(
            "%d effects available (%d light, %d medium, %d heavy)",
            len(self.descriptors),
            len(self.pools[EffectTier.LIGHT]),
            len(self.pools[EffectTier.MEDIUM]),
            len(self.pools[EffectTier.HEAVY]),
        )

    # --- state ---

    @property
    def replaying(self) -> bool:
        return self._replay is not None

    @property
    def warmed_up(self) -> bool:
        return self._warmed_up

    def is_pulsing(self, name: Union[str, EffectName]) -> bool:
        return EffectName.parse(name) in self._in_flight

    def _can_use_heavy(self) -> bool:
        return self.monitor is not None and self.monitor.can_use_heavy_effects

    def _media_active(self) -> bool:
        if self.media is None:
            return False
        return self.media.has_media and self.media.is_playing()

    def _media_time(self) -> float:
        return self.media.current_playback_time() if self.media is not None else 0.0

    # --- control surface ---

    def set_auto_mode(self, enabled: bool):
        self.auto_mode = enabled
        logger.info("Auto mode %s", "enabled" if enabled else "disabled")

    def toggle_auto_mode(self):
        self.set_auto_mode(not self.auto_mode)

    def pin_single_effect(self, name: Optional[Union[str, EffectName]]):
        """Restrict beat reactions to one effect, or None for all effects.

        Raises:
            UnknownEffectError: If name is not a known effect.
        """
        self.auto_mode = True
        if name is None:
            self.pinned = None
            self.randomize = True
            logger.info("All effects mode enabled (randomize)")
            return

        effect = EffectName.parse(name)
        self.stop_all()
        self.pinned = effect
        self.randomize = False
        if effect not in self.descriptors:
            logger.info("Pinned effect %s is not connected; beats will be ignored", effect.value)
        else:
            logger.info("Single effect mode set to: %s", effect.value)
        if self.tracker is not None:
            self.tracker.record(effect)

    def skip_warmup(self):
        self._warmed_up = True
        self._media_started_at = self.tasks.now

    def on_media_started(self):
        """New media loaded: stop everything and re-arm the warm-up delay."""
        self.stop_all()
        self._warmed_up = False
        self._media_started_at = None

    def on_media_ended(self):
        self.stop_replay()
        self.stop_all()
        self._warmed_up = False
        self._media_started_at = None

    def stop_all(self):
        """Cancel every pending release and force every effect off now."""
        for handle in self._in_flight.values():
            handle.cancel()
        self._in_flight.clear()
        for name in self._generations:
            self._generations[name] += 1

        for descriptor in self.descriptors.values():
            if descriptor.sink.is_active():
                descriptor.sink.set_active(False)
            self._close_pulse(descriptor.name)

        self.current_effect = None

    def trigger(self, name: Union[str, EffectName]) -> bool:
        """Pulse an effect by name; False if it is unknown here or already pulsing."""
        descriptor = self.descriptors.get(EffectName.parse(name))
        if descriptor is None:
            logger.debug("Effect %s not connected - trigger ignored", name)
            return False
        return self._trigger(descriptor)

    # --- beat handling ---

    def _check_warmup(self, now: float) -> bool:
        if self._warmed_up:
            return True
        if self._media_started_at is None:
            self._media_started_at = now
        if now - self._media_started_at < self.config.warmup_delay:
            return False
        self._warmed_up = True
        logger.info("Warmup complete. Effects now active.")
        return True

    def on_beat(self, event: BeatEvent):
        """Beat listener: choose an effect and pulse it."""
        now = event.timestamp
        self.tasks.advance(now)

        if not self.auto_mode or not self.descriptors or self._replay is not None:
            return
        if not self._media_active():
            return
        if not self._check_warmup(now):
            return

        if self.pinned is not None:
            descriptor = self.descriptors.get(self.pinned)
            if descriptor is not None:
                self._trigger(descriptor)
            return

        can_use_heavy = self._can_use_heavy()
        if self.current_effect is None:
            chosen = pick_effect(self.pools, can_use_heavy, self.rng, self.config, first_beat=True)
            self._select(chosen, now)
        elif self.randomize and now - self.last_switch_time >= self.config.min_switch_interval:
            chosen = pick_effect(self.pools, can_use_heavy, self.rng, self.config)
            self._select(chosen, now)

        if self.current_effect is not None:
            self._trigger(self.descriptors[self.current_effect])

    def _select(self, descriptor: Optional[EffectDescriptor], now: float):
        self.last_switch_time = now
        if descriptor is None:
            logger.debug("No selectable effect for this beat")
            self.current_effect = None
            return
        if descriptor.name != self.current_effect:
            logger.debug("Switched to %s (%s)", descriptor.name.value, descriptor.tier.value)
            if self.tracker is not None:
                self.tracker.record(descriptor.name)
        self.current_effect = descriptor.name

    # --- pulses ---

    def _trigger(self, descriptor: EffectDescriptor) -> bool:
        name = descriptor.name
        if name in self._in_flight or descriptor.sink.is_active():
            return False

        descriptor.sink.set_active(True)
        self._generations[name] += 1
        self._in_flight[name] = self.tasks.call_later(
            self.pulse_duration, self._release, name, self._generations[name]
        )
        if self.record_pulses:
            record = PulseRecord(effect=name, start=self._media_time())
            self.pulses.append(record)
            self._open_pulses[name] = record
        return True

    def _release(self, name: EffectName, generation: int):
        if self._generations.get(name) != generation:
            return
        self._in_flight.pop(name, None)
        sink = self.descriptors[name].sink
        if sink.is_active():
            sink.set_active(False)
        self._close_pulse(name)

    def _close_pulse(self, name: EffectName):
        record = self._open_pulses.pop(name, None)
        if record is not None:
            record.end = self._media_time()

    # --- timeline replay ---

    def replay_timeline(self, entries: Sequence[EffectSelection]) -> bool:
        """Drive effects from a recorded timeline instead of live beats.

        Each entry's effect is triggered when the media clock reaches its
        time, then re-triggered every replay_trigger_interval until the next
        entry. Pulses are shortened while the replay runs.

        Returns:
            False if the timeline is empty.
        """
        if not entries:
            logger.info("No timeline to replay")
            return False

        self.stop_replay()
        self.skip_warmup()
        self._saved_duration = self.pulse_duration
        self.pulse_duration = self.pulse_duration * self.config.replay_duration_scale
        self._replay = _ReplayState(entries=sorted(entries, key=lambda e: e.media_time))
        self._replay.handle = self.tasks.call_later(0.0, self._replay_step)
        logger.info("Starting timeline replay with %d effect changes", len(entries))
        return True

    def _replay_step(self):
        state = self._replay
        if state is None:
            return
        if not self._media_active():
            self._finish_replay()
            return

        current_time = self._media_time()
        while state.index < len(state.entries) and current_time >= state.entries[state.index].media_time:
            entry = state.entries[state.index]
            state.current = entry.effect
            state.last_trigger = current_time
            self.trigger(entry.effect)
            logger.debug("Replaying %s at %.2fs", entry.effect.value, current_time)
            state.index += 1

        if (
            state.current is not None
            and current_time - state.last_trigger >= self.config.replay_trigger_interval
        ):
            self.trigger(state.current)
            state.last_trigger = current_time

        state.handle = self.tasks.call_later(0.0, self._replay_step)

    def _finish_replay(self):
        if self._saved_duration is not None:
            self.pulse_duration = self._saved_duration
            self._saved_duration = None
        self._replay = None
        logger.info("Timeline replay complete")

    def stop_replay(self):
        """Abort a running replay and restore the normal pulse duration."""
        if self._replay is None:
            return
        if self._replay.handle is not None:
            self._replay.handle.cancel()
        self._finish_replay()
