"""Beat detection from periodic bass-energy spectrum snapshots."""

from typing import Callable, List, Optional

import numpy as np

from .config import DEFAULT_CONFIG, DetectionConfig
from .logging_config import get_logger
from .models import BeatEvent, DetectionMode, EnergyState, WindowFunction
from .spectrum import SpectrumSource, compute_bass_energy

logger = get_logger(__name__)

BeatListener = Callable[[BeatEvent], None]


def compute_beat_strength(current_energy: float, average_energy: float, sensitivity: float) -> float:
    """Normalized spike strength in [0, 1] relative to the baseline."""
    if average_energy <= 0 or sensitivity <= 0:
        return 0.0
    return float(np.clip((current_energy - average_energy) / (average_energy * sensitivity), 0.0, 1.0))


def lerp(a: float, b: float, t: float) -> float:
    t = min(max(t, 0.0), 1.0)
    return a + (b - a) * t


class ListenerHandle:
    """Registration token returned by BeatDetector.add_listener()."""

    __slots__ = ("callback",)

    def __init__(self, callback: BeatListener):
        self.callback = callback


class BeatDetector:
    """Turns spectrum snapshots into rate-limited beat events.

    The detector owns a small mode machine. In SPECTRAL mode it compares the
    bass energy of each snapshot against a slowly adapting baseline. When the
    input stays silent for too long it drops to FALLBACK_TIMER and emits
    evenly spaced synthetic beats from the media clock. DISABLED means
    analysis is structurally unavailable. Only reset_for_new_media() brings
    the detector back to SPECTRAL.

    update() is meant to be called every rendered frame; it throttles itself
    to the configured analysis cadence.
    """

    def __init__(
        self,
        source: Optional[SpectrumSource],
        config: DetectionConfig = None,
        mute_probe: Optional[Callable[[], bool]] = None,
    ):
        """Initialize detector.

        Args:
            source: Spectrum source for the playing media. May be None, in
                which case every cycle is skipped.
            config: Detection configuration. Uses DEFAULT_CONFIG if not provided.
            mute_probe: Optional callable reporting whether audio is muted.
        """
        self.source = source
        self.config = config or DEFAULT_CONFIG.detection
        self.mute_probe = mute_probe

        self.energy = EnergyState()
        self.beat_strength = 0.0
        self._mode = DetectionMode.SPECTRAL
        self._listeners: List[ListenerHandle] = []

        self._last_update_time: Optional[float] = None
        self._last_mute_check: Optional[float] = None
        self._muted = False
        self._capture_active = False

        self._warmup_started_at: Optional[float] = None
        self._last_playback_time = 0.0
        self._stuck_reads = 0
        self._silence_started_at: Optional[float] = None
        self._last_fallback_beat: Optional[float] = None

        if source is None:
            logger.info("BeatDetector created without a spectrum source; beats will not fire")

    # --- listeners ---

    def add_listener(self, callback: BeatListener) -> ListenerHandle:
        """Register a beat callback. Callbacks run in registration order."""
        handle = ListenerHandle(callback)
        self._listeners.append(handle)
        return handle

    def remove_listener(self, handle: ListenerHandle):
        if handle in self._listeners:
            self._listeners.remove(handle)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _emit(self, event: BeatEvent):
        self.beat_strength = event.strength
        if not self._listeners:
            logger.debug("Beat at %.2fs with no listeners", event.timestamp)
        for handle in list(self._listeners):
            handle.callback(event)

    # --- state accessors ---

    @property
    def mode(self) -> DetectionMode:
        return self._mode

    @property
    def current_energy(self) -> float:
        return self.energy.current_energy

    @property
    def average_energy(self) -> float:
        return self.energy.average_energy

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def capture_active(self) -> bool:
        return self._capture_active

    def set_capture_active(self, active: bool):
        """Suppress all spectrum reads while a capture/export is running."""
        if active != self._capture_active:
            logger.info("Beat detection %s for capture", "suspended" if active else "resumed")
        self._capture_active = active

    def in_warmup(self, now: float) -> bool:
        return (
            self._warmup_started_at is not None
            and now - self._warmup_started_at < self.config.warmup_duration
        )

    # --- control surface ---

    def reset_for_new_media(self):
        """Re-sync after new media is loaded: back to SPECTRAL with a fresh baseline."""
        self._mode = DetectionMode.SPECTRAL
        self.energy.reset()
        self.energy.last_beat_time = 0.0
        self.beat_strength = 0.0
        self._warmup_started_at = None
        self._last_playback_time = 0.0
        self._stuck_reads = 0
        self._silence_started_at = None
        self._last_fallback_beat = None
        logger.info("Beat detection re-synced: spectral analysis active")

    def force_fallback_mode(self):
        """Switch to media-clock beats; used when spectrum data is unavailable."""
        if self._mode is not DetectionMode.FALLBACK_TIMER:
            logger.info(
                "Enabled fallback mode - time-based beats every %.2fs",
                self.config.fallback_beat_interval,
            )
        self._mode = DetectionMode.FALLBACK_TIMER
        self.energy.reset()
        self._last_fallback_beat = None
        self._warmup_started_at = None

    def force_disabled_mode(self):
        """Analysis is structurally unavailable (direct playback); stop emitting."""
        if self._mode is not DetectionMode.DISABLED:
            logger.info("Beat detection disabled: playback path cannot be analysed")
        self._mode = DetectionMode.DISABLED
        self.energy.reset()

    def trigger_beat(self, strength: float = 1.0, now: Optional[float] = None):
        """Emit a beat immediately, bypassing detection."""
        timestamp = now if now is not None else (self._last_update_time or 0.0)
        media_time = self.source.current_playback_time() if self.source is not None else 0.0
        self._emit(
            BeatEvent(
                strength=float(np.clip(strength, 0.0, 1.0)),
                timestamp=timestamp,
                media_time=media_time,
                synthetic=True,
            )
        )

    # --- update cycle ---

    def _check_mute(self, now: float):
        if self.mute_probe is None:
            return
        if (
            self._last_mute_check is not None
            and now - self._last_mute_check < self.config.mute_check_interval
        ):
            return
        self._last_mute_check = now
        muted = bool(self.mute_probe())
        if muted != self._muted:
            logger.info("Audio %s - baseline reset", "muted" if muted else "unmuted")
            self._muted = muted
            self.energy.reset()

    def update(self, now: float) -> Optional[BeatEvent]:
        """Run one detection cycle if the analysis cadence allows it.

        Args:
            now: Tick clock in seconds (monotonic).

        Returns:
            The emitted BeatEvent, or None if no beat fired this call.
        """
        self._check_mute(now)

        if (
            self._last_update_time is not None
            and now - self._last_update_time < self.config.update_interval
        ):
            return None
        self._last_update_time = now

        if self._mode is DetectionMode.DISABLED or self._muted or self._capture_active:
            return None

        if self.source is None or not self.source.is_playing():
            return None

        if self._warmup_started_at is None and self._mode is DetectionMode.SPECTRAL:
            self._warmup_started_at = now

        if self._mode is DetectionMode.FALLBACK_TIMER:
            return self._fallback_cycle(now)
        return self._spectral_cycle(now)

    def _fallback_cycle(self, now: float) -> Optional[BeatEvent]:
        media_time = self.source.current_playback_time()
        interval = self.config.fallback_beat_interval
        last = self._last_fallback_beat

        if last is not None and media_time < last:
            # Media clock went backwards (seek, restart); count from here
            self._last_fallback_beat = media_time
            return None
        if last is not None and media_time - last < interval:
            return None

        self._last_fallback_beat = media_time
        self.energy.last_beat_time = now
        event = BeatEvent(
            strength=self.config.fallback_beat_strength,
            timestamp=now,
            media_time=media_time,
            synthetic=True,
        )
        self._emit(event)
        return event

    def _spectral_cycle(self, now: float) -> Optional[BeatEvent]:
        cfg = self.config
        playback_time = self.source.current_playback_time()
        if playback_time <= 0.0:
            return None

        if np.isclose(playback_time, self._last_playback_time):
            self._stuck_reads += 1
            if self._stuck_reads > cfg.max_stuck_reads:
                logger.debug("Playback clock stuck at %.3fs - skipping read", playback_time)
                return None
        else:
            self._stuck_reads = 0
            self._last_playback_time = playback_time

        if self.in_warmup(now):
            spectrum = self.source.get_spectrum_snapshot(
                cfg.warmup_spectrum_size, WindowFunction.RECTANGULAR
            )
            bass_range = min(cfg.warmup_bass_range, cfg.bass_range)
        else:
            spectrum = self.source.get_spectrum_snapshot(
                cfg.spectrum_size, WindowFunction.BLACKMAN_HARRIS
            )
            bass_range = cfg.bass_range

        if spectrum is None:
            return None

        return self.process_energy(compute_bass_energy(spectrum, bass_range), now)

    def process_energy(self, current_energy: float, now: float) -> Optional[BeatEvent]:
        """Apply silence handling, baseline update and the beat decision.

        The beat test and strength use the baseline as it stood before this
        frame; the frame is folded into the baseline afterwards.
        """
        cfg = self.config
        state = self.energy
        state.current_energy = current_energy

        if current_energy < cfg.energy_floor:
            if self._silence_started_at is None:
                self._silence_started_at = now
            silent_for = now - self._silence_started_at
            if silent_for > cfg.silence_reset_after:
                state.average_energy = 0.0
                if silent_for > cfg.silence_fallback_after:
                    logger.info("No audio energy for %.1fs - switching to fallback", silent_for)
                    self.force_fallback_mode()
            return None
        self._silence_started_at = None

        baseline = state.average_energy
        state.average_energy = max(0.0, lerp(baseline, current_energy, cfg.smoothing_speed))

        if baseline < cfg.energy_floor:
            # Still establishing a baseline
            return None

        difference = current_energy - baseline
        self.beat_strength = compute_beat_strength(current_energy, baseline, cfg.sensitivity)

        if (
            current_energy > baseline * cfg.sensitivity
            and difference > cfg.energy_floor
            and now - state.last_beat_time >= cfg.min_beat_interval
        ):
            state.last_beat_time = now
            media_time = self.source.current_playback_time() if self.source is not None else 0.0
            event = BeatEvent(strength=self.beat_strength, timestamp=now, media_time=media_time)
            self._emit(event)
            return event
        return None
