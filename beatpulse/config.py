"""Configuration for beatpulse detection, monitoring and effect scheduling."""

import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Dict, Mapping, Union

from .exceptions import ConfigError
from .logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class DetectionConfig:
    """Configuration for the beat detection engine."""

    # Higher = fewer beats detected (0.5 - 3.0)
    sensitivity: float = 1.3

    # Minimum time between beats (seconds)
    min_beat_interval: float = 0.25

    # Number of low-frequency bins summed into the bass energy (1 - 50)
    bass_range: int = 20

    # How fast the average energy adapts (0.01 - 0.2)
    smoothing_speed: float = 0.05

    # Fallback mode: synthetic beats on the media clock
    fallback_beat_interval: float = 0.5
    fallback_beat_strength: float = 0.7

    # Analysis cadence (seconds); never every rendered frame
    update_interval: float = 0.2
    mute_check_interval: float = 0.1

    # Reduced-cost analysis after playback starts
    warmup_duration: float = 3.0
    warmup_bass_range: int = 10

    # Spectrum snapshot sizes (bins)
    spectrum_size: int = 1024
    warmup_spectrum_size: int = 512

    # Energies below this are treated as silence / no baseline
    energy_floor: float = 0.0001

    # Sustained silence handling (seconds)
    silence_reset_after: float = 2.0
    silence_fallback_after: float = 3.0

    # Consecutive non-advancing playback reads tolerated before skipping
    max_stuck_reads: int = 3


@dataclass
class MonitorConfig:
    """Configuration for the frame-rate performance monitor."""

    # How often to compute a throughput sample (seconds)
    sample_interval: float = 0.5

    # Minimum average FPS that allows heavy effects
    stable_fps_threshold: float = 25.0

    # Rolling window capacity
    stability_sample_count: int = 10

    # Standard deviation below which the window counts as stable
    stable_std_threshold: float = 5.0

    # Performance level cutoffs (average FPS)
    high_fps_cutoff: float = 50.0
    medium_fps_cutoff: float = 30.0

    # Assumed FPS before the first sample
    initial_fps: float = 60.0


@dataclass
class SchedulerConfig:
    """Configuration for the adaptive effect scheduler."""

    # Time to keep an effect active after a beat (seconds)
    effect_duration: float = 0.1

    # Minimum time before switching to a different effect (seconds)
    min_switch_interval: float = 0.5

    # Beats are ignored for this long after media starts (seconds)
    warmup_delay: float = 1.5

    # Timeline replay: retrigger cadence and pulse shortening
    replay_trigger_interval: float = 0.5
    replay_duration_scale: float = 0.7

    # Steady-state tier weights when heavy effects are allowed (light = rest)
    heavy_weight: float = 0.4
    medium_weight: float = 0.3

    # Medium share when heavy effects are excluded (light = rest)
    restricted_medium_weight: float = 0.5

    # First-beat weights (light = rest)
    first_beat_heavy_weight: float = 0.35
    first_beat_medium_weight: float = 0.25


@dataclass
class BeatPulseConfig:
    """Top-level configuration grouping all tunables."""

    detection: DetectionConfig = field(default_factory=DetectionConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)

    # Slower analysis and shorter pulses for constrained hosts
    constrained_device: bool = False

    def for_constrained_device(self) -> "BeatPulseConfig":
        """Return a copy tuned for constrained (mobile-class) hosts."""
        return BeatPulseConfig(
            detection=replace(self.detection, update_interval=0.3),
            monitor=replace(self.monitor),
            scheduler=replace(self.scheduler, effect_duration=0.05),
            constrained_device=True,
        )


_SECTIONS = ("detection", "monitor", "scheduler")


def _section_fields() -> Dict[str, Dict[str, type]]:
    defaults = BeatPulseConfig()
    return {
        name: {f.name: type(getattr(getattr(defaults, name), f.name)) for f in fields(getattr(defaults, name))}
        for name in _SECTIONS
    }


def _resolve_key(key: str, known: Dict[str, Dict[str, type]]):
    """Map a bare or dotted key to (section, field)."""
    if "." in key:
        section, _, name = key.partition(".")
        if section in known and name in known[section]:
            return section, name
        raise ConfigError(f"Unknown setting: {key}")

    matches = [section for section in _SECTIONS if key in known[section]]
    if not matches:
        raise ConfigError(f"Unknown setting: {key}")
    return matches[0], key


def config_from_mapping(
    mapping: Mapping[str, Union[int, float, bool]], base: BeatPulseConfig = None
) -> BeatPulseConfig:
    """Build a configuration from a flat key -> number mapping.

    Args:
        mapping: Settings keyed by field name ("sensitivity") or by
            section-qualified name ("detection.sensitivity").
        base: Configuration to start from. Uses DEFAULT_CONFIG if not provided.

    Returns:
        A new BeatPulseConfig with the overrides applied.

    Raises:
        ConfigError: On unknown keys, non-numeric values or fractional
            values for whole-number settings.
    """
    base = base or DEFAULT_CONFIG
    known = _section_fields()
    overrides: Dict[str, Dict[str, float]] = {name: {} for name in _SECTIONS}
    constrained = base.constrained_device

    for key, value in mapping.items():
        if not isinstance(value, (int, float)):
            raise ConfigError(f"Setting {key} must be numeric, got {value!r}")
        if key == "constrained_device":
            constrained = bool(value)
            continue
        section, name = _resolve_key(key, known)
        caster = known[section][name]
        if caster is int and not float(value).is_integer():
            raise ConfigError(f"Setting {key} must be a whole number, got {value!r}")
        overrides[section][name] = caster(value)

    config = BeatPulseConfig(
        detection=replace(base.detection, **overrides["detection"]),
        monitor=replace(base.monitor, **overrides["monitor"]),
        scheduler=replace(base.scheduler, **overrides["scheduler"]),
        constrained_device=base.constrained_device,
    )
    if constrained and not base.constrained_device:
        config = config.for_constrained_device()
        # Explicit values win over the constrained profile
        config = config_from_mapping(
            {k: v for k, v in mapping.items() if k != "constrained_device"}, base=config
        )
    return config


def load_config(path: Union[str, Path], base: BeatPulseConfig = None) -> BeatPulseConfig:
    """Load tunables from a JSON file containing a flat key -> number object.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Unable to read config file {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    logger.debug("Loaded %d setting(s) from %s", len(data), path)
    return config_from_mapping(data, base=base)


# Default configuration instance
DEFAULT_CONFIG = BeatPulseConfig()
