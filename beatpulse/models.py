"""Domain models for beatpulse."""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Optional

from .exceptions import UnknownEffectError

if TYPE_CHECKING:
    from .effects import EffectSink


class DetectionMode(Enum):
    """Active beat generation strategy."""

    SPECTRAL = "spectral"
    FALLBACK_TIMER = "fallback_timer"
    DISABLED = "disabled"


class WindowFunction(Enum):
    """Window applied before the FFT (value is the librosa window name)."""

    RECTANGULAR = "boxcar"
    BLACKMAN_HARRIS = "blackmanharris"


class EffectTier(Enum):
    """Static runtime-cost classification of an effect."""

    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"


class PerformanceLevel(IntEnum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2


class EffectName(Enum):
    """Closed set of effect identities the scheduler can drive."""

    ZOOM = "Zoom"
    SHAKE = "Shake"
    ROTATE = "Rotate"
    MATERIAL_RGB = "MaterialRGB"
    MATERIAL_COLOR = "MaterialColor"
    VIGNETTE = "Vignette"
    SHADOW_MIDTONE = "ShadowMidtone"
    BLOOM = "Bloom"
    LENS_DISTORTION = "LensDistortion"
    RGB = "RGB"
    GLITCH = "Glitch"

    @classmethod
    def parse(cls, name: str) -> "EffectName":
        """Resolve "LensDistortion", "lens_distortion" or "LENS-DISTORTION"."""
        if isinstance(name, cls):
            return name
        key = str(name).replace("_", "").replace("-", "").replace(" ", "").lower()
        for member in cls:
            if member.value.lower() == key:
                return member
        raise UnknownEffectError(f"Unknown effect: {name}")


@dataclass
class EnergyState:
    """Bass energy bookkeeping owned by the beat detector."""

    current_energy: float = 0.0
    average_energy: float = 0.0  # exponentially smoothed baseline, always >= 0
    last_beat_time: float = 0.0

    def reset(self):
        """Forget the baseline (mute toggle, mode switch, re-sync)."""
        self.current_energy = 0.0
        self.average_energy = 0.0


@dataclass(frozen=True)
class BeatEvent:
    """A detected (or synthesised) beat."""

    strength: float  # 0-1
    timestamp: float  # tick clock, seconds
    media_time: float = 0.0  # media clock, seconds
    synthetic: bool = False  # fallback timer or manual trigger


@dataclass(frozen=True)
class EffectDescriptor:
    """Static per-effect metadata bound to its sink."""

    name: EffectName
    tier: EffectTier
    sink: "EffectSink"


@dataclass
class EffectSelection:
    """A recorded effect choice on the media timeline."""

    media_time: float  # seconds
    effect: EffectName


@dataclass
class PulseRecord:
    """A single bounded activation of an effect."""

    effect: EffectName
    start: float  # seconds
    end: Optional[float] = None  # None while still active

    @property
    def duration(self) -> Optional[float]:
        if self.end is None:
            return None
        return self.end - self.start
