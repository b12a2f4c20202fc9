"""Effect sink contract and the static effect tier table."""

from typing import Dict, List, Mapping, Optional, Protocol

from .logging_config import get_logger
from .models import EffectDescriptor, EffectName, EffectTier

logger = get_logger(__name__)


class EffectSink(Protocol):
    """Anything the scheduler can switch on and off."""

    def is_active(self) -> bool: ...
    def set_active(self, active: bool) -> None: ...


# Static cost classification, declared rather than measured
EFFECT_TIERS: Dict[EffectName, EffectTier] = {
    EffectName.ZOOM: EffectTier.LIGHT,
    EffectName.SHAKE: EffectTier.LIGHT,
    EffectName.ROTATE: EffectTier.LIGHT,
    EffectName.MATERIAL_RGB: EffectTier.LIGHT,
    EffectName.MATERIAL_COLOR: EffectTier.LIGHT,
    EffectName.VIGNETTE: EffectTier.MEDIUM,
    EffectName.SHADOW_MIDTONE: EffectTier.MEDIUM,
    EffectName.BLOOM: EffectTier.HEAVY,
    EffectName.LENS_DISTORTION: EffectTier.HEAVY,
    EffectName.RGB: EffectTier.HEAVY,
    EffectName.GLITCH: EffectTier.HEAVY,
}


class ToggleEffect:
    """In-memory effect sink that remembers its activations."""

    def __init__(self, name: EffectName, clock=None):
        self.name = name
        self.clock = clock
        self.active = False
        self.activations = 0
        self.history: List[tuple] = []

    def is_active(self) -> bool:
        return self.active

    def set_active(self, active: bool) -> None:
        if active == self.active:
            return
        self.active = active
        if active:
            self.activations += 1
        if self.clock is not None:
            self.history.append((self.clock(), active))

    def __repr__(self):
        return f"ToggleEffect({self.name.value}, active={self.active})"


def build_effect_descriptors(
    sinks: Mapping[EffectName, Optional[EffectSink]],
    tiers: Mapping[EffectName, EffectTier] = None,
) -> List[EffectDescriptor]:
    """Build the immutable descriptor list from the connected sinks.

    Absent sinks are omitted. The material colour effect only stands in when
    material RGB is missing, and the post-processing RGB effect is only used
    without the cheaper material RGB.

    Args:
        sinks: Connected sinks keyed by effect name (None = not connected).
        tiers: Tier overrides. Defaults to EFFECT_TIERS.

    Returns:
        Descriptors in declaration order of EffectName.
    """
    tiers = {**EFFECT_TIERS, **(tiers or {})}
    connected = {name: sink for name, sink in sinks.items() if sink is not None}

    if EffectName.MATERIAL_RGB in connected:
        for substitute in (EffectName.MATERIAL_COLOR, EffectName.RGB):
            if connected.pop(substitute, None) is not None:
                logger.debug("%s skipped: MaterialRGB is connected", substitute.value)

    descriptors = [
        EffectDescriptor(name=name, tier=tiers[name], sink=connected[name])
        for name in EffectName
        if name in connected
    ]
    if not descriptors:
        logger.info("No effect sinks connected; beat-synced effects are disabled")
    return descriptors
