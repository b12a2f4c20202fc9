"""Pure functions for performance-weighted effect selection."""

import random
from typing import Dict, List, Optional, Sequence

from .config import SchedulerConfig
from .models import EffectDescriptor, EffectTier

Pools = Dict[EffectTier, List[EffectDescriptor]]


def build_pools(descriptors: Sequence[EffectDescriptor]) -> Pools:
    """Partition descriptors by tier; every tier key is always present."""
    pools: Pools = {tier: [] for tier in EffectTier}
    for descriptor in descriptors:
        pools[descriptor.tier].append(descriptor)
    return pools


def choose_tier(
    roll: float,
    can_use_heavy: bool,
    pools: Pools,
    config: SchedulerConfig,
    first_beat: bool = False,
) -> Optional[EffectTier]:
    """Map a uniform roll in [0, 1) to a tier.

    Steady state with headroom: heavy / medium / light at the configured
    weights (40 / 30 / 30 by default). Without headroom heavy effects are
    excluded and medium / light split the draw (50 / 50). The first beat
    leans light (35 heavy when allowed, 25 medium, rest light).
    Empty tiers are skipped; None means fall back to the union pool.
    """
    has_heavy = bool(pools[EffectTier.HEAVY])
    has_medium = bool(pools[EffectTier.MEDIUM])
    has_light = bool(pools[EffectTier.LIGHT])

    if first_beat:
        heavy_cut = config.first_beat_heavy_weight
        medium_cut = heavy_cut + config.first_beat_medium_weight
        if can_use_heavy and roll < heavy_cut and has_heavy:
            return EffectTier.HEAVY
        if roll < medium_cut and has_medium:
            return EffectTier.MEDIUM
        if has_light:
            return EffectTier.LIGHT
        return None

    if can_use_heavy:
        heavy_cut = config.heavy_weight
        medium_cut = heavy_cut + config.medium_weight
        if roll < heavy_cut and has_heavy:
            return EffectTier.HEAVY
        if roll < medium_cut and has_medium:
            return EffectTier.MEDIUM
        if has_light:
            return EffectTier.LIGHT
        return None

    if roll < config.restricted_medium_weight and has_medium:
        return EffectTier.MEDIUM
    if has_light:
        return EffectTier.LIGHT
    return None


def union_pool(pools: Pools, can_use_heavy: bool) -> List[EffectDescriptor]:
    """All selectable effects; heavy ones only when headroom is confirmed."""
    tiers = [EffectTier.LIGHT, EffectTier.MEDIUM]
    if can_use_heavy:
        tiers.append(EffectTier.HEAVY)
    return [d for tier in tiers for d in pools[tier]]


def pick_effect(
    pools: Pools,
    can_use_heavy: bool,
    rng: random.Random,
    config: SchedulerConfig,
    first_beat: bool = False,
) -> Optional[EffectDescriptor]:
    """Draw one effect: weighted tier first, then uniformly within the tier."""
    tier = choose_tier(rng.random(), can_use_heavy, pools, config, first_beat)
    pool = pools[tier] if tier is not None else union_pool(pools, can_use_heavy)
    if not pool:
        return None
    return rng.choice(pool)
