"""Tests for weighting pure functions."""

import random

from beatpulse.config import SchedulerConfig
from beatpulse.effects import ToggleEffect, build_effect_descriptors
from beatpulse.models import EffectName, EffectTier
from beatpulse.weighting import build_pools, choose_tier, pick_effect, union_pool

CONFIG = SchedulerConfig()


def pools_for(*names):
    return build_pools(build_effect_descriptors({n: ToggleEffect(n) for n in names}))


FULL = pools_for(*EffectName)

# --- Tier choice ---


class TestChooseTier:
    def test_steady_state_with_headroom(self):
        assert choose_tier(0.1, True, FULL, CONFIG) is EffectTier.HEAVY
        assert choose_tier(0.5, True, FULL, CONFIG) is EffectTier.MEDIUM
        assert choose_tier(0.9, True, FULL, CONFIG) is EffectTier.LIGHT

    def test_steady_state_without_headroom(self):
        assert choose_tier(0.1, False, FULL, CONFIG) is EffectTier.MEDIUM
        assert choose_tier(0.6, False, FULL, CONFIG) is EffectTier.LIGHT

    def test_heavy_never_chosen_without_headroom(self):
        for i in range(100):
            roll = i / 100
            assert choose_tier(roll, False, FULL, CONFIG) is not EffectTier.HEAVY
            assert choose_tier(roll, False, FULL, CONFIG, first_beat=True) is not EffectTier.HEAVY

    def test_first_beat_weights(self):
        assert choose_tier(0.3, True, FULL, CONFIG, first_beat=True) is EffectTier.HEAVY
        assert choose_tier(0.5, True, FULL, CONFIG, first_beat=True) is EffectTier.MEDIUM
        assert choose_tier(0.7, True, FULL, CONFIG, first_beat=True) is EffectTier.LIGHT

    def test_first_beat_without_headroom(self):
        assert choose_tier(0.3, False, FULL, CONFIG, first_beat=True) is EffectTier.MEDIUM

    def test_empty_tier_falls_through(self):
        light_only = pools_for(EffectName.ZOOM, EffectName.SHAKE)
        assert choose_tier(0.1, True, light_only, CONFIG) is EffectTier.LIGHT
        assert choose_tier(0.1, False, light_only, CONFIG) is EffectTier.LIGHT

    def test_nothing_selectable(self):
        heavy_only = pools_for(EffectName.BLOOM)
        assert choose_tier(0.9, False, heavy_only, CONFIG) is None


class TestPools:
    def test_every_tier_present(self):
        pools = build_pools([])
        assert set(pools) == set(EffectTier)

    def test_union_excludes_heavy_without_headroom(self):
        union = union_pool(FULL, False)
        assert union
        assert all(d.tier is not EffectTier.HEAVY for d in union)
        assert len(union_pool(FULL, True)) > len(union)


class TestPickEffect:
    def test_distribution_with_headroom(self):
        rng = random.Random(42)
        draws = [pick_effect(FULL, True, rng, CONFIG) for _ in range(3000)]
        heavy = sum(1 for d in draws if d.tier is EffectTier.HEAVY) / len(draws)
        medium = sum(1 for d in draws if d.tier is EffectTier.MEDIUM) / len(draws)
        assert 0.35 < heavy < 0.45
        assert 0.25 < medium < 0.35

    def test_uniform_within_tier(self):
        rng = random.Random(0)
        light = [pick_effect(FULL, False, rng, CONFIG) for _ in range(2000)]
        names = {d.name for d in light if d.tier is EffectTier.LIGHT}
        assert names == {d.name for d in FULL[EffectTier.LIGHT]}

    def test_none_when_nothing_allowed(self):
        heavy_only = pools_for(EffectName.BLOOM, EffectName.GLITCH)
        assert pick_effect(heavy_only, False, random.Random(1), CONFIG) is None
        assert pick_effect(heavy_only, True, random.Random(1), CONFIG).tier is EffectTier.HEAVY
