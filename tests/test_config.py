"""Tests for configuration loading and profiles."""

import json

import pytest

from beatpulse.config import DEFAULT_CONFIG, BeatPulseConfig, config_from_mapping, load_config
from beatpulse.exceptions import ConfigError


def test_defaults():
    config = BeatPulseConfig()
    assert config.detection.sensitivity == 1.3
    assert config.detection.min_beat_interval == 0.25
    assert config.detection.bass_range == 20
    assert config.detection.fallback_beat_interval == 0.5
    assert config.monitor.stability_sample_count == 10
    assert config.scheduler.effect_duration == 0.1
    assert config.scheduler.min_switch_interval == 0.5
    assert not config.constrained_device


def test_constrained_profile():
    config = DEFAULT_CONFIG.for_constrained_device()
    assert config.constrained_device
    assert config.detection.update_interval == 0.3
    assert config.scheduler.effect_duration == 0.05
    assert DEFAULT_CONFIG.detection.update_interval == 0.2


def test_bare_and_dotted_keys():
    config = config_from_mapping({"sensitivity": 2.0, "scheduler.effect_duration": 0.2})
    assert config.detection.sensitivity == 2.0
    assert config.scheduler.effect_duration == 0.2
    assert DEFAULT_CONFIG.detection.sensitivity == 1.3


def test_integer_fields_are_cast():
    config = config_from_mapping({"bass_range": 12.0})
    assert config.detection.bass_range == 12
    assert isinstance(config.detection.bass_range, int)


def test_integer_fields_reject_fractions():
    with pytest.raises(ConfigError, match="whole number"):
        config_from_mapping({"bass_range": 20.7})
    with pytest.raises(ConfigError, match="whole number"):
        config_from_mapping({"detection.max_stuck_reads": 2.5})


def test_unknown_key():
    with pytest.raises(ConfigError, match="Unknown setting"):
        config_from_mapping({"loudness": 3})
    with pytest.raises(ConfigError):
        config_from_mapping({"monitor.sensitivity": 3})


def test_non_numeric_value():
    with pytest.raises(ConfigError, match="must be numeric"):
        config_from_mapping({"sensitivity": "high"})


def test_explicit_values_win_over_constrained_profile():
    config = config_from_mapping({"constrained_device": True, "effect_duration": 0.08})
    assert config.constrained_device
    assert config.detection.update_interval == 0.3
    assert config.scheduler.effect_duration == 0.08


def test_load_config(tmp_path):
    path = tmp_path / "tunables.json"
    path.write_text(json.dumps({"min_beat_interval": 0.3, "stable_fps_threshold": 30}))
    config = load_config(path)
    assert config.detection.min_beat_interval == 0.3
    assert config.monitor.stable_fps_threshold == 30.0


def test_load_config_errors(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(ConfigError):
        load_config(broken)

    listed = tmp_path / "list.json"
    listed.write_text("[1, 2]")
    with pytest.raises(ConfigError, match="JSON object"):
        load_config(listed)
