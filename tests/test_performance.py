"""Tests for the frame-rate performance monitor."""

import pytest

from beatpulse.config import MonitorConfig
from beatpulse.models import PerformanceLevel
from beatpulse.performance import PerformanceMonitor


@pytest.fixture
def monitor():
    return PerformanceMonitor()


def fill(monitor, *fps):
    for value in fps:
        monitor.add_sample(value)


def test_initial_state(monitor):
    assert monitor.average_fps == 60.0
    assert monitor.current_fps == 60.0
    assert monitor.level is PerformanceLevel.HIGH
    assert not monitor.is_stable
    assert not monitor.can_use_heavy_effects


def test_stable_high_fps_allows_heavy(monitor):
    fill(monitor, *[60.0] * 9)
    assert not monitor.can_use_heavy_effects
    monitor.add_sample(60.0)
    assert monitor.is_stable
    assert monitor.can_use_heavy_effects
    assert monitor.should_use_heavy_effect()


def test_stable_low_fps_restricts_heavy(monitor):
    fill(monitor, *[20.0] * 10)
    assert monitor.is_stable
    assert not monitor.can_use_heavy_effects
    assert monitor.level is PerformanceLevel.LOW


def test_jittery_fps_is_unstable(monitor):
    fill(monitor, *[30.0, 50.0] * 5)
    assert monitor.average_fps == pytest.approx(40.0)
    assert monitor.std_dev == pytest.approx(10.0)
    assert not monitor.is_stable
    assert not monitor.can_use_heavy_effects
    assert monitor.level is PerformanceLevel.MEDIUM


def test_window_keeps_most_recent_samples(monitor):
    fill(monitor, *[10.0] * 5, *[60.0] * 10)
    assert len(monitor.samples) == 10
    assert monitor.average_fps == 60.0


def test_record_frame_closes_sample(monitor):
    assert not monitor.record_frame(0.25)
    assert monitor.record_frame(0.25)
    assert monitor.current_fps == pytest.approx(4.0)
    assert monitor.samples == [pytest.approx(4.0)]


def test_negative_delta_ignored(monitor):
    monitor.record_frame(-1.0)
    assert monitor.samples == []


def test_recommended_interval(monitor):
    assert monitor.recommended_update_interval() == 0.033
    fill(monitor, *[40.0] * 10)
    assert monitor.recommended_update_interval() == 0.1
    fill(monitor, *[10.0] * 10)
    assert monitor.recommended_update_interval() == 0.15


def test_reset(monitor):
    fill(monitor, *[20.0] * 10)
    monitor.reset()
    assert monitor.samples == []
    assert monitor.average_fps == 60.0
    assert not monitor.is_stable


def test_custom_window():
    monitor = PerformanceMonitor(MonitorConfig(stability_sample_count=3))
    fill(monitor, 60.0, 61.0, 59.0)
    assert monitor.can_use_heavy_effects
