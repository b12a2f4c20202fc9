import io
import json

import numpy as np
import pytest
from click.testing import CliRunner
from rich.console import Console

from beatpulse.cli import cli
from beatpulse.effects import EFFECT_TIERS
from beatpulse.models import DetectionMode, EffectName, EffectTier
from beatpulse.session import BeatSession
from beatpulse.spectrum import FileSpectrumSource
from beatpulse.visualizer import render_beat_timeline

SR = 22050


def kick_track(duration=8.0, period=0.5, seed=0):
    """Low noise floor with a 60 Hz burst every period seconds."""
    rng = np.random.RandomState(seed)
    y = 0.01 * rng.randn(int(SR * duration))
    kick_len = int(0.2 * SR)
    t = np.arange(kick_len) / SR
    kick = 0.8 * np.sin(2 * np.pi * 60 * t)
    for start in np.arange(0.0, duration, period):
        i = int(start * SR)
        end = min(i + kick_len, len(y))
        y[i:end] += kick[: end - i]
    return y


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def kick_file(tmp_path):
    file_path = tmp_path / "kicks.wav"
    import soundfile as sf

    sf.write(str(file_path), kick_track(), SR)
    return str(file_path)


@pytest.fixture
def silent_file(tmp_path):
    file_path = tmp_path / "silence.wav"
    import soundfile as sf

    sf.write(str(file_path), np.zeros(SR * 6), SR)
    return str(file_path)


# --- Session ---


def test_session_detects_kicks():
    session = BeatSession(FileSpectrumSource(kick_track(), SR), record_pulses=True)
    report = session.simulate(fps=60)

    assert report.final_mode is DetectionMode.SPECTRAL
    spectral = [b for b in report.beats if not b.synthetic]
    assert len(spectral) >= 4
    assert np.all(np.diff([b.timestamp for b in spectral]) >= 0.25 - 1e-9)
    assert all(0.0 <= b.strength <= 1.0 for b in report.beats)

    assert report.pulses
    # Nothing pulses before the scheduler warm-up has passed
    assert min(p.start for p in report.pulses) >= spectral[0].media_time + 1.5 - 1e-6
    for pulse in report.pulses:
        assert pulse.end is not None
        assert pulse.duration <= 0.1 + 2 / 60


def test_session_silence_falls_back_to_timer():
    session = BeatSession(FileSpectrumSource(np.zeros(SR * 6), SR))
    report = session.simulate(fps=60)
    assert report.final_mode is DetectionMode.FALLBACK_TIMER
    assert report.beats
    assert all(b.synthetic for b in report.beats)


def test_session_low_fps_never_uses_heavy_effects():
    session = BeatSession(FileSpectrumSource(kick_track(), SR), record_pulses=True)
    report = session.simulate(fps=20)
    assert report.pulses
    assert all(EFFECT_TIERS[p.effect] is not EffectTier.HEAVY for p in report.pulses)


def test_session_muted_produces_no_beats():
    session = BeatSession(FileSpectrumSource(kick_track(), SR), mute_probe=lambda: True)
    report = session.simulate(fps=60)
    assert report.beats == []


def test_session_close_stops_everything():
    session = BeatSession(FileSpectrumSource(kick_track(), SR))
    session.scheduler.trigger("Zoom")
    session.close()
    assert not session.sinks[EffectName.ZOOM].is_active()
    assert session.detector.listener_count == 0
    assert session.tasks.pending == 0


def test_render_beat_timeline():
    y = kick_track()
    session = BeatSession(FileSpectrumSource(y, SR, name="kicks.wav"), record_pulses=True)
    report = session.simulate(fps=60)

    buffer = io.StringIO()
    render_beat_timeline(report, y=y, sr=SR, width=60, tiers=EFFECT_TIERS, console=Console(file=buffer, width=120))
    output = buffer.getvalue()
    assert "kicks.wav" in output
    assert "beats" in output
    assert "energy" in output


# --- CLI ---


def test_simulate_valid_audio_file(runner, kick_file):
    result = runner.invoke(cli, ["simulate", kick_file, "--seed", "3"])
    assert result.exit_code == 0
    assert "Simulated:" in result.output
    assert "Beats:" in result.output
    assert "Detection mode: spectral" in result.output
    assert "Effect pulses:" in result.output


def test_simulate_missing_file(runner):
    result = runner.invoke(cli, ["simulate", "nonexistent.wav"])
    assert result.exit_code != 0
    assert "Error: Unable to load audio file" in result.output


def test_simulate_corrupted_file(runner, tmp_path):
    bad = tmp_path / "bad.wav"
    bad.write_text("this is not audio")
    result = runner.invoke(cli, ["simulate", str(bad)])
    assert result.exit_code != 0
    assert "Error: Unable to load audio file" in result.output


def test_simulate_json_output(runner, kick_file):
    result = runner.invoke(cli, ["simulate", kick_file, "--format", "json", "--seed", "1"])
    assert result.exit_code == 0

    data = json.loads(result.stdout)
    assert data["mode"] == "spectral"
    assert data["beats"]
    assert "level" in data["performance"]
    assert "average_fps" in data["performance"]
    assert all(set(entry) == {"video_time", "effect"} for entry in data["timeline"])


def test_simulate_silence_uses_fallback(runner, silent_file):
    result = runner.invoke(cli, ["simulate", silent_file, "--format", "json"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["mode"] == "fallback_timer"
    assert data["beats"]
    assert all(b["synthetic"] for b in data["beats"])


def test_simulate_pinned_effect(runner, kick_file):
    result = runner.invoke(cli, ["simulate", kick_file, "--pin", "vignette", "--format", "json"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert set(data["pulses"]) == {"Vignette"}


def test_simulate_unknown_pin(runner, kick_file):
    result = runner.invoke(cli, ["simulate", kick_file, "--pin", "Sparkles"])
    assert result.exit_code != 0
    assert "Unknown effect: Sparkles" in result.output


def test_simulate_bad_config(runner, kick_file, tmp_path):
    config = tmp_path / "tunables.json"
    config.write_text(json.dumps({"loudness": 3}))
    result = runner.invoke(cli, ["simulate", kick_file, "--config", str(config)])
    assert result.exit_code != 0
    assert "Unknown setting: loudness" in result.output


def test_simulate_constrained_and_show(runner, kick_file):
    result = runner.invoke(cli, ["simulate", kick_file, "--constrained", "--show"])
    assert result.exit_code == 0
    assert "beats" in result.output
    assert "energy" in result.output


def test_timeline_export_and_replay(runner, kick_file, tmp_path):
    timeline = tmp_path / "timeline.json"
    result = runner.invoke(cli, ["simulate", kick_file, "--seed", "5", "--timeline-out", str(timeline)])
    assert result.exit_code == 0
    entries = json.loads(timeline.read_text())
    assert entries

    result = runner.invoke(cli, ["replay", kick_file, str(timeline), "--format", "json"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["pulses"]
    assert set(data["pulses"]) <= {e["effect"] for e in entries}


def test_replay_invalid_timeline(runner, kick_file, tmp_path):
    timeline = tmp_path / "timeline.json"
    timeline.write_text('{"not": "a list"}')
    result = runner.invoke(cli, ["replay", kick_file, str(timeline)])
    assert result.exit_code != 0
    assert "Error: Unable to read timeline" in result.output


def test_effects_command(runner):
    result = runner.invoke(cli, ["effects"])
    assert result.exit_code == 0
    assert "LensDistortion" in result.output
    assert "heavy" in result.output
    assert result.output.count("\n") == len(EffectName)


def test_simulate_requires_file(runner):
    result = runner.invoke(cli, ["simulate"])
    assert result.exit_code != 0
