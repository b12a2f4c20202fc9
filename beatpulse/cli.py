"""Command-line interface for beatpulse offline simulation."""

import json
import random
import sys
from pathlib import Path

import click

from .config import DEFAULT_CONFIG, load_config
from .effects import EFFECT_TIERS
from .exceptions import AudioLoadError, ConfigError, UnknownEffectError
from .logging_config import setup_logging
from .models import EffectName
from .session import BeatSession, SimulationReport
from .spectrum import FileSpectrumSource
from .timeline import timeline_from_json, timeline_to_json


def format_time(seconds):
    """Formats seconds into M:SS.S format.

    Args:
        seconds: Time in seconds, or None.

    Returns:
        str: Formatted time string or "N/A" if None.

    Example:
        >>> format_time(125.3)
        '2:05.3'
    """
    if seconds is None:
        return "N/A"
    minutes = int(seconds // 60)
    secs = seconds % 60
    return f"{minutes}:{secs:04.1f}"


def report_to_dict(report: SimulationReport):
    """Convert a simulation report to a JSON-serializable dict."""
    return {
        "file": report.source_name,
        "duration": round(report.duration, 3),
        "mode": report.final_mode.value,
        "performance": {
            "level": report.performance_level.name.lower(),
            "average_fps": round(report.average_fps, 1),
        },
        "beats": [
            {
                "time": round(b.media_time, 3),
                "strength": round(b.strength, 3),
                "synthetic": b.synthetic,
            }
            for b in report.beats
        ],
        "pulses": report.pulse_counts,
        "timeline": [
            {"video_time": round(s.media_time, 4), "effect": s.effect.value} for s in report.timeline
        ],
    }


def format_report(report: SimulationReport, max_beats: int = 20):
    """Format a simulation report for text output."""
    lines = [f"Simulated: {report.source_name}"]
    lines.append(f"Duration: {format_time(report.duration)}")
    lines.append(f"Detection mode: {report.final_mode.value}")
    lines.append(
        f"Performance: {report.performance_level.name.lower()} ({report.average_fps:.1f} fps)"
    )
    lines.append(f"Beats: {len(report.beats)} ({report.spectral_beats} spectral)")
    for beat in report.beats[:max_beats]:
        kind = "timer" if beat.synthetic else "spectral"
        lines.append(f"  {format_time(beat.media_time)}  strength {beat.strength:.2f}  ({kind})")
    if len(report.beats) > max_beats:
        lines.append(f"  ... {len(report.beats) - max_beats} more")

    if report.pulses:
        lines.append("Effect pulses:")
        for name, count in report.pulse_counts.items():
            tier = EFFECT_TIERS[EffectName.parse(name)].value
            lines.append(f"  {name} ({tier}): {count}")
    else:
        lines.append("No effect pulses")
    return "\n".join(lines)


def _load_source(audio_file):
    if not Path(audio_file).exists():
        raise AudioLoadError("Unable to load audio file")
    return FileSpectrumSource.from_file(audio_file)


def _build_config(config_file, constrained):
    config = load_config(config_file) if config_file else DEFAULT_CONFIG
    if constrained and not config.constrained_device:
        config = config.for_constrained_device()
    return config


def _emit(report, output_format, show, source=None, width=70):
    if output_format == "json":
        click.echo(json.dumps(report_to_dict(report), indent=2))
    else:
        click.echo(format_report(report))
    if show:
        from .visualizer import render_beat_timeline

        y = source.y if source is not None else None
        sr = source.sr if source is not None else None
        render_beat_timeline(report, y=y, sr=sr, width=width, tiers=EFFECT_TIERS)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx, verbose):
    """beatpulse - beat-synced effect scheduling for arbitrary soundtracks."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@cli.command()
@click.argument("audio_file")
@click.option("--fps", default=60.0, type=float, help="Simulated render rate (default: 60)")
@click.option("--duration", default=None, type=float, help="Stop after this many seconds")
@click.option("--config", "config_file", default=None, help="JSON file of tunables")
@click.option("--constrained", is_flag=True, help="Use the constrained-device profile")
@click.option("--seed", default=None, type=int, help="Seed for effect selection")
@click.option("--pin", default=None, help="Only pulse this effect (e.g. Zoom)")
@click.option("--format", "output_format", default="text", type=click.Choice(["text", "json"]))
@click.option("--timeline-out", default=None, help="Write recorded effect selections to this file")
@click.option("--show", is_flag=True, help="Render the beat timeline in the terminal")
def simulate(audio_file, fps, duration, config_file, constrained, seed, pin, output_format, timeline_out, show):
    """Run beat detection and effect scheduling over an audio file.

    Example:
        beatpulse simulate track.wav --seed 7 --show
    """
    try:
        config = _build_config(config_file, constrained)
        source = _load_source(audio_file)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except AudioLoadError:
        click.echo("Error: Unable to load audio file", err=True)
        sys.exit(1)

    session = BeatSession(source, config=config, rng=random.Random(seed), record_pulses=True)
    if pin:
        try:
            session.scheduler.pin_single_effect(pin)
        except UnknownEffectError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    report = session.simulate(fps=fps, duration=duration)
    session.close()

    if timeline_out:
        Path(timeline_out).write_text(timeline_to_json(report.timeline), encoding="utf-8")
        click.echo(f"Timeline written: {timeline_out} ({len(report.timeline)} entries)", err=True)

    _emit(report, output_format, show, source=source)


@cli.command()
@click.argument("audio_file")
@click.argument("timeline_file")
@click.option("--fps", default=30.0, type=float, help="Simulated capture rate (default: 30)")
@click.option("--config", "config_file", default=None, help="JSON file of tunables")
@click.option("--format", "output_format", default="text", type=click.Choice(["text", "json"]))
def replay(audio_file, timeline_file, fps, config_file, output_format):
    """Replay a recorded effect timeline as a capture pass.

    Example:
        beatpulse replay track.wav timeline.json
    """
    try:
        config = _build_config(config_file, False)
        source = _load_source(audio_file)
        timeline = timeline_from_json(Path(timeline_file).read_text(encoding="utf-8"))
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except AudioLoadError:
        click.echo("Error: Unable to load audio file", err=True)
        sys.exit(1)
    except (OSError, ValueError, UnknownEffectError) as e:
        click.echo(f"Error: Unable to read timeline - {e}", err=True)
        sys.exit(1)

    session = BeatSession(source, config=config, record_pulses=True)
    report = session.simulate(fps=fps, timeline=timeline)
    session.close()
    _emit(report, output_format, show=False)


@cli.command()
def effects():
    """List the known effects and their cost tiers."""
    for name in EffectName:
        click.echo(f"{name.value:<15} {EFFECT_TIERS[name].value}")


if __name__ == "__main__":
    cli()
