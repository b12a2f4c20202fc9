"""Rich terminal renderer for beat and effect-pulse timelines."""

import os
from typing import List, Sequence

import librosa
import numpy as np
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from .models import BeatEvent, EffectName, PulseRecord
from .session import SimulationReport

BLOCKS = " ▁▂▃▄▅▆▇█"
COLORS = ["blue", "cyan", "green", "yellow", "red"]
TIER_COLORS = {"light": "green", "medium": "yellow", "heavy": "red"}


def _amplitude_color(level: float) -> str:
    """Map normalized amplitude (0-1) to a color name."""
    idx = min(int(level * len(COLORS)), len(COLORS) - 1)
    return COLORS[idx]


def _format_time(seconds: float) -> str:
    """Format seconds as M:SS."""
    m = int(seconds) // 60
    s = int(seconds) % 60
    return f"{m}:{s:02d}"


def _column(t: float, duration: float, width: int) -> int:
    if duration <= 0:
        return 0
    return min(max(int(t / duration * width), 0), width - 1)


def compute_envelope(y: np.ndarray, sr: int, width: int) -> List[float]:
    """RMS envelope of y downsampled to width columns, normalized to 0-1."""
    if len(y) == 0 or width <= 0:
        return [0.0] * max(width, 0)
    hop = max(1, len(y) // width)
    rms = librosa.feature.rms(y=y, frame_length=hop * 2, hop_length=hop)[0]
    if len(rms) > width:
        indices = np.linspace(0, len(rms) - 1, width, dtype=int)
        rms = rms[indices]
    elif len(rms) < width:
        rms = np.pad(rms, (0, width - len(rms)))
    peak = rms.max()
    if peak > 0:
        rms = rms / peak
    return rms.tolist()


def build_envelope_line(envelope: Sequence[float]) -> Text:
    """Build a Rich Text line of colored Unicode block characters."""
    text = Text()
    for amp in envelope:
        idx = min(int(amp * (len(BLOCKS) - 1)), len(BLOCKS) - 1)
        text.append(BLOCKS[idx], style=_amplitude_color(amp))
    return text


def build_beat_line(beats: Sequence[BeatEvent], duration: float, width: int) -> Text:
    """Mark beats by column; strong beats are bold, synthetic ones dim."""
    cells = [None] * width
    for beat in beats:
        pos = _column(beat.media_time, duration, width)
        previous = cells[pos]
        if previous is None or beat.strength > previous.strength:
            cells[pos] = beat

    line = Text()
    for beat in cells:
        if beat is None:
            line.append(" ")
        elif beat.synthetic:
            line.append("·", style="dim")
        else:
            line.append("│", style="bold magenta" if beat.strength >= 0.5 else "magenta")
    return line


def build_pulse_line(pulses: Sequence[PulseRecord], effect: EffectName, duration: float, width: int, color: str) -> Text:
    """Fill the columns where the given effect was active."""
    cells = [" "] * width
    for pulse in pulses:
        if pulse.effect is not effect:
            continue
        start = _column(pulse.start, duration, width)
        end = _column(pulse.end if pulse.end is not None else pulse.start, duration, width)
        for pos in range(start, end + 1):
            cells[pos] = "■"
    return Text("".join(cells), style=color)


def build_timeline(duration: float, width: int, step: float = 30.0) -> Text:
    """Build a ruler with a label every step seconds."""
    chars = [" "] * width
    if duration > 0:
        t = 0.0
        while t <= duration:
            pos = int(t / duration * (width - 1))
            for i, ch in enumerate(_format_time(t)):
                if pos + i < width:
                    chars[pos + i] = ch
            t += step
    return Text("".join(chars), style="dim")


def render_beat_timeline(
    report: SimulationReport,
    y: np.ndarray = None,
    sr: int = None,
    width: int = 70,
    tiers: dict = None,
    console: Console = None,
) -> None:
    """Render the beats and effect pulses of a simulation to the terminal.

    Args:
        report: Result of BeatSession.simulate().
        y: Optional audio samples for the envelope row.
        sr: Sample rate of y.
        width: Character width of the display.
        tiers: Optional EffectName -> EffectTier map used for row colors.
        console: Console to print to (default: a new stdout console).
    """
    console = console or Console()
    duration = report.duration

    header = Text(
        f"Beats: {len(report.beats)} ({report.spectral_beats} spectral)  "
        f"Mode: {report.final_mode.value}  "
        f"Perf: {report.performance_level.name.lower()} ({report.average_fps:.0f} fps)"
    )

    content = Text()
    content.append_text(header)
    content.append("\n\n")
    if y is not None and sr:
        content.append_text(build_envelope_line(compute_envelope(y, sr, width)))
        content.append("  energy\n")
    content.append_text(build_beat_line(report.beats, duration, width))
    content.append("  beats\n")

    pulsed = [name for name in EffectName if any(p.effect is name for p in report.pulses)]
    for name in pulsed:
        tier = tiers.get(name) if tiers else None
        color = TIER_COLORS.get(tier.value, "white") if tier is not None else "white"
        content.append_text(build_pulse_line(report.pulses, name, duration, width, color))
        content.append(f"  {name.value}\n")

    content.append_text(build_timeline(duration, width))

    title = os.path.basename(report.source_name)
    console.print(Panel(content, title=title, expand=False))
