"""Spectrum sources consumed by the beat detector."""

from typing import Dict, Optional, Protocol, Tuple

import librosa
import numpy as np

from .exceptions import AudioLoadError
from .logging_config import get_logger
from .models import WindowFunction

logger = get_logger(__name__)


class PlaybackProbe(Protocol):
    """Read-only view of the media clock."""

    has_media: bool

    def current_playback_time(self) -> float: ...
    def is_playing(self) -> bool: ...


class SpectrumSource(PlaybackProbe, Protocol):
    """Supplies magnitude-spectrum snapshots of the playing audio on demand."""

    def get_spectrum_snapshot(
        self, window_size: int, window: WindowFunction
    ) -> Optional[np.ndarray]: ...


def compute_bass_energy(spectrum: np.ndarray, bass_range: int) -> float:
    """Sum magnitudes over the bass sub-band.

    Bin 0 (DC) carries no rhythmic information and is skipped, so the band is
    bins 1 .. bass_range - 1.
    """
    if spectrum is None or len(spectrum) < 2:
        return 0.0
    return float(np.sum(spectrum[1:bass_range]))


class FileSpectrumSource:
    """Spectrum source over a decoded audio file with a simulated media clock.

    The clock only moves when advance() is called, which keeps offline runs
    deterministic and lets the render loop drive playback.
    """

    def __init__(self, y: np.ndarray, sr: int, name: str = "<memory>"):
        self.y = np.asarray(y, dtype=np.float32)
        self.sr = int(sr)
        self.name = name
        self.duration = float(len(self.y)) / self.sr if self.sr > 0 else 0.0
        self._position = 0.0
        self._playing = False
        self._windows: Dict[Tuple[str, int], np.ndarray] = {}

    @classmethod
    def from_file(cls, file_path: str) -> "FileSpectrumSource":
        """Decode an audio file (mono, native sample rate).

        Raises:
            AudioLoadError: If the audio file cannot be loaded.
        """
        logger.debug("Loading audio file: %s", file_path)
        try:
            y, sr = librosa.load(file_path, sr=None, mono=True)
        except Exception as e:
            logger.error("Failed to load audio file: %s", e)
            raise AudioLoadError("Unable to load audio file")
        logger.debug("Audio duration: %.1fs at %d Hz", len(y) / sr, sr)
        return cls(y, sr, name=file_path)

    @property
    def has_media(self) -> bool:
        return len(self.y) > 0

    def play(self):
        if self.has_media and self._position < self.duration:
            self._playing = True

    def pause(self):
        self._playing = False

    def stop(self):
        self._playing = False
        self._position = 0.0

    def seek(self, seconds: float):
        self._position = float(np.clip(seconds, 0.0, self.duration))

    def advance(self, dt: float):
        """Move the playback head forward by dt seconds while playing."""
        if not self._playing:
            return
        self._position += dt
        if self._position >= self.duration:
            self._position = self.duration
            self._playing = False
            logger.debug("Playback reached end of media at %.2fs", self.duration)

    def current_playback_time(self) -> float:
        return self._position

    def is_playing(self) -> bool:
        return self._playing

    def _window(self, window: WindowFunction, n: int) -> np.ndarray:
        key = (window.value, n)
        if key not in self._windows:
            self._windows[key] = librosa.filters.get_window(window.value, n, fftbins=True)
        return self._windows[key]

    def get_spectrum_snapshot(
        self, window_size: int, window: WindowFunction = WindowFunction.BLACKMAN_HARRIS
    ) -> Optional[np.ndarray]:
        """Magnitude spectrum of the audio just behind the playback head.

        Args:
            window_size: Number of bins to return; the FFT covers twice as
                many samples.
            window: Window function applied before the FFT.

        Returns:
            Array of window_size non-negative magnitudes, or None when not
            playing or when too little audio has played to fill the window.
        """
        if not self._playing:
            return None

        n = 2 * window_size
        end = min(int(round(self._position * self.sr)), len(self.y))
        if end < n:
            return None

        win = self._window(window, n)
        frame = self.y[end - n : end] * win
        spectrum = np.abs(np.fft.rfft(frame))[:window_size]
        return spectrum / (win.sum() + 1e-10)
