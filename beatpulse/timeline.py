"""Recording of effect selections on the media timeline, for export replay."""

import json
from typing import List

from .logging_config import get_logger
from .models import EffectName, EffectSelection
from .spectrum import PlaybackProbe

logger = get_logger(__name__)


class EffectTimelineTracker:
    """Records which effect was selected at which media time."""

    def __init__(self, media: PlaybackProbe):
        self.media = media
        self._entries: List[EffectSelection] = []

    def record(self, effect: EffectName) -> bool:
        """Record a selection at the current media time; ignored when not playing."""
        if self.media is None or not self.media.is_playing():
            return False
        media_time = self.media.current_playback_time()
        self._entries.append(EffectSelection(media_time=media_time, effect=effect))
        logger.debug("Recorded %s at %.2fs", effect.value, media_time)
        return True

    def timeline(self) -> List[EffectSelection]:
        return list(self._entries)

    def clear(self):
        self._entries.clear()
        logger.debug("Timeline cleared")

    @property
    def has_timeline(self) -> bool:
        return len(self._entries) > 0


def timeline_to_json(entries: List[EffectSelection], indent: int = 2) -> str:
    """Serialize a timeline as a list of {"video_time", "effect"} objects."""
    return json.dumps(
        [{"video_time": round(e.media_time, 4), "effect": e.effect.value} for e in entries],
        indent=indent,
    )


def timeline_from_json(text: str) -> List[EffectSelection]:
    """Parse a serialized timeline, sorted by media time.

    Raises:
        UnknownEffectError: If an entry names an unknown effect.
        ValueError: If the document is not a list of timeline entries.
    """
    data = json.loads(text)
    if not isinstance(data, list):
        raise ValueError("Timeline must be a JSON list")
    entries = []
    for item in data:
        if not isinstance(item, dict) or "video_time" not in item or "effect" not in item:
            raise ValueError(f"Invalid timeline entry: {item!r}")
        entries.append(
            EffectSelection(media_time=float(item["video_time"]), effect=EffectName.parse(item["effect"]))
        )
    entries.sort(key=lambda e: e.media_time)
    return entries
