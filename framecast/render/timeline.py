"""Timeline and clip model.

A composition is a set of clips, each active over a half-open window of frame
indices ``[start_frame, end_frame)`` and painted in ascending ``z_index``
order. Clips with the same ``z_index`` paint in insertion order.

Seconds are converted to frames with exact rational arithmetic so that the
frame grid never depends on float rounding (``30 * 0.1`` is 3 frames, not 4).
"""

import logging
import math
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any, Callable, Iterator, Union
from uuid import uuid4

from framecast.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

Number = Union[int, float, Fraction]
DrawFunction = Callable[[Any], None]

# Floats are snapped to the nearest fraction with a denominator up to this.
_MAX_DENOMINATOR = 1_000_000


def exact(value: Number) -> Fraction:
    """Convert a user-supplied number to an exact Fraction."""
    if isinstance(value, Fraction):
        return value
    if isinstance(value, int):
        return Fraction(value)
    return Fraction(value).limit_denominator(_MAX_DENOMINATOR)


def seconds_to_frame(seconds: Number, fps: Number) -> int:
    """``floor(seconds * fps)``."""
    return math.floor(exact(seconds) * exact(fps))


def total_frame_count(fps: Number, duration_seconds: Number) -> int:
    """``ceil(fps * duration_seconds)``."""
    return math.ceil(exact(fps) * exact(duration_seconds))


def _number_to_json(value: Number) -> int | float | str:
    # Fractions travel as "num/den"; ints and floats keep their type
    if isinstance(value, Fraction):
        return str(value)
    return value


def _number_from_json(value: int | float | str) -> Number:
    if isinstance(value, str):
        return Fraction(value)
    return value


# ============================================================================
# Config
# ============================================================================


@dataclass(frozen=True)
class FontSpec:
    """A font file to load under a name."""

    name: str
    path: str


@dataclass(frozen=True)
class RenderConfig:
    """Immutable per-render parameters."""

    width: int
    height: int
    fps: Number
    duration_seconds: Number
    data: Any = None
    assets: tuple[str, ...] = ()
    videos: tuple[str, ...] = ()
    fonts: tuple[FontSpec, ...] = ()
    audio_file: str | None = None
    output_file: str = "output.mp4"

    def __post_init__(self):
        # Accept lists from callers, store tuples
        object.__setattr__(self, "assets", tuple(self.assets))
        object.__setattr__(self, "videos", tuple(self.videos))
        object.__setattr__(
            self,
            "fonts",
            tuple(f if isinstance(f, FontSpec) else FontSpec(**f) for f in self.fonts),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary (``data`` must be JSON-compatible)."""
        return {
            "width": self.width,
            "height": self.height,
            "fps": _number_to_json(self.fps),
            "duration_seconds": _number_to_json(self.duration_seconds),
            "data": self.data,
            "assets": list(self.assets),
            "videos": list(self.videos),
            "fonts": [{"name": f.name, "path": f.path} for f in self.fonts],
            "audio_file": self.audio_file,
            "output_file": self.output_file,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "RenderConfig":
        values = dict(payload)
        values["fps"] = _number_from_json(values["fps"])
        values["duration_seconds"] = _number_from_json(values["duration_seconds"])
        return cls(**values)

    @property
    def total_frames(self) -> int:
        return total_frame_count(self.fps, self.duration_seconds)

    @property
    def fps_float(self) -> float:
        return float(exact(self.fps))

    @property
    def duration_float(self) -> float:
        return float(exact(self.duration_seconds))

    def validate(self) -> "RenderConfig":
        """Fail fast on configurations that can never render."""
        if self.width <= 0 or self.height <= 0:
            raise ConfigurationError(
                f"Output size must be positive, got {self.width}x{self.height}",
                field="width" if self.width <= 0 else "height",
            )
        if exact(self.fps) <= 0:
            raise ConfigurationError(f"fps must be positive, got {self.fps}", field="fps")
        if exact(self.duration_seconds) < 0:
            raise ConfigurationError(
                f"duration_seconds must not be negative, got {self.duration_seconds}",
                field="duration_seconds",
            )
        if self.total_frames == 0:
            raise ConfigurationError("Composition has no frames", field="duration_seconds")
        return self


# ============================================================================
# Clips
# ============================================================================


@dataclass(frozen=True)
class Clip:
    """A scheduled visual layer with a paint callback."""

    id: str
    start_frame: int
    end_frame: int
    z_index: int = 0
    draw: DrawFunction = field(default=lambda ctx: None, compare=False, repr=False)
    label: str | None = field(default=None, compare=False)

    @property
    def duration_frames(self) -> int:
        return self.end_frame - self.start_frame

    def is_active(self, frame: int) -> bool:
        return self.start_frame <= frame < self.end_frame


class Timeline:
    """Ordered set of clips for one composition.

    The clip set is treated as immutable while a render pass runs; mutate it
    only between renders (or between preview sessions).
    """

    def __init__(self, fps: Number):
        self.fps = fps
        self._clips: list[Clip] = []

    def add_clip(
        self,
        start_seconds: Number,
        duration_seconds: Number,
        draw: DrawFunction,
        z_index: int = 0,
        label: str | None = None,
    ) -> Clip:
        """Schedule ``draw`` for ``duration_seconds`` starting at ``start_seconds``.

        No bounds checking: clips scheduled past the end of the composition
        never activate, and a non-positive duration yields a clip that is never
        active.
        """
        start_frame = seconds_to_frame(start_seconds, self.fps)
        end_frame = start_frame + seconds_to_frame(duration_seconds, self.fps)

        clip = Clip(
            id=uuid4().hex,
            start_frame=start_frame,
            end_frame=end_frame,
            z_index=z_index,
            draw=draw,
            label=label,
        )
        if end_frame <= start_frame:
            logger.debug(f"[TIMELINE] Clip {clip.id} has no active frames ({start_frame}-{end_frame})")

        self._clips.append(clip)
        # list.sort is stable: equal z_index keeps insertion order
        self._clips.sort(key=lambda c: c.z_index)
        return clip

    def clear_clips(self) -> None:
        """Remove every clip (e.g. when switching templates)."""
        self._clips.clear()

    def active_clips(self, frame: int) -> list[Clip]:
        """Clips active at ``frame``, in paint order."""
        return [clip for clip in self._clips if clip.start_frame <= frame < clip.end_frame]

    @property
    def clips(self) -> tuple[Clip, ...]:
        return tuple(self._clips)

    def __len__(self) -> int:
        return len(self._clips)

    def __iter__(self) -> Iterator[Clip]:
        return iter(tuple(self._clips))
