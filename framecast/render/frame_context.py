"""Per-frame context builder.

``build_frame_context`` is the single place where a frame index becomes the
payload handed to draw callbacks. The interactive player and every offline
worker call it, so for the same ``(config, timeline, frame, signals)`` both
paths produce contexts that compare equal.

The builder is pure: it never reads a clock, never touches the surface and
never mutates the timeline. External signals (audio energy, video frame
references) are merged verbatim.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping, NamedTuple

from framecast.exceptions import FrameRangeError
from framecast.render.interfaces import DrawingSurface
from framecast.render.timeline import Clip, Number, RenderConfig, Timeline, exact
from framecast.utils.interpolation import UTILS, AnimationUtils

AUDIO_BAND_COUNT = 32
ZERO_BANDS: tuple[float, ...] = (0.0,) * AUDIO_BAND_COUNT

_EMPTY: Mapping[str, Any] = MappingProxyType({})


@dataclass(frozen=True)
class AudioFrame:
    """Audio energy for one frame: RMS volume and 32 band energies."""

    rms: float = 0.0
    bands: tuple[float, ...] = ZERO_BANDS


SILENCE = AudioFrame()


@dataclass(frozen=True)
class ExternalSignals:
    """Data from outside the core, already aligned to one frame."""

    audio: AudioFrame = SILENCE
    videos: Mapping[str, str | None] = field(default_factory=dict)


@dataclass(frozen=True)
class FrameContext:
    """Payload passed to every active clip's draw callback."""

    frame: int
    total_frames: int
    progress: float
    width: int
    height: int
    fps: Number
    audio_volume: float = 0.0
    audio_bands: tuple[float, ...] = ZERO_BANDS
    videos: Mapping[str, str | None] = field(default_factory=dict)
    data: Any = None
    local_frame: int = 0
    local_progress: float = 0.0
    # Handles to collaborators; not part of the frame's identity
    surface: DrawingSurface | None = field(default=None, compare=False, repr=False)
    assets: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)
    utils: AnimationUtils = field(default=UTILS, compare=False, repr=False)

    @property
    def time(self) -> float:
        """Frame time in seconds."""
        return float(self.frame / exact(self.fps))

    @property
    def canvas(self) -> Any:
        return getattr(self.surface, "image", None)

    @property
    def draw(self) -> Any:
        return getattr(self.surface, "draw", None)

    def for_clip(self, clip: Clip) -> "FrameContext":
        """Copy of this context with the clip's local timing filled in."""
        local = self.frame - clip.start_frame
        return replace(
            self,
            local_frame=local,
            local_progress=local_progress(local, clip.duration_frames),
        )


class ActiveClip(NamedTuple):
    clip: Clip
    context: FrameContext


class FrameBuild(NamedTuple):
    """Result of building one frame: global context plus paint-ordered clips."""

    context: FrameContext
    clips: tuple[ActiveClip, ...]


def global_progress(frame: int, total_frames: int) -> float:
    if total_frames > 1:
        return frame / (total_frames - 1)
    return 0.0


def local_progress(local_frame: int, duration_frames: int) -> float:
    if duration_frames > 1:
        return local_frame / (duration_frames - 1)
    return 0.0


def build_frame_context(
    config: RenderConfig,
    timeline: Timeline,
    frame: int,
    signals: ExternalSignals | None = None,
    *,
    surface: DrawingSurface | None = None,
    assets: Mapping[str, Any] | None = None,
) -> FrameBuild:
    """Compute the context for ``frame`` and the clips to paint, in order.

    Raises:
        FrameRangeError: if ``frame`` is outside ``[0, total_frames)``
    """
    total_frames = config.total_frames
    if not 0 <= frame < total_frames:
        raise FrameRangeError(frame, total_frames)

    signals = signals or ExternalSignals()

    context = FrameContext(
        frame=frame,
        total_frames=total_frames,
        progress=global_progress(frame, total_frames),
        width=config.width,
        height=config.height,
        fps=config.fps,
        audio_volume=signals.audio.rms,
        audio_bands=tuple(signals.audio.bands),
        videos=MappingProxyType(dict(signals.videos)),
        data=config.data,
        surface=surface,
        assets=assets if assets is not None else _EMPTY,
    )

    clips = tuple(ActiveClip(clip, context.for_clip(clip)) for clip in timeline.active_clips(frame))
    return FrameBuild(context, clips)


def paint_frame(build: FrameBuild, surface: DrawingSurface) -> None:
    """Clear ``surface`` and run every active clip's draw callback in order."""
    surface.clear()
    for active in build.clips:
        active.clip.draw(active.context)
