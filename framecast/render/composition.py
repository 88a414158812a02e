"""Author-facing composition facade.

A ``Composition`` bundles a ``RenderConfig`` with its ``Timeline``. Scripts
usually build one at module level so process-pool and Celery workers can
rebuild it from an import reference::

    # myvideo.py
    from framecast import Composition

    comp = Composition(width=1280, height=720, fps=30, duration_seconds=10)

    def title(ctx):
        ctx.draw.text((40, 40), "Hello", fill="white")

    comp.add_clip(0, 3, title)

    # framecast render myvideo:comp --workers 4
"""

import importlib
import logging
from dataclasses import replace
from typing import Any, Optional

from framecast.exceptions import CompositionLoadError
from framecast.render.feeds import RenderFeeds, prepare_feeds
from framecast.render.interfaces import DrawingSurface
from framecast.render.pipeline import RenderPipeline
from framecast.render.playback import DecodedAudioTrack, PlaybackEngine
from framecast.render.timeline import Clip, DrawFunction, Number, RenderConfig, Timeline
from framecast.services.surface import PillowSurface

logger = logging.getLogger(__name__)


class Composition:
    """Render configuration plus the clips painted on it."""

    def __init__(
        self,
        config: Optional[RenderConfig] = None,
        *,
        reference: Optional[str] = None,
        **config_fields: Any,
    ):
        self.config = config or RenderConfig(**config_fields)
        self.timeline = Timeline(self.config.fps)
        # Import reference ("module:attr") used by process and Celery workers
        self.reference = reference

    def add_clip(
        self,
        start_seconds: Number,
        duration_seconds: Number,
        draw: DrawFunction,
        z_index: int = 0,
        label: Optional[str] = None,
    ) -> Clip:
        return self.timeline.add_clip(start_seconds, duration_seconds, draw, z_index=z_index, label=label)

    def clip(
        self,
        start_seconds: Number,
        duration_seconds: Number,
        z_index: int = 0,
        label: Optional[str] = None,
    ):
        """Decorator form of ``add_clip``."""

        def decorator(draw: DrawFunction) -> DrawFunction:
            self.add_clip(start_seconds, duration_seconds, draw, z_index=z_index, label=label or draw.__name__)
            return draw

        return decorator

    def clear_clips(self) -> None:
        self.timeline.clear_clips()

    def with_overrides(self, **overrides: Any) -> "Composition":
        """Copy sharing this timeline, with some config fields replaced."""
        overrides = {k: v for k, v in overrides.items() if v is not None}
        if not overrides:
            return self
        copy = Composition.__new__(Composition)
        copy.config = replace(self.config, **overrides)
        copy.timeline = self.timeline
        copy.reference = self.reference
        return copy

    def pipeline(self, **kwargs: Any) -> RenderPipeline:
        kwargs.setdefault("composition_ref", self.reference)
        return RenderPipeline(self.config, self.timeline, **kwargs)

    async def render(
        self,
        output_path: Optional[str] = None,
        *,
        resume: bool = False,
        **kwargs: Any,
    ) -> str:
        """Render the whole composition to ``output_path``."""
        return await self.pipeline(**kwargs).render(output_path, resume=resume)

    def player(
        self,
        *,
        surface: Optional[DrawingSurface] = None,
        feeds: Optional[RenderFeeds] = None,
        **kwargs: Any,
    ) -> PlaybackEngine:
        """Build a playback engine for interactive preview.

        Video frames are extracted with the same cache the offline render
        uses, so both modes resolve identical frame files.
        """
        surface = surface or PillowSurface.for_config(self.config)
        if feeds is None and self.config.videos:
            feeds = prepare_feeds(replace(self.config, audio_file=None))
        if "audio" not in kwargs and self.config.audio_file:
            kwargs["audio"] = DecodedAudioTrack(self.config.audio_file)
        return PlaybackEngine(
            self.config,
            self.timeline,
            surface,
            video_frames=feeds.videos if feeds is not None else None,
            **kwargs,
        )

    def __repr__(self) -> str:
        return (
            f"Composition({self.config.width}x{self.config.height}, fps={self.config.fps}, "
            f"duration={self.config.duration_seconds}s, clips={len(self.timeline)})"
        )


def load_composition(reference: str) -> Composition:
    """Import a composition from ``"package.module:attribute"``.

    The attribute may be a ``Composition`` or a zero-argument callable that
    returns one.

    Raises:
        CompositionLoadError: if the module or attribute cannot be loaded
    """
    module_name, _, attr = reference.partition(":")
    if not module_name or not attr:
        raise CompositionLoadError(reference, "expected 'module:attribute'")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise CompositionLoadError(reference, str(e)) from e

    target: Any = module
    for part in attr.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            raise CompositionLoadError(reference, f"no attribute '{part}'") from e

    if not isinstance(target, Composition) and callable(target):
        target = target()
    if not isinstance(target, Composition):
        raise CompositionLoadError(reference, f"{type(target).__name__} is not a Composition")

    if target.reference is None:
        target.reference = reference
    logger.debug(f"[COMPOSITION] Loaded {reference}: {target!r}")
    return target
