"""framecast: frame-exact compositions rendered by parallel workers."""

from framecast.render import (
    Composition,
    FontSpec,
    FrameContext,
    PlaybackEngine,
    RenderConfig,
    RenderPipeline,
    Timeline,
    load_composition,
)
from framecast.utils.seeded_random import SeededSequence, seeded_random

__version__ = "0.1.0"

__all__ = [
    "Composition",
    "FontSpec",
    "FrameContext",
    "PlaybackEngine",
    "RenderConfig",
    "RenderPipeline",
    "Timeline",
    "load_composition",
    "SeededSequence",
    "seeded_random",
]
