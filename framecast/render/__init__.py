from framecast.render.composition import Composition, load_composition
from framecast.render.frame_context import (
    AudioFrame,
    ExternalSignals,
    FrameContext,
    build_frame_context,
    paint_frame,
)
from framecast.render.partitioner import RenderPartition, partition_frames, resolve_worker_count
from framecast.render.pipeline import RenderPipeline, RenderProgress, RenderStatus
from framecast.render.playback import PlaybackEngine, PlaybackState
from framecast.render.reassembly import ChunkReassembler
from framecast.render.timeline import Clip, FontSpec, RenderConfig, Timeline
from framecast.render.worker import ChunkResult, render_partition

__all__ = [
    "Composition",
    "load_composition",
    "AudioFrame",
    "ExternalSignals",
    "FrameContext",
    "build_frame_context",
    "paint_frame",
    "RenderPartition",
    "partition_frames",
    "resolve_worker_count",
    "RenderPipeline",
    "RenderProgress",
    "RenderStatus",
    "PlaybackEngine",
    "PlaybackState",
    "ChunkReassembler",
    "Clip",
    "FontSpec",
    "RenderConfig",
    "Timeline",
    "ChunkResult",
    "render_partition",
]
