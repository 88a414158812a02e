"""Offline worker render loop.

A worker renders one contiguous partition of frames into one encoded chunk.
Frames are processed strictly in increasing order and each frame is handed to
the encoder before the next one is painted, so the encoder never has to
reorder anything.
"""

import json
import logging
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from framecast.exceptions import FramecastError, PartitionRenderError
from framecast.render.feeds import RenderFeeds
from framecast.render.frame_context import build_frame_context, paint_frame
from framecast.render.interfaces import DrawingSurface, FrameSink
from framecast.render.partitioner import RenderPartition
from framecast.render.timeline import RenderConfig, Timeline
from framecast.services.encoder import FrameEncoder
from framecast.services.surface import PillowSurface

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChunkResult:
    """Encoded output of one partition (``path`` is None for empty partitions)."""

    worker_index: int
    path: Optional[str]
    frame_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "worker_index": self.worker_index,
            "path": self.path,
            "frame_count": self.frame_count,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ChunkResult":
        return cls(
            worker_index=payload["worker_index"],
            path=payload["path"],
            frame_count=payload["frame_count"],
        )


def render_partition(
    partition: RenderPartition,
    config: RenderConfig,
    timeline: Timeline,
    feeds: RenderFeeds,
    output_path: str | Path,
    *,
    surface_factory: Callable[[RenderConfig], DrawingSurface] = PillowSurface.for_config,
    encoder_factory: Callable[..., FrameSink] = FrameEncoder,
    progress: Optional[Callable[[int], None]] = None,
) -> ChunkResult:
    """Render every frame of ``partition`` and encode them into ``output_path``.

    Args:
        partition: Frame range to render
        config: Render configuration shared by every worker of the job
        timeline: Clip set (read-only here)
        feeds: Precomputed audio analysis / video frame maps
        output_path: Chunk file to produce
        surface_factory: Builds this worker's private drawing surface
        encoder_factory: Builds the encoder, called as
            ``encoder_factory(output_path, width, height, fps)``
        progress: Called with each frame index once it has been encoded

    Raises:
        PartitionRenderError: if a draw callback or the encoder fails
    """
    tag = f"[WORKER {partition.worker_index}]"
    if partition.is_empty:
        logger.info(f"{tag} Empty partition, nothing to render")
        return ChunkResult(worker_index=partition.worker_index, path=None, frame_count=0)

    logger.info(
        f"{tag} Rendering frames {partition.start_frame}-{partition.end_frame - 1} "
        f"({partition.frame_count} frames) -> {output_path}"
    )

    frame: Optional[int] = None
    try:
        with closing(surface_factory(config)) as surface, encoder_factory(
            output_path, config.width, config.height, config.fps
        ) as encoder:
            assets = getattr(surface, "assets", None)
            for frame in partition.frames():
                build = build_frame_context(
                    config,
                    timeline,
                    frame,
                    feeds.signals(frame),
                    surface=surface,
                    assets=assets,
                )
                paint_frame(build, surface)
                encoder.write_frame(surface.snapshot())
                if progress is not None:
                    progress(frame)
            # Close inside the block so encoder errors are attributed to this partition
            frame = None
            path = encoder.close()
    except PartitionRenderError:
        raise
    except Exception as e:
        logger.error(f"{tag} Failed at frame {frame}: {e}")
        reason = e.message if isinstance(e, FramecastError) else f"{type(e).__name__}: {e}"
        raise PartitionRenderError(partition.worker_index, frame, reason) from e

    logger.info(f"{tag} Finished {partition.frame_count} frames")
    return ChunkResult(worker_index=partition.worker_index, path=str(path), frame_count=partition.frame_count)


# ============================================================================
# Completion markers
# ============================================================================


def marker_path(chunk_path: str | Path) -> Path:
    return Path(chunk_path).with_suffix(".done")


def write_done_marker(result: ChunkResult) -> None:
    """Record a finished chunk so a resumed job can skip its partition."""
    if result.path is None:
        return
    marker_path(result.path).write_text(json.dumps(result.to_dict()))


def read_done_marker(chunk_path: str | Path) -> Optional[ChunkResult]:
    """Result recorded for a finished chunk, or None if it must be re-rendered."""
    marker = marker_path(chunk_path)
    if not marker.exists() or not Path(chunk_path).exists():
        return None
    try:
        return ChunkResult.from_dict(json.loads(marker.read_text()))
    except (ValueError, KeyError) as e:
        logger.warning(f"[WORKER] Ignoring unreadable marker {marker}: {e}")
        return None


def render_and_mark(*args: Any, **kwargs: Any) -> ChunkResult:
    """``render_partition`` followed by ``write_done_marker``."""
    result = render_partition(*args, **kwargs)
    write_done_marker(result)
    return result


# ============================================================================
# Process pool / Celery entry point
# ============================================================================


@dataclass(frozen=True)
class PartitionJob:
    """Everything a separate process needs to render one partition.

    Draw callbacks cannot cross process boundaries, so the composition is
    referenced by import path (``"package.module:attribute"``) and rebuilt in
    the worker process.
    """

    composition_ref: str
    partition: RenderPartition
    config: RenderConfig
    feeds: RenderFeeds
    output_path: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "composition_ref": self.composition_ref,
            "partition": self.partition.to_dict(),
            "config": self.config.to_dict(),
            "feeds": self.feeds.to_dict(),
            "output_path": self.output_path,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "PartitionJob":
        return cls(
            composition_ref=payload["composition_ref"],
            partition=RenderPartition(**payload["partition"]),
            config=RenderConfig.from_dict(payload["config"]),
            feeds=RenderFeeds.from_dict(payload["feeds"]),
            output_path=payload["output_path"],
        )


def run_partition_job(job: PartitionJob) -> ChunkResult:
    """Load the composition named by ``job`` and render its partition."""
    # Imported here: composition depends on the pipeline, which depends on this module
    from framecast.render.composition import load_composition

    composition = load_composition(job.composition_ref)
    return render_and_mark(
        job.partition,
        job.config,
        composition.timeline,
        job.feeds,
        job.output_path,
    )
