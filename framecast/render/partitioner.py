"""Split a render job into contiguous per-worker frame ranges."""

import logging
import os
from dataclasses import dataclass

from framecast.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderPartition:
    """Frames ``[start_frame, end_frame)`` rendered by worker ``worker_index``."""

    worker_index: int
    start_frame: int
    end_frame: int

    @property
    def frame_count(self) -> int:
        return self.end_frame - self.start_frame

    @property
    def is_empty(self) -> bool:
        return self.end_frame <= self.start_frame

    def frames(self) -> range:
        return range(self.start_frame, self.end_frame)

    def to_dict(self) -> dict[str, int]:
        return {
            "worker_index": self.worker_index,
            "start_frame": self.start_frame,
            "end_frame": self.end_frame,
        }


def resolve_worker_count(requested: int | None) -> int:
    """Return ``requested``, or one worker per CPU when it is 0/None."""
    if requested is None or requested == 0:
        return os.cpu_count() or 1
    if requested < 0:
        raise ConfigurationError(f"Worker count must be positive, got {requested}", field="workers")
    return requested


def partition_frames(total_frames: int, worker_count: int) -> list[RenderPartition]:
    """Divide ``[0, total_frames)`` into ``worker_count`` contiguous ranges.

    Range sizes differ by at most one frame; the first ``total_frames %
    worker_count`` workers take the extra frame. When there are more workers
    than frames, the trailing partitions are empty.

    Example:
        partition_frames(100, 3) -> [0, 34), [34, 67), [67, 100)
    """
    if worker_count < 1:
        raise ConfigurationError(f"Worker count must be at least 1, got {worker_count}", field="workers")
    if total_frames < 0:
        raise ConfigurationError(f"Total frames must not be negative, got {total_frames}")

    base, extra = divmod(total_frames, worker_count)
    partitions: list[RenderPartition] = []
    start = 0
    for index in range(worker_count):
        size = base + 1 if index < extra else base
        partitions.append(RenderPartition(worker_index=index, start_frame=start, end_frame=start + size))
        start += size

    logger.debug(
        f"[PARTITION] {total_frames} frames -> "
        f"{[(p.start_frame, p.end_frame) for p in partitions]}"
    )
    return partitions
