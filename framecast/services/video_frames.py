"""Video frame extraction with an on-disk cache.

Each referenced video is decoded once into numbered JPEGs at the composition's
frame rate. The cache key is file name + size + fps; a ``done.marker`` file
marks a finished extraction so interrupted runs are redone.
"""

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path

from framecast.config import get_settings
from framecast.render.timeline import Number
from framecast.services.encoder import ffmpeg_rate

logger = logging.getLogger(__name__)

FRAME_PATTERN = "frame_%05d.jpg"
DONE_MARKER = "done.marker"


@dataclass(frozen=True)
class VideoFrameMap:
    """Extracted frames of one video."""

    source: str
    folder: str
    frame_count: int

    def frame_index(self, frame: int) -> int | None:
        """Local video frame for composition ``frame``; videos loop."""
        if self.frame_count <= 0:
            return None
        return frame % self.frame_count

    def frame_path(self, frame: int) -> str | None:
        index = self.frame_index(frame)
        if index is None:
            return None
        # ffmpeg numbers extracted frames from 1
        return os.path.join(self.folder, f"frame_{index + 1:05d}.jpg")


def _count_frames(folder: Path) -> int:
    return sum(1 for name in os.listdir(folder) if name.endswith(".jpg"))


class VideoFrameExtractor:
    """Extracts video frames into a shared cache directory."""

    def __init__(self, cache_dir: str | None = None, ffmpeg_path: str | None = None):
        settings = get_settings()
        self.cache_dir = Path(cache_dir or settings.video_cache_dir)
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path

    def cache_key(self, video_path: str, fps: Number) -> str:
        size = os.stat(video_path).st_size
        name = re.sub(r"[^a-zA-Z0-9]", "_", os.path.basename(video_path))
        rate = ffmpeg_rate(fps).replace("/", "_")
        return f"{name}_{size}_{rate}fps"

    def build_command(self, video_path: str, fps: Number, output_dir: Path) -> list[str]:
        return [
            self.ffmpeg_path,
            "-y",
            "-i", video_path,
            "-vf", f"fps={ffmpeg_rate(fps)}",
            "-q:v", "2",
            str(output_dir / FRAME_PATTERN),
        ]

    def extract(self, video_path: str, fps: Number) -> VideoFrameMap:
        """Extract (or reuse cached) frames of ``video_path`` at ``fps``.

        A missing or undecodable video yields a map with zero frames; draw
        callbacks then receive ``None`` for it instead of the render failing.
        """
        try:
            output_dir = self.cache_dir / self.cache_key(video_path, fps)
        except OSError as e:
            logger.warning(f"[VIDEO] Cannot read {video_path}: {e}")
            return VideoFrameMap(source=video_path, folder="", frame_count=0)

        if (output_dir / DONE_MARKER).exists():
            count = _count_frames(output_dir)
            logger.debug(f"[VIDEO] Cache hit for {video_path}: {count} frames")
            return VideoFrameMap(source=video_path, folder=str(output_dir), frame_count=count)

        logger.info(f"[VIDEO] Extracting frames: {os.path.basename(video_path)}")
        output_dir.mkdir(parents=True, exist_ok=True)

        cmd = self.build_command(video_path, fps, output_dir)
        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            logger.warning(f"[VIDEO] Frame extraction failed for {video_path}: {result.stderr[-500:]}")
            return VideoFrameMap(source=video_path, folder=str(output_dir), frame_count=_count_frames(output_dir))

        (output_dir / DONE_MARKER).write_text("done")
        count = _count_frames(output_dir)
        logger.info(f"[VIDEO] Extracted {count} frames from {video_path}")
        return VideoFrameMap(source=video_path, folder=str(output_dir), frame_count=count)
