"""FFmpeg frame encoder.

Frames are raw RGBA buffers written to ffmpeg's stdin one at a time, in order.
Closing stdin lets ffmpeg finish the container; the partial output file for a
partition is only usable after ``close()`` returns.
"""

import logging
import subprocess
import tempfile
from pathlib import Path

from framecast.config import get_settings
from framecast.exceptions import EncoderError
from framecast.render.timeline import Number, exact

logger = logging.getLogger(__name__)


def ffmpeg_rate(fps: Number) -> str:
    """Frame rate as ffmpeg expects it (``30`` or ``30000/1001``)."""
    rate = exact(fps)
    if rate.denominator == 1:
        return str(rate.numerator)
    return f"{rate.numerator}/{rate.denominator}"


class FrameEncoder:
    """Pipes raw RGBA frames into an ffmpeg H.264 encode."""

    def __init__(
        self,
        output_path: str | Path,
        width: int,
        height: int,
        fps: Number,
        *,
        ffmpeg_path: str | None = None,
        video_codec: str | None = None,
        pixel_format: str | None = None,
        preset: str | None = None,
        crf: int | None = None,
    ):
        settings = get_settings()
        self.output_path = Path(output_path)
        self.width = width
        self.height = height
        self.fps = fps
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path
        self.video_codec = video_codec or settings.render_video_codec
        self.pixel_format = pixel_format or settings.render_pixel_format
        self.preset = preset or settings.render_preset
        self.crf = crf if crf is not None else settings.render_crf
        self.frames_written = 0
        self._frame_size = width * height * 4
        self._process: subprocess.Popen | None = None
        self._stderr = None

    def build_command(self) -> list[str]:
        """Build the ffmpeg command without executing it."""
        return [
            self.ffmpeg_path,
            "-y",
            "-f", "rawvideo",
            "-pix_fmt", "rgba",
            "-s", f"{self.width}x{self.height}",
            "-r", ffmpeg_rate(self.fps),
            "-i", "-",
            "-c:v", self.video_codec,
            "-pix_fmt", self.pixel_format,
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-movflags", "+faststart",
            str(self.output_path),
        ]

    def start(self) -> "FrameEncoder":
        if self._process is not None:
            return self
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command()
        logger.debug(f"[ENCODER] {' '.join(cmd)}")

        # stderr goes to a temp file so a chatty ffmpeg can never block on a full pipe
        self._stderr = tempfile.TemporaryFile()
        try:
            self._process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=self._stderr,
            )
        except FileNotFoundError as e:
            self._stderr.close()
            raise EncoderError(f"ffmpeg not found: {self.ffmpeg_path}") from e
        return self

    def write_frame(self, frame: bytes) -> None:
        """Write one frame; returns once the bytes are handed to ffmpeg."""
        if len(frame) != self._frame_size:
            raise EncoderError(
                f"Frame {self.frames_written} has {len(frame)} bytes, expected {self._frame_size}"
            )
        if self._process is None:
            self.start()
        try:
            self._process.stdin.write(frame)
            self._process.stdin.flush()
        except (BrokenPipeError, OSError) as e:
            raise EncoderError(
                f"ffmpeg stopped accepting frames at frame {self.frames_written}: {self._stderr_tail()}"
            ) from e
        self.frames_written += 1

    def close(self) -> Path:
        """Finish encoding and return the output path."""
        if self._process is None:
            self.start()
        try:
            self._process.stdin.close()
        except (BrokenPipeError, OSError):
            pass
        returncode = self._process.wait()
        tail = self._stderr_tail()
        self._release()
        if returncode != 0:
            raise EncoderError(f"ffmpeg exited with {returncode}: {tail}")
        logger.debug(f"[ENCODER] Wrote {self.frames_written} frames to {self.output_path}")
        return self.output_path

    def abort(self) -> None:
        """Kill ffmpeg and remove the unfinished output."""
        if self._process is not None and self._process.poll() is None:
            self._process.kill()
            self._process.wait()
        self._release()
        self.output_path.unlink(missing_ok=True)

    def _stderr_tail(self, limit: int = 2000) -> str:
        if self._stderr is None:
            return ""
        self._stderr.seek(0)
        return self._stderr.read().decode("utf-8", errors="replace")[-limit:]

    def _release(self) -> None:
        if self._process is not None and self._process.stdin and not self._process.stdin.closed:
            try:
                self._process.stdin.close()
            except (BrokenPipeError, OSError):
                pass
        if self._stderr is not None:
            self._stderr.close()
            self._stderr = None
        self._process = None

    def __enter__(self) -> "FrameEncoder":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.abort()
        elif self._process is not None:
            self.close()
