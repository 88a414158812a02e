"""Media file information utilities using FFprobe."""

import json
import subprocess
from dataclasses import dataclass
from fractions import Fraction

from framecast.config import get_settings
from framecast.exceptions import MediaProbeError


def _get_settings():
    """Get settings lazily to avoid import issues in tests."""
    return get_settings()


@dataclass
class MediaInfo:
    """Media file information."""

    duration_s: float | None = None
    width: int | None = None
    height: int | None = None
    fps: Fraction | None = None
    video_codec: str | None = None
    audio_codec: str | None = None
    sample_rate: int | None = None
    has_video: bool = False
    has_audio: bool = False

    def to_dict(self) -> dict:
        return {
            "duration_s": self.duration_s,
            "width": self.width,
            "height": self.height,
            "fps": float(self.fps) if self.fps is not None else None,
            "video_codec": self.video_codec,
            "audio_codec": self.audio_codec,
            "sample_rate": self.sample_rate,
            "has_video": self.has_video,
            "has_audio": self.has_audio,
        }


def _run_ffprobe(file_path: str, *args) -> dict:
    """Run ffprobe and return parsed JSON."""
    settings = _get_settings()
    cmd = [
        settings.ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        *args,
        file_path,
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError as e:
        raise MediaProbeError(f"ffprobe not found: {settings.ffprobe_path}") from e
    if result.returncode != 0:
        raise MediaProbeError(f"ffprobe failed for {file_path}: {result.stderr}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise MediaProbeError(f"Failed to parse ffprobe output: {e}") from e


def _parse_rate(rate: str | None) -> Fraction | None:
    if not rate or "/" not in rate:
        return None
    num, den = rate.split("/")
    if int(den) == 0:
        return None
    return Fraction(int(num), int(den))


def get_media_duration(file_path: str) -> float:
    """
    Get media file duration in seconds.

    Raises:
        MediaProbeError: If ffprobe fails or duration not found
    """
    data = _run_ffprobe(file_path, "-show_format")
    format_info = data.get("format", {})

    if "duration" not in format_info:
        raise MediaProbeError(f"Duration not found in: {file_path}")

    return float(format_info["duration"])


def count_video_frames(file_path: str) -> int:
    """
    Count decoded video frames in a file.

    Decodes the whole stream, so use it on rendered chunks rather than on
    long source videos. Returns 0 for files without a video stream.
    """
    data = _run_ffprobe(
        file_path,
        "-count_frames",
        "-select_streams", "v:0",
        "-show_entries", "stream=nb_read_frames",
    )
    streams = data.get("streams", [])
    if not streams:
        return 0
    return int(streams[0].get("nb_read_frames", 0) or 0)


def has_audio_track(file_path: str) -> bool:
    """Check if media file has an audio track."""
    try:
        data = _run_ffprobe(file_path, "-show_streams", "-select_streams", "a")
        return len(data.get("streams", [])) > 0
    except MediaProbeError:
        return False


def get_media_info(file_path: str) -> MediaInfo:
    """
    Get complete media file information.

    Raises:
        MediaProbeError: If ffprobe fails
    """
    data = _run_ffprobe(file_path, "-show_format", "-show_streams")
    info = MediaInfo()

    format_info = data.get("format", {})
    if "duration" in format_info:
        info.duration_s = float(format_info["duration"])

    for stream in data.get("streams", []):
        codec_type = stream.get("codec_type")

        if codec_type == "video" and not info.has_video:
            info.has_video = True
            info.width = stream.get("width")
            info.height = stream.get("height")
            info.video_codec = stream.get("codec_name")
            info.fps = _parse_rate(stream.get("r_frame_rate"))

        elif codec_type == "audio" and not info.has_audio:
            info.has_audio = True
            info.audio_codec = stream.get("codec_name")
            info.sample_rate = int(stream.get("sample_rate", 0)) or None

    return info
