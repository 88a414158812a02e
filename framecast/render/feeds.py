"""Per-frame external data shared by every worker of a render job.

Audio analysis and video frame maps are computed once, before the job is
partitioned, and handed to each worker by value. Workers only read them, so
any given frame sees the same signals no matter which worker renders it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from framecast.render.frame_context import SILENCE, AudioFrame, ExternalSignals
from framecast.render.timeline import RenderConfig
from framecast.services.audio_analyzer import AudioAnalyzer
from framecast.services.video_frames import VideoFrameExtractor, VideoFrameMap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderFeeds:
    """Read-only audio analysis and video frame maps for a whole composition."""

    audio: tuple[AudioFrame, ...] = ()
    videos: Mapping[str, VideoFrameMap] = field(default_factory=dict)

    def signals(self, frame: int) -> ExternalSignals:
        return signals_for_frame(self, frame)

    def to_dict(self) -> dict[str, Any]:
        return {
            "audio": [[a.rms, list(a.bands)] for a in self.audio],
            "videos": {
                path: {"folder": m.folder, "frame_count": m.frame_count}
                for path, m in self.videos.items()
            },
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "RenderFeeds":
        audio = tuple(AudioFrame(rms=rms, bands=tuple(bands)) for rms, bands in payload.get("audio", []))
        videos = {
            path: VideoFrameMap(source=path, folder=entry["folder"], frame_count=entry["frame_count"])
            for path, entry in payload.get("videos", {}).items()
        }
        return cls(audio=audio, videos=videos)


def lookup_audio(audio: Sequence[AudioFrame], frame: int) -> AudioFrame:
    """Audio for ``frame``; silence when the analysis does not cover it."""
    if 0 <= frame < len(audio):
        return audio[frame]
    return SILENCE


def resolve_video_frames(videos: Mapping[str, VideoFrameMap], frame: int) -> dict[str, str | None]:
    """Frame reference of each video at ``frame`` (looping short videos)."""
    return {path: video_map.frame_path(frame) for path, video_map in videos.items()}


def signals_for_frame(feeds: RenderFeeds, frame: int) -> ExternalSignals:
    return ExternalSignals(
        audio=lookup_audio(feeds.audio, frame),
        videos=resolve_video_frames(feeds.videos, frame),
    )


def prepare_feeds(
    config: RenderConfig,
    *,
    analyzer: AudioAnalyzer | None = None,
    extractor: VideoFrameExtractor | None = None,
) -> RenderFeeds:
    """Compute audio analysis and video frame maps once for a render job."""
    audio: tuple[AudioFrame, ...] = ()
    if config.audio_file:
        analyzer = analyzer or AudioAnalyzer()
        audio = analyzer.analyze(config.audio_file, config.fps, config.duration_seconds)

    videos: dict[str, VideoFrameMap] = {}
    if config.videos:
        extractor = extractor or VideoFrameExtractor()
        for path in config.videos:
            videos[path] = extractor.extract(path, config.fps)

    logger.info(
        f"[FEEDS] audio_frames={len(audio)}, videos="
        f"{ {path: m.frame_count for path, m in videos.items()} }"
    )
    return RenderFeeds(audio=audio, videos=videos)
