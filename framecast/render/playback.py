"""Interactive playback engine.

Drives the same frame builder as the offline workers, but from a clock: the
audio track's playhead when one is loaded, otherwise a monotonic clock. Each
loop iteration maps the current time to ``floor(time * fps)``, paints that
frame and schedules the next iteration, so playback drops frames rather than
slowing down when painting is slow.

All state changes happen on one thread (the asyncio loop in the preview
server); ``pause`` is the only way to stop the loop.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Mapping, Optional

import numpy as np

from framecast.config import get_settings
from framecast.render.feeds import resolve_video_frames
from framecast.render.frame_context import SILENCE, AudioFrame, ExternalSignals, build_frame_context, paint_frame
from framecast.render.interfaces import AudioSource, Clock, DrawingSurface, FrameScheduler
from framecast.render.timeline import RenderConfig, Timeline, exact, seconds_to_frame
from framecast.services.audio_analyzer import band_energies, decode_pcm, volume_from_samples
from framecast.services.video_frames import VideoFrameMap

logger = logging.getLogger(__name__)

FrameCallback = Callable[[int, Any], None]


class PlaybackState(Enum):
    PAUSED = "paused"
    PLAYING = "playing"


# ============================================================================
# Clocks
# ============================================================================


class MonotonicClock:
    def now(self) -> float:
        return time.monotonic()


class AudioTrackClock:
    """Clock that reads the audio track's playhead."""

    def __init__(self, source: AudioSource):
        self.source = source

    def now(self) -> float:
        return self.source.position()


class DecodedAudioTrack:
    """Audio source backed by decoded PCM samples.

    The track is not sent to a sound device; its playhead advances with
    ``clock`` while playing, and ``recent_samples`` returns the samples just
    behind the playhead, which is what the preview's audio analysis reads.
    """

    def __init__(
        self,
        audio_file: str,
        *,
        sample_rate: Optional[int] = None,
        clock: Optional[Clock] = None,
        ffmpeg_path: Optional[str] = None,
    ):
        self.audio_file = audio_file
        self.sample_rate = sample_rate or get_settings().audio_sample_rate
        self.clock = clock or MonotonicClock()
        self.ffmpeg_path = ffmpeg_path
        self.samples: np.ndarray = np.zeros(0, dtype=np.float32)
        self._offset = 0.0
        self._started_at = 0.0
        self._playing = False

    @classmethod
    def from_samples(
        cls, samples: np.ndarray, sample_rate: int, *, clock: Optional[Clock] = None
    ) -> "DecodedAudioTrack":
        track = cls("<memory>", sample_rate=sample_rate, clock=clock)
        track.samples = np.asarray(samples, dtype=np.float32)
        return track

    @property
    def duration(self) -> float:
        return len(self.samples) / self.sample_rate

    def load(self) -> None:
        if self.audio_file == "<memory>":
            return
        logger.info(f"[AUDIO] Loading {self.audio_file} for playback")
        self.samples = decode_pcm(self.audio_file, self.sample_rate, ffmpeg_path=self.ffmpeg_path)

    def start(self, offset: float) -> None:
        self._offset = max(0.0, offset)
        self._started_at = self.clock.now()
        self._playing = True

    def stop(self) -> None:
        if self._playing:
            self._offset = self.position()
            self._playing = False

    def position(self) -> float:
        if not self._playing:
            return self._offset
        return self._offset + (self.clock.now() - self._started_at)

    def recent_samples(self, count: int) -> np.ndarray:
        end = min(int(self.position() * self.sample_rate), len(self.samples))
        return self.samples[max(0, end - count):max(0, end)]

    def close(self) -> None:
        self._playing = False
        self.samples = np.zeros(0, dtype=np.float32)


# ============================================================================
# Schedulers
# ============================================================================


class AsyncioFrameScheduler:
    """Runs the next iteration on the event loop after one refresh interval."""

    def __init__(self, refresh_hz: Optional[int] = None, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.interval = 1.0 / (refresh_hz or get_settings().preview_refresh_hz)
        self._loop = loop

    def schedule(self, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(self.interval, callback)

    def cancel(self, handle: asyncio.TimerHandle) -> None:
        handle.cancel()


class ManualFrameScheduler:
    """Holds scheduled callbacks until ``step()`` runs them."""

    def __init__(self):
        self._pending: dict[int, Callable[[], None]] = {}
        self._next_handle = 0

    @property
    def pending(self) -> int:
        return len(self._pending)

    def schedule(self, callback: Callable[[], None]) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self._pending[handle] = callback
        return handle

    def cancel(self, handle: int) -> None:
        self._pending.pop(handle, None)

    def step(self) -> int:
        """Run the callbacks scheduled so far; return how many ran."""
        due = list(self._pending.items())
        self._pending.clear()
        for _, callback in due:
            callback()
        return len(due)


# ============================================================================
# Engine
# ============================================================================


class PlaybackEngine:
    """Clock-driven preview loop over a timeline."""

    def __init__(
        self,
        config: RenderConfig,
        timeline: Timeline,
        surface: DrawingSurface,
        *,
        clock: Optional[Clock] = None,
        scheduler: Optional[FrameScheduler] = None,
        audio: Optional[AudioSource] = None,
        video_frames: Optional[Mapping[str, VideoFrameMap]] = None,
        on_frame: Optional[FrameCallback] = None,
        fft_size: Optional[int] = None,
    ):
        self.config = config
        self.timeline = timeline
        self.surface = surface
        self.audio = audio
        self.clock = clock or (AudioTrackClock(audio) if audio is not None else MonotonicClock())
        self.scheduler = scheduler or AsyncioFrameScheduler()
        self.video_frames: Mapping[str, VideoFrameMap] = video_frames or {}
        self.on_frame = on_frame
        self.fft_size = fft_size or get_settings().preview_fft_size

        self.state = PlaybackState.PAUSED
        self._start_time = 0.0
        self._paused_at = 0.0
        self._current_frame = 0
        self._handle: Any = None
        self._duration = float(exact(config.duration_seconds))

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_playing(self) -> bool:
        return self.state is PlaybackState.PLAYING

    @property
    def position(self) -> float:
        """Playback position in seconds."""
        if self.is_playing:
            return self._current_time()
        return self._paused_at

    @property
    def current_frame(self) -> int:
        """Last frame painted."""
        return self._current_frame

    def _current_time(self) -> float:
        return self.clock.now() - self._start_time

    def _frame_at(self, time_seconds: float) -> int:
        frame = seconds_to_frame(max(0.0, time_seconds), self.config.fps)
        return min(frame, self.config.total_frames - 1)

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Prepare the audio track, rewind and show the first frame."""
        if self.audio is not None:
            self.audio.load()
        self._paused_at = 0.0
        self._safe_render(0)

    def play(self) -> None:
        if self.is_playing:
            return
        if self.audio is not None:
            self.audio.start(self._paused_at)
        self._start_time = self.clock.now() - self._paused_at
        self.state = PlaybackState.PLAYING
        logger.debug(f"[PLAYBACK] Play from {self._paused_at:.3f}s")
        self._schedule()

    def pause(self) -> None:
        if not self.is_playing:
            return
        if self._handle is not None:
            self.scheduler.cancel(self._handle)
            self._handle = None
        self._paused_at = min(max(self._current_time(), 0.0), self._duration)
        self.state = PlaybackState.PAUSED
        if self.audio is not None:
            self.audio.stop()
        logger.debug(f"[PLAYBACK] Paused at {self._paused_at:.3f}s")

    def seek(self, time_seconds: float) -> None:
        """Jump to ``time_seconds`` (clamped into the composition)."""
        target = min(max(float(time_seconds), 0.0), self._duration)
        if self.is_playing:
            self.pause()
            self._paused_at = target
            self.play()
        else:
            self._paused_at = target
            self._safe_render(self._frame_at(target))

    def dispose(self) -> None:
        """Stop playback and release the audio track and surface."""
        self.pause()
        if self.audio is not None:
            self.audio.close()
            self.audio = None
        self.surface = None
        self.on_frame = None

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _schedule(self) -> None:
        if self._handle is None:
            self._handle = self.scheduler.schedule(self._tick)

    def _tick(self) -> None:
        self._handle = None
        if not self.is_playing:
            return

        current = self._current_time()
        if current >= self._duration:
            self.pause()
            self._paused_at = 0.0
            logger.debug("[PLAYBACK] Reached end of composition")
            return

        if not self._safe_render(self._frame_at(current)):
            self.pause()
            return
        self._schedule()

    def _signals(self, frame: int) -> ExternalSignals:
        audio = SILENCE
        if self.audio is not None:
            samples = self.audio.recent_samples(self.fft_size)
            audio = AudioFrame(rms=volume_from_samples(samples), bands=band_energies(samples))
        return ExternalSignals(audio=audio, videos=resolve_video_frames(self.video_frames, frame))

    def render_frame(self, frame: int) -> None:
        """Paint ``frame`` now, regardless of playback state.

        Raises:
            FrameRangeError: if ``frame`` is outside the composition
        """
        build = build_frame_context(
            self.config,
            self.timeline,
            frame,
            self._signals(frame),
            surface=self.surface,
            assets=getattr(self.surface, "assets", None),
        )
        paint_frame(build, self.surface)
        self._current_frame = frame
        if self.on_frame is not None:
            self.on_frame(frame, self.surface)

    def _safe_render(self, frame: int) -> bool:
        if self.surface is None:
            return False
        try:
            self.render_frame(frame)
        except Exception:
            logger.exception(f"[PLAYBACK] Frame {frame} failed")
            return False
        return True
