"""Per-frame audio energy analysis.

The offline analyzer decodes the audio track once per render job and produces
one ``AudioFrame`` per composition frame. The interactive player computes the
same quantities from the samples it is currently playing, using the same
``volume_from_samples`` / ``band_energies`` functions, so both modes report
values on one scale:

* ``rms`` is the root-mean-square amplitude of the window, multiplied by 2;
* ``bands`` are 32 mean spectral magnitudes over contiguous FFT bin groups,
  each clipped to [0, 1].

Only the window differs: offline uses exactly the samples belonging to the
frame, the player uses the most recent ``preview_fft_size`` samples.
"""

import logging
import math
import subprocess
from fractions import Fraction

import numpy as np

from framecast.config import get_settings
from framecast.exceptions import MediaProbeError
from framecast.render.frame_context import AUDIO_BAND_COUNT, SILENCE, AudioFrame, ZERO_BANDS
from framecast.render.timeline import Number, exact, total_frame_count

logger = logging.getLogger(__name__)


def decode_pcm(
    audio_file: str,
    sample_rate: int,
    duration_seconds: Number | None = None,
    ffmpeg_path: str | None = None,
) -> np.ndarray:
    """Decode ``audio_file`` to mono float32 samples in [-1, 1]."""
    cmd = [
        ffmpeg_path or get_settings().ffmpeg_path,
        "-v", "error",
        "-i", audio_file,
        "-ac", "1",
        "-ar", str(sample_rate),
        "-f", "s16le",
        "-acodec", "pcm_s16le",
    ]
    if duration_seconds is not None:
        cmd += ["-t", f"{float(exact(duration_seconds)):.6f}"]
    cmd.append("-")

    try:
        result = subprocess.run(cmd, capture_output=True)
    except FileNotFoundError as e:
        raise MediaProbeError(f"ffmpeg not found: {cmd[0]}") from e
    if result.returncode != 0:
        stderr_text = result.stderr.decode("utf-8", errors="replace")
        raise MediaProbeError(f"Audio decode failed for {audio_file}: {stderr_text}")

    pcm = np.frombuffer(result.stdout, dtype="<i2")
    return pcm.astype(np.float32) / 32768.0


def volume_from_samples(samples: np.ndarray) -> float:
    """RMS amplitude of ``samples`` scaled by 2 (0 for an empty window)."""
    if len(samples) == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(samples, dtype=np.float64))) * 2)


def band_energies(samples: np.ndarray, band_count: int = AUDIO_BAND_COUNT) -> tuple[float, ...]:
    """Mean spectral magnitude of ``band_count`` contiguous FFT bin groups."""
    if len(samples) < 2:
        return ZERO_BANDS if band_count == AUDIO_BAND_COUNT else (0.0,) * band_count

    window = samples.astype(np.float64) * np.hanning(len(samples))
    # Single-sided amplitude spectrum without the DC bin
    spectrum = np.abs(np.fft.rfft(window))[1:] * 2 / len(samples)
    if len(spectrum) < band_count:
        spectrum = np.pad(spectrum, (0, band_count - len(spectrum)))

    groups = np.array_split(spectrum, band_count)
    return tuple(float(min(1.0, group.mean())) for group in groups)


def frame_window(frame: int, sample_rate: int, fps: Number) -> tuple[int, int]:
    """Sample range ``[start, end)`` belonging to ``frame``."""
    samples_per_frame = Fraction(sample_rate) / exact(fps)
    start = math.floor(frame * samples_per_frame)
    end = math.floor((frame + 1) * samples_per_frame)
    return start, end


def analyze_samples(
    samples: np.ndarray,
    sample_rate: int,
    fps: Number,
    total_frames: int,
) -> tuple[AudioFrame, ...]:
    """Split decoded samples into per-frame ``AudioFrame`` values."""
    frames: list[AudioFrame] = []
    for frame in range(total_frames):
        start, end = frame_window(frame, sample_rate, fps)
        window = samples[start:end]
        if len(window) == 0:
            frames.append(SILENCE)
            continue
        frames.append(AudioFrame(rms=volume_from_samples(window), bands=band_energies(window)))
    return tuple(frames)


class AudioAnalyzer:
    """Decodes an audio track and analyzes it frame by frame."""

    def __init__(self, sample_rate: int | None = None, ffmpeg_path: str | None = None):
        settings = get_settings()
        self.sample_rate = sample_rate or settings.audio_sample_rate
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path

    def analyze(
        self,
        audio_file: str,
        fps: Number,
        duration_seconds: Number,
    ) -> tuple[AudioFrame, ...]:
        """Return exactly ``ceil(fps * duration_seconds)`` frames of analysis."""
        total_frames = total_frame_count(fps, duration_seconds)
        logger.info(f"[AUDIO] Analyzing {audio_file} ({total_frames} frames)")

        samples = decode_pcm(audio_file, self.sample_rate, duration_seconds, self.ffmpeg_path)
        frames = analyze_samples(samples, self.sample_rate, fps, total_frames)

        logger.info(f"[AUDIO] Analyzed {len(frames)} frames from {len(samples)} samples")
        return frames
