"""Tests for per-frame audio analysis."""

from fractions import Fraction

import numpy as np
import pytest

from framecast.render.frame_context import AUDIO_BAND_COUNT, SILENCE
from framecast.services import audio_analyzer
from framecast.services.audio_analyzer import (
    AudioAnalyzer,
    analyze_samples,
    band_energies,
    frame_window,
    volume_from_samples,
)

SAMPLE_RATE = 44100


def sine(freq, seconds, amplitude=0.5, sr=SAMPLE_RATE):
    t = np.arange(int(sr * seconds)) / sr
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


class TestVolume:
    """Tests for RMS volume."""

    def test_constant_signal(self):
        assert volume_from_samples(np.full(100, 0.25)) == pytest.approx(0.5)

    def test_silence(self):
        assert volume_from_samples(np.zeros(512)) == 0.0
        assert volume_from_samples(np.array([])) == 0.0

    def test_sine(self):
        """Test a 0.5-amplitude sine reports ~0.707 (RMS * 2)."""
        assert volume_from_samples(sine(440, 1)) == pytest.approx(0.5 / np.sqrt(2) * 2, abs=1e-3)


class TestBands:
    """Tests for band energies."""

    def test_band_count_and_range(self):
        bands = band_energies(sine(1000, 0.1) + sine(5000, 0.1))
        assert len(bands) == AUDIO_BAND_COUNT
        assert all(0.0 <= b <= 1.0 for b in bands)

    def test_short_window_is_silent(self):
        assert band_energies(np.array([0.3])) == (0.0,) * AUDIO_BAND_COUNT

    def test_loud_signal_clipped(self):
        bands = band_energies(sine(2500, 256 / SAMPLE_RATE, amplitude=20.0))
        assert max(bands) == 1.0

    def test_window_shorter_than_band_count(self):
        """Test tiny windows still produce 32 bands."""
        assert len(band_energies(np.ones(8))) == AUDIO_BAND_COUNT

    def test_dominant_band_follows_frequency(self):
        low = band_energies(sine(500, 0.05))
        high = band_energies(sine(15000, 0.05))
        assert int(np.argmax(low)) < int(np.argmax(high))


class TestFrameWindow:
    """Tests for sample windows."""

    def test_integer_rate(self):
        assert frame_window(0, SAMPLE_RATE, 30) == (0, 1470)
        assert frame_window(2, SAMPLE_RATE, 30) == (2940, 4410)

    def test_windows_are_contiguous(self):
        """Test fractional rates leave no gaps between frames."""
        fps = Fraction(30000, 1001)
        windows = [frame_window(f, SAMPLE_RATE, fps) for f in range(100)]
        for (_, end), (start, _) in zip(windows, windows[1:]):
            assert end == start


class TestAnalyzeSamples:
    """Tests for offline per-frame analysis."""

    def test_one_frame_per_composition_frame(self):
        frames = analyze_samples(sine(440, 1), SAMPLE_RATE, 30, 30)
        assert len(frames) == 30
        assert all(f.rms > 0.6 for f in frames)

    def test_frames_past_audio_are_silent(self):
        """Test a track shorter than the composition pads with silence."""
        frames = analyze_samples(sine(440, 0.5), SAMPLE_RATE, 30, 30)
        assert frames[14].rms > 0
        assert frames[15] is SILENCE
        assert frames[29] is SILENCE

    def test_analyzer_decodes_once(self, monkeypatch):
        calls = []

        def fake_decode(audio_file, sample_rate, duration_seconds=None, ffmpeg_path=None):
            calls.append((audio_file, sample_rate, duration_seconds))
            return sine(440, 2)

        monkeypatch.setattr(audio_analyzer, "decode_pcm", fake_decode)
        frames = AudioAnalyzer(sample_rate=SAMPLE_RATE).analyze("music.wav", 24, 1.5)

        assert len(frames) == 36
        assert calls == [("music.wav", SAMPLE_RATE, 1.5)]


class TestInteractiveOfflineParity:
    """The player analyses the last 256 samples; offline analyses the frame's window.

    The two windows differ, so values are not identical, but they must agree
    on the same scale: similar volume and the same dominant band.
    """

    @pytest.mark.parametrize("freq", [2500, 440, 8000])
    def test_same_scale(self, freq):
        fps = 30
        samples = sine(freq, 1)
        offline = analyze_samples(samples, SAMPLE_RATE, fps, 30)

        frame = 10
        _, end = frame_window(frame, SAMPLE_RATE, fps)
        recent = samples[end - 256:end]
        interactive_rms = volume_from_samples(recent)
        interactive_bands = band_energies(recent)

        assert interactive_rms == pytest.approx(offline[frame].rms, abs=0.05)
        assert int(np.argmax(interactive_bands)) == int(np.argmax(offline[frame].bands))

    def test_2500hz_lands_in_band_3(self):
        samples = sine(2500, 1)
        offline = analyze_samples(samples, SAMPLE_RATE, 30, 30)
        assert int(np.argmax(offline[5].bands)) == 3
        assert int(np.argmax(band_energies(samples[-256:]))) == 3
