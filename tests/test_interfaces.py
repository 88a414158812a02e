"""Tests that the default collaborators satisfy the render core's interfaces."""

import io

import numpy as np
import pytest

from conftest import FakeEncoderFactory, FakeSurface, ManualClock
from framecast.cli import ConsoleProgress, NullProgress
from framecast.render.interfaces import (
    AudioSource,
    Clock,
    DrawingSurface,
    FrameScheduler,
    FrameSink,
    ProgressReporter,
)
from framecast.render.playback import (
    AsyncioFrameScheduler,
    AudioTrackClock,
    DecodedAudioTrack,
    ManualFrameScheduler,
    MonotonicClock,
)
from framecast.services.encoder import FrameEncoder
from framecast.services.surface import PillowSurface


class TestDefaultImplementations:
    """Tests for the Pillow / ffmpeg / numpy defaults."""

    def test_pillow_surface(self):
        surface = PillowSurface(4, 2)
        assert isinstance(surface, DrawingSurface)
        surface.close()

    def test_frame_encoder(self, tmp_path):
        assert isinstance(FrameEncoder(tmp_path / "out.mp4", 4, 2, 30), FrameSink)

    @pytest.mark.parametrize("progress", [ConsoleProgress(io.StringIO()), NullProgress()])
    def test_progress_reporters(self, progress):
        assert isinstance(progress, ProgressReporter)

    def test_clocks(self):
        track = DecodedAudioTrack.from_samples(np.zeros(10), 10)
        assert isinstance(MonotonicClock(), Clock)
        assert isinstance(AudioTrackClock(track), Clock)

    def test_schedulers(self):
        assert isinstance(ManualFrameScheduler(), FrameScheduler)
        assert isinstance(AsyncioFrameScheduler(refresh_hz=60), FrameScheduler)

    def test_decoded_audio_track(self):
        assert isinstance(DecodedAudioTrack("music.wav"), AudioSource)


class TestFakes:
    """The test doubles must keep matching the interfaces they stand in for."""

    def test_fake_surface(self):
        assert isinstance(FakeSurface(), DrawingSurface)

    def test_fake_encoder(self, tmp_path):
        encoder = FakeEncoderFactory()(tmp_path / "chunk.mp4", 4, 2, 30)
        assert isinstance(encoder, FrameSink)

    def test_manual_clock(self):
        assert isinstance(ManualClock(), Clock)

    def test_plain_object_is_not_a_surface(self):
        assert not isinstance(object(), DrawingSurface)
