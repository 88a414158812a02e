"""Tests for the Composition facade and composition loading."""

import pytest

from conftest import FakeEncoderFactory, FakeReassembler, FakeSurface, painter
from framecast.exceptions import CompositionLoadError
from framecast.render.composition import Composition, load_composition
from framecast.render.feeds import RenderFeeds
from framecast.render.playback import DecodedAudioTrack, ManualFrameScheduler
from framecast.render.timeline import RenderConfig


class TestComposition:
    """Tests for Composition."""

    def test_config_from_fields(self):
        comp = Composition(width=320, height=240, fps=24, duration_seconds=3)
        assert comp.config == RenderConfig(width=320, height=240, fps=24, duration_seconds=3)
        assert comp.timeline.fps == 24

    def test_clip_decorator_labels(self):
        comp = Composition(width=4, height=2, fps=30, duration_seconds=1)

        @comp.clip(0, 1, z_index=2)
        def sparkle(ctx):
            pass

        (clip,) = comp.timeline.clips
        assert clip.label == "sparkle"
        assert clip.z_index == 2
        assert clip.draw is sparkle

    def test_clear_clips(self):
        comp = Composition(width=4, height=2, fps=30, duration_seconds=1)
        comp.add_clip(0, 1, painter("a"))
        comp.clear_clips()
        assert len(comp.timeline) == 0

    def test_with_overrides_shares_timeline(self):
        comp = Composition(width=4, height=2, fps=30, duration_seconds=1)
        comp.add_clip(0, 1, painter("a"))

        resized = comp.with_overrides(width=8, height=None, output_file="big.mp4")

        assert resized.config.width == 8
        assert resized.config.height == 2
        assert resized.config.output_file == "big.mp4"
        assert resized.timeline is comp.timeline
        assert comp.config.width == 4
        assert comp.with_overrides(width=None) is comp

    def test_repr(self):
        comp = Composition(width=4, height=2, fps=30, duration_seconds=1)
        assert repr(comp) == "Composition(4x2, fps=30, duration=1s, clips=0)"

    @pytest.mark.asyncio
    async def test_render(self, tmp_path):
        comp = Composition(width=4, height=2, fps=10, duration_seconds=1)
        comp.add_clip(0, 1, painter("x"))
        output = str(tmp_path / "out.mp4")

        result = await comp.render(
            output,
            workers=2,
            executor="thread",
            feeds=RenderFeeds(),
            surface_factory=FakeSurface.for_config,
            encoder_factory=FakeEncoderFactory(),
            reassembler=FakeReassembler(),
        )

        assert result == output
        assert open(output, "rb").read().count(b"\n") == 10

    def test_pipeline_carries_reference(self):
        comp = Composition(width=4, height=2, fps=10, duration_seconds=1, reference="mod:comp")
        assert comp.pipeline().composition_ref == "mod:comp"

    def test_player(self):
        comp = Composition(width=4, height=2, fps=10, duration_seconds=1)
        comp.add_clip(0, 1, painter("x"))
        frames = []

        player = comp.player(
            surface=FakeSurface(),
            scheduler=ManualFrameScheduler(),
            on_frame=lambda frame, surface: frames.append(frame),
        )
        player.load()

        assert frames == [0]
        assert player.audio is None

    def test_player_with_audio_file(self):
        comp = Composition(width=4, height=2, fps=10, duration_seconds=1, audio_file="music.wav")
        player = comp.player(surface=FakeSurface(), scheduler=ManualFrameScheduler())
        assert isinstance(player.audio, DecodedAudioTrack)
        assert player.audio.audio_file == "music.wav"


class TestLoadComposition:
    """Tests for load_composition."""

    def test_load_attribute(self):
        comp = load_composition("sample_composition:comp")
        assert isinstance(comp, Composition)
        assert comp.reference == "sample_composition:comp"
        assert [c.label for c in comp.timeline.clips] == ["background", "box"]

    def test_load_factory(self):
        comp = load_composition("sample_composition:build")
        assert comp.config.width == 64

    @pytest.mark.parametrize(
        "reference,reason",
        [
            ("sample_composition", "expected 'module:attribute'"),
            ("no_such_module_abc:comp", "No module named"),
            ("sample_composition:missing", "no attribute 'missing'"),
            ("sample_composition:comp.config", "RenderConfig is not a Composition"),
        ],
    )
    def test_errors(self, reference, reason):
        with pytest.raises(CompositionLoadError) as exc_info:
            load_composition(reference)
        assert reason in exc_info.value.message
        assert exc_info.value.code == "COMPOSITION_NOT_FOUND"
