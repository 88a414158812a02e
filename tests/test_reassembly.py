"""Tests for chunk reassembly."""

import os
import subprocess

import pytest

from conftest import requires_ffmpeg
from framecast.exceptions import ReassemblyError
from framecast.render.reassembly import (
    ChunkReassembler,
    build_concat_command,
    build_concat_list,
    build_mux_command,
    order_chunks,
)
from framecast.render.worker import ChunkResult
from framecast.services.encoder import FrameEncoder
from framecast.utils.media_info import count_video_frames, get_media_info


class TestCommandBuilders:
    """Tests for ffmpeg command construction."""

    def test_concat_list_escapes_quotes(self, tmp_path):
        path = str(tmp_path / "it's.mp4")
        content = build_concat_list([path, str(tmp_path / "b.mp4")])

        lines = content.splitlines()
        assert lines[0] == "file '" + os.path.abspath(path).replace("'", "'\\''") + "'"
        assert lines[1].endswith("b.mp4'")

    def test_concat_is_stream_copy(self):
        cmd = build_concat_command("ffmpeg", "list.txt", "out.mp4")
        assert cmd[cmd.index("-f") + 1] == "concat"
        assert cmd[cmd.index("-c") + 1] == "copy"
        assert cmd[-1] == "out.mp4"

    def test_mux_trims_to_duration(self):
        """Test the audio track is cut to the composition length."""
        cmd = build_mux_command("ffmpeg", "video.mp4", "music.mp3", "out.mp4", 10.5)

        assert cmd[cmd.index("-t") + 1] == "10.500000"
        assert cmd[cmd.index("-c:v") + 1] == "copy"
        assert cmd[cmd.index("-c:a") + 1] == "aac"
        assert ["-map", "0:v:0"] == cmd[cmd.index("-map"):cmd.index("-map") + 2]


class TestOrderChunks:
    """Tests for order_chunks."""

    def test_sorted_by_partition(self, tmp_path):
        paths = []
        for i in range(3):
            path = tmp_path / f"chunk_{i}.mp4"
            path.write_bytes(b"x")
            paths.append(str(path))
        chunks = [ChunkResult(2, paths[2], 5), ChunkResult(0, paths[0], 5), ChunkResult(1, paths[1], 5)]

        assert [c.worker_index for c in order_chunks(chunks)] == [0, 1, 2]

    def test_skips_empty_chunks(self, tmp_path):
        path = tmp_path / "chunk.mp4"
        path.write_bytes(b"x")
        chunks = [ChunkResult(0, str(path), 3), ChunkResult(1, None, 0)]
        assert order_chunks(chunks) == [chunks[0]]

    def test_duplicate_partition(self, tmp_path):
        path = tmp_path / "chunk.mp4"
        path.write_bytes(b"x")
        with pytest.raises(ReassemblyError, match="Duplicate"):
            order_chunks([ChunkResult(0, str(path), 3), ChunkResult(0, str(path), 3)])

    def test_missing_file(self, tmp_path):
        with pytest.raises(ReassemblyError, match="missing"):
            order_chunks([ChunkResult(0, str(tmp_path / "gone.mp4"), 3)])

    def test_nothing_to_reassemble(self):
        with pytest.raises(ReassemblyError):
            order_chunks([ChunkResult(0, None, 0)])


class TestChunkReassemblerSingleChunk:
    @pytest.mark.asyncio
    async def test_single_chunk_copied(self, tmp_path):
        """Test one chunk without audio is copied without running ffmpeg."""
        chunk = tmp_path / "chunk.mp4"
        chunk.write_bytes(b"video bytes")
        reassembler = ChunkReassembler(ffmpeg_path="/nonexistent/ffmpeg", work_dir=str(tmp_path / "work"))

        output = await reassembler.reassemble(
            [ChunkResult(0, str(chunk), 1)],
            str(tmp_path / "out" / "final.mp4"),
            duration_seconds=1,
        )

        assert open(output, "rb").read() == b"video bytes"

    @pytest.mark.asyncio
    async def test_missing_ffmpeg(self, tmp_path):
        chunks = []
        for i in range(2):
            path = tmp_path / f"c{i}.mp4"
            path.write_bytes(b"x")
            chunks.append(ChunkResult(i, str(path), 1))
        reassembler = ChunkReassembler(ffmpeg_path="/nonexistent/ffmpeg", work_dir=str(tmp_path / "work"))

        with pytest.raises(ReassemblyError, match="ffmpeg not found"):
            await reassembler.reassemble(chunks, str(tmp_path / "out.mp4"), duration_seconds=1)


def _encode_chunk(path, frames, color):
    with FrameEncoder(path, 32, 16, 10) as encoder:
        for _ in range(frames):
            encoder.write_frame(bytes(color) * (32 * 16))
        return encoder.close()


def _make_tone(path, seconds):
    subprocess.run(
        ["ffmpeg", "-y", "-v", "error", "-f", "lavfi", "-i", f"sine=frequency=440:duration={seconds}", str(path)],
        check=True,
    )


@requires_ffmpeg
class TestChunkReassemblerFFmpeg:
    """Integration tests against real ffmpeg."""

    @pytest.mark.asyncio
    async def test_concatenates_in_order(self, tmp_path):
        chunks = [
            ChunkResult(1, str(_encode_chunk(tmp_path / "c1.mp4", 7, (0, 255, 0, 255))), 7),
            ChunkResult(0, str(_encode_chunk(tmp_path / "c0.mp4", 5, (255, 0, 0, 255))), 5),
        ]
        reassembler = ChunkReassembler(work_dir=str(tmp_path / "work"))

        output = await reassembler.reassemble(
            chunks, str(tmp_path / "final.mp4"), duration_seconds=1.2, expected_frames=12
        )

        assert count_video_frames(output) == 12

    @pytest.mark.asyncio
    async def test_audio_muxed_once_and_trimmed(self, tmp_path):
        """Test a longer audio track is cut to the composition duration."""
        audio = tmp_path / "tone.wav"
        _make_tone(audio, 5)
        chunks = [
            ChunkResult(0, str(_encode_chunk(tmp_path / "c0.mp4", 10, (0, 0, 0, 255))), 10),
            ChunkResult(1, str(_encode_chunk(tmp_path / "c1.mp4", 10, (255, 255, 255, 255))), 10),
        ]
        reassembler = ChunkReassembler(work_dir=str(tmp_path / "work"))

        output = await reassembler.reassemble(
            chunks, str(tmp_path / "final.mp4"), audio_file=str(audio), duration_seconds=2
        )

        info = get_media_info(output)
        assert info.has_video and info.has_audio
        assert info.duration_s == pytest.approx(2.0, abs=0.1)
        assert not (tmp_path / "work" / "video_only.mp4").exists()

    @pytest.mark.asyncio
    async def test_frame_count_mismatch(self, tmp_path):
        chunks = [
            ChunkResult(0, str(_encode_chunk(tmp_path / "c0.mp4", 3, (0, 0, 0, 255))), 3),
            ChunkResult(1, str(_encode_chunk(tmp_path / "c1.mp4", 3, (0, 0, 0, 255))), 3),
        ]
        reassembler = ChunkReassembler(work_dir=str(tmp_path / "work"))

        with pytest.raises(ReassemblyError, match="expected 7"):
            await reassembler.reassemble(
                chunks, str(tmp_path / "final.mp4"), duration_seconds=0.7, expected_frames=7
            )
