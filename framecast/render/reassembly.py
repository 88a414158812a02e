"""Chunk reassembly.

Chunks are concatenated losslessly with the ffmpeg concat demuxer in
partition order, then the composition's audio track is muxed once over the
whole video. Audio is never split per chunk, so there are no seams at chunk
boundaries.
"""

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, Optional

from framecast.config import get_settings
from framecast.exceptions import ReassemblyError
from framecast.render.timeline import Number, exact
from framecast.render.worker import ChunkResult
from framecast.utils.media_info import count_video_frames

logger = logging.getLogger(__name__)


def build_concat_list(paths: Iterable[str]) -> str:
    """Concat demuxer list file content (one ``file '...'`` line per chunk)."""
    lines = []
    for path in paths:
        # FFmpeg concat requires escaped single quotes
        escaped = os.path.abspath(path).replace("'", "'\\''")
        lines.append(f"file '{escaped}'\n")
    return "".join(lines)


def build_concat_command(ffmpeg_path: str, concat_list_path: str, output_path: str) -> list[str]:
    """Lossless concatenation of the chunks listed in ``concat_list_path``."""
    return [
        ffmpeg_path,
        "-y",
        "-f", "concat",
        "-safe", "0",
        "-i", concat_list_path,
        "-c", "copy",
        "-movflags", "+faststart",
        output_path,
    ]


def build_mux_command(
    ffmpeg_path: str,
    video_path: str,
    audio_path: str,
    output_path: str,
    duration_seconds: Number,
    *,
    audio_codec: str = "aac",
    audio_bitrate: str = "192k",
) -> list[str]:
    """Copy the video stream and add ``audio_path`` trimmed to the composition length."""
    return [
        ffmpeg_path,
        "-y",
        "-i", video_path,
        "-i", audio_path,
        "-c:v", "copy",
        "-c:a", audio_codec,
        "-b:a", audio_bitrate,
        "-map", "0:v:0",
        "-map", "1:a:0",
        "-t", f"{float(exact(duration_seconds)):.6f}",
        "-movflags", "+faststart",
        output_path,
    ]


def order_chunks(chunks: Iterable[ChunkResult]) -> list[ChunkResult]:
    """Non-empty chunks in partition order.

    Raises:
        ReassemblyError: on duplicate worker indices or missing chunk files
    """
    ordered = sorted((c for c in chunks if c.path is not None and c.frame_count > 0), key=lambda c: c.worker_index)

    seen: set[int] = set()
    for chunk in ordered:
        if chunk.worker_index in seen:
            raise ReassemblyError(f"Duplicate chunk for partition {chunk.worker_index}")
        seen.add(chunk.worker_index)
        if not os.path.exists(chunk.path):
            raise ReassemblyError(f"Chunk file for partition {chunk.worker_index} is missing: {chunk.path}")

    if not ordered:
        raise ReassemblyError("No chunks to reassemble")
    return ordered


class ChunkReassembler:
    """Concatenates partition chunks and muxes the audio track."""

    def __init__(self, ffmpeg_path: Optional[str] = None, work_dir: Optional[str] = None):
        settings = get_settings()
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path
        self.work_dir = Path(work_dir or settings.render_work_dir)
        self.audio_codec = settings.render_audio_codec
        self.audio_bitrate = settings.render_audio_bitrate

    async def reassemble(
        self,
        chunks: Iterable[ChunkResult],
        output_path: str,
        *,
        audio_file: Optional[str] = None,
        duration_seconds: Number,
        expected_frames: Optional[int] = None,
    ) -> str:
        """Produce ``output_path`` from the chunks (and optional audio track).

        Args:
            chunks: Worker results, in any order; empty chunks are skipped
            output_path: Final video file
            audio_file: Audio track to mux over the whole video
            duration_seconds: Composition length, used to trim the audio
            expected_frames: When set, the concatenated video's frame count is
                verified with ffprobe

        Returns:
            Path to the final video
        """
        ordered = order_chunks(chunks)
        self.work_dir.mkdir(parents=True, exist_ok=True)
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)

        video_path = output_path if not audio_file else str(self.work_dir / "video_only.mp4")
        logger.info(f"[REASSEMBLY] Concatenating {len(ordered)} chunks -> {video_path}")

        if len(ordered) == 1:
            # Single chunk - just copy
            await asyncio.to_thread(shutil.copy2, ordered[0].path, video_path)
        else:
            concat_list_path = self.work_dir / "concat_list.txt"
            concat_list_path.write_text(build_concat_list(c.path for c in ordered))
            await self._run(
                build_concat_command(self.ffmpeg_path, str(concat_list_path), video_path),
                "Concatenation",
            )

        if expected_frames is not None:
            await self._verify_frame_count(video_path, expected_frames)

        if audio_file:
            logger.info(f"[REASSEMBLY] Muxing audio track {audio_file}")
            await self._run(
                build_mux_command(
                    self.ffmpeg_path,
                    video_path,
                    audio_file,
                    output_path,
                    duration_seconds,
                    audio_codec=self.audio_codec,
                    audio_bitrate=self.audio_bitrate,
                ),
                "Audio mux",
            )
            try:
                os.remove(video_path)
            except OSError as e:
                logger.warning(f"[REASSEMBLY] Could not remove {video_path}: {e}")

        logger.info(f"[REASSEMBLY] Complete: {output_path}")
        return output_path

    async def _verify_frame_count(self, video_path: str, expected_frames: int) -> None:
        actual = await asyncio.to_thread(count_video_frames, video_path)
        if actual != expected_frames:
            raise ReassemblyError(
                f"Reassembled video has {actual} frames, expected {expected_frames}"
            )

    async def _run(self, cmd: list[str], stage: str) -> None:
        logger.info(f"[REASSEMBLY] {stage} command: {' '.join(cmd)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ReassemblyError(f"ffmpeg not found: {self.ffmpeg_path}") from e
        _, stderr = await proc.communicate()

        if proc.returncode != 0:
            stderr_text = stderr.decode("utf-8", errors="replace")
            logger.error(f"[REASSEMBLY] {stage} failed: {stderr_text}")
            raise ReassemblyError(f"{stage} failed: {stderr_text[-2000:]}")
