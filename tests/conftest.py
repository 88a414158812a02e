"""
Pytest fixtures for framecast tests.

Most tests drive the render core with in-memory fakes (surface, encoder,
reassembler, clock, scheduler), so they need neither ffmpeg nor a browser.

CI/CD Note:
Tests that shell out to ffmpeg/ffprobe are marked with @requires_ffmpeg and
are skipped when the binaries are not on PATH.
"""

import shutil
from pathlib import Path
from typing import Any, Iterable

import pytest

from framecast.config import get_settings
from framecast.render.timeline import RenderConfig, Timeline
from framecast.render.worker import ChunkResult


def _ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


# Skip decorator for tests that run real ffmpeg processes
requires_ffmpeg = pytest.mark.skipif(
    not _ffmpeg_available(),
    reason="ffmpeg/ffprobe not available on PATH",
)


# =============================================================================
# Fakes
# =============================================================================


class FakeSurface:
    """Records what draw callbacks paint instead of rasterizing it."""

    def __init__(self, width: int = 4, height: int = 2):
        self.width = width
        self.height = height
        self.assets: dict[str, Any] = {}
        self.ops: list[str] = []
        self.clears = 0
        self.closed = False

    @classmethod
    def for_config(cls, config: RenderConfig) -> "FakeSurface":
        return cls(config.width, config.height)

    def clear(self) -> None:
        self.clears += 1
        self.ops = []

    def paint(self, op: str) -> None:
        self.ops.append(op)

    def snapshot(self) -> bytes:
        return ("|".join(self.ops) + "\n").encode()

    def close(self) -> None:
        self.closed = True


class FakeEncoder:
    def __init__(self, factory: "FakeEncoderFactory", output_path: Any, width: int, height: int, fps: Any):
        self.factory = factory
        self.output_path = Path(output_path)
        self.size = (width, height)
        self.fps = fps
        self.frames: list[bytes] = []
        self.closed = False
        self.aborted = False

    def write_frame(self, frame: bytes) -> None:
        if self.factory.fail_at_write is not None and len(self.frames) == self.factory.fail_at_write:
            raise OSError("disk full")
        self.frames.append(frame)

    def close(self) -> Path:
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self.output_path.write_bytes(b"".join(self.frames))
        self.closed = True
        return self.output_path

    def abort(self) -> None:
        self.aborted = True

    def __enter__(self) -> "FakeEncoder":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.abort()


class FakeEncoderFactory:
    """Builds FakeEncoders and keeps every one it built."""

    def __init__(self, fail_at_write: int | None = None):
        self.encoders: list[FakeEncoder] = []
        self.fail_at_write = fail_at_write

    def __call__(self, output_path: Any, width: int, height: int, fps: Any) -> FakeEncoder:
        encoder = FakeEncoder(self, output_path, width, height, fps)
        self.encoders.append(encoder)
        return encoder


class FakeReassembler:
    """Concatenates chunk files byte-wise, in partition order."""

    def __init__(self):
        self.calls: list[dict[str, Any]] = []

    async def reassemble(
        self,
        chunks: Iterable[ChunkResult],
        output_path: str,
        *,
        audio_file: str | None = None,
        duration_seconds: Any = None,
        expected_frames: int | None = None,
    ) -> str:
        ordered = sorted((c for c in chunks if c.path), key=lambda c: c.worker_index)
        data = b"".join(Path(c.path).read_bytes() for c in ordered)
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(output_path).write_bytes(data)
        self.calls.append({"chunks": ordered, "output_path": output_path, "audio_file": audio_file})
        return output_path


class ManualClock:
    def __init__(self, start: float = 0.0):
        self.time = start

    def now(self) -> float:
        return self.time

    def advance(self, seconds: float) -> None:
        self.time += seconds


def painter(label: str):
    """Draw callback that records ``label:frame:local_frame`` on a FakeSurface."""

    def draw(ctx) -> None:
        ctx.surface.paint(f"{label}:{ctx.frame}:{ctx.local_frame}")

    draw.__name__ = f"paint_{label}"
    return draw


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point work and cache directories at a per-test temp directory."""
    monkeypatch.setenv("FRAMECAST_RENDER_WORK_DIR", str(tmp_path / "work"))
    monkeypatch.setenv("FRAMECAST_VIDEO_CACHE_DIR", str(tmp_path / "cache"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def config() -> RenderConfig:
    """10 seconds at 30 fps, tiny frame size."""
    return RenderConfig(width=4, height=2, fps=30, duration_seconds=10)


@pytest.fixture
def timeline(config: RenderConfig) -> Timeline:
    """Background for the whole composition, a title from 1s to 6s on top."""
    tl = Timeline(config.fps)
    tl.add_clip(0, 10, painter("bg"), z_index=0)
    tl.add_clip(1, 5, painter("title"), z_index=1)
    return tl


@pytest.fixture
def encoder_factory() -> FakeEncoderFactory:
    return FakeEncoderFactory()


@pytest.fixture
def temp_output_dir(tmp_path) -> Path:
    """Temporary directory for rendered files."""
    output = tmp_path / "output"
    output.mkdir()
    return output
