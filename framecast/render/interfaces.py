"""Narrow interfaces between the render core and its collaborators.

The core only depends on these shapes; ``framecast.services`` holds the
default Pillow / ffmpeg / numpy implementations.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class DrawingSurface(Protocol):
    """Canvas the draw callbacks paint on."""

    width: int
    height: int

    def clear(self) -> None:
        """Reset the canvas before a frame is painted."""

    def snapshot(self) -> bytes:
        """Raw RGBA bytes of the current canvas (width * height * 4)."""

    def close(self) -> None:
        """Release images and caches."""


@runtime_checkable
class FrameSink(Protocol):
    """Order-sensitive consumer of rendered frames (an encoder)."""

    def write_frame(self, frame: bytes) -> None:
        """Submit one frame; frames must arrive in order."""

    def close(self) -> Path:
        """Finish the container and return its path."""

    def abort(self) -> None:
        """Stop without producing a usable file."""

    def __enter__(self) -> FrameSink: ...

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        """Abort on error, otherwise close if still open."""


@runtime_checkable
class ProgressReporter(Protocol):
    """Purely observational render progress sink."""

    def start(self, total_frames: int) -> None: ...

    def update(self, frame: int) -> None: ...

    def finish(self, output_file: str) -> None: ...


@runtime_checkable
class Clock(Protocol):
    def now(self) -> float:
        """Current time in seconds."""


@runtime_checkable
class FrameScheduler(Protocol):
    """Schedules the next playback iteration (display-refresh analogue)."""

    def schedule(self, callback: Callable[[], None]) -> Any:
        """Arrange for ``callback`` to run once; return a cancellable handle."""

    def cancel(self, handle: Any) -> None: ...


@runtime_checkable
class AudioSource(Protocol):
    """Audio playback used as the interactive master clock."""

    def load(self) -> None:
        """Prepare the track for playback (decode, open the device)."""

    def start(self, offset: float) -> None:
        """Begin playback at ``offset`` seconds."""

    def stop(self) -> None: ...

    def position(self) -> float:
        """Current playback position in seconds."""

    def recent_samples(self, count: int) -> np.ndarray:
        """The last ``count`` mono samples played, as floats in [-1, 1]."""

    def close(self) -> None:
        """Release the track."""
