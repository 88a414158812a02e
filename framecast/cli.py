"""Command line interface.

    framecast render myvideo:comp --workers 4 --output out.mp4
    framecast preview myvideo:comp --port 8765
    framecast probe out.mp4
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Optional, TextIO

from pydantic import ValidationError
from tqdm import tqdm

from framecast.config import get_settings
from framecast.exceptions import FramecastError
from framecast.render.composition import load_composition
from framecast.schemas.render import RenderJobRequest
from framecast.utils.media_info import get_media_info

logger = logging.getLogger(__name__)


class ConsoleProgress:
    """Terminal progress bar over the frames encoded so far."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stderr
        self.bar: Optional[tqdm] = None
        self._done = 0

    def start(self, total_frames: int) -> None:
        self.bar = tqdm(total=total_frames, desc="Rendering", unit="frame", file=self.stream)
        self._done = 0

    def update(self, frame: int) -> None:
        # ``frame`` is the running count of encoded frames
        if self.bar is None or frame <= self._done:
            return
        self.bar.update(frame - self._done)
        self._done = frame

    def finish(self, output_file: str) -> None:
        if self.bar is not None:
            self.bar.close()
            self.bar = None
        self.stream.write(f"Wrote {output_file}\n")
        self.stream.flush()


class NullProgress:
    def start(self, total_frames: int) -> None:
        pass

    def update(self, frame: int) -> None:
        pass

    def finish(self, output_file: str) -> None:
        pass


def configure_logging(level: Optional[str] = None) -> None:
    settings = get_settings()
    logging.basicConfig(
        level=level or settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="framecast", description="Render frame-exact compositions.")
    parser.add_argument("--log-level", default=None, choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    subparsers = parser.add_subparsers(dest="command", required=True)

    render = subparsers.add_parser("render", help="Render a composition to a video file")
    render.add_argument("composition", help="Import reference, e.g. 'myvideo:comp'")
    render.add_argument("--output", "-o", default=None, help="Output video path")
    render.add_argument("--workers", "-w", type=int, default=None, help="Parallel workers (0 = one per CPU)")
    render.add_argument("--executor", choices=["auto", "process", "thread", "celery"], default=None)
    render.add_argument("--resume", action="store_true", help="Reuse chunks from an interrupted run")
    render.add_argument("--width", type=int, default=None)
    render.add_argument("--height", type=int, default=None)
    render.add_argument("--audio", dest="audio_file", default=None, help="Audio track to analyze and mux")
    render.add_argument("--quiet", "-q", action="store_true", help="No progress bar")

    preview = subparsers.add_parser("preview", help="Serve the interactive preview player")
    preview.add_argument("composition", help="Import reference, e.g. 'myvideo:comp'")
    preview.add_argument("--host", default=None)
    preview.add_argument("--port", type=int, default=None)

    probe = subparsers.add_parser("probe", help="Print media information as JSON")
    probe.add_argument("path")
    return parser


def _render(args: argparse.Namespace) -> int:
    request = RenderJobRequest(
        composition=args.composition,
        output=args.output,
        workers=args.workers,
        executor=args.executor,
        resume=args.resume,
        width=args.width,
        height=args.height,
        audio_file=args.audio_file,
    )
    composition = load_composition(request.composition).with_overrides(**request.config_overrides())
    pipeline = composition.pipeline(
        workers=request.workers,
        executor=request.executor,
        progress_reporter=NullProgress() if args.quiet else ConsoleProgress(),
    )
    output = asyncio.run(pipeline.render(resume=request.resume))
    logger.info(f"Rendered {output}")
    return 0


def _preview(args: argparse.Namespace) -> int:
    from framecast.api.app import PreviewServer

    composition = load_composition(args.composition)
    server = PreviewServer(composition, host=args.host, port=args.port)
    print(f"Preview: {server.url}")
    server.serve_forever()
    return 0


def _probe(args: argparse.Namespace) -> int:
    info = get_media_info(args.path)
    print(json.dumps(info.to_dict(), indent=2))
    return 0


COMMANDS = {
    "render": _render,
    "preview": _preview,
    "probe": _probe,
}


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    # Compositions are usually modules in the working directory
    if os.getcwd() not in sys.path:
        sys.path.insert(0, os.getcwd())

    try:
        return COMMANDS[args.command](args)
    except FramecastError as e:
        print(json.dumps({"error": e.to_error_info().model_dump()}, indent=2), file=sys.stderr)
        return 2 if e.code in ("INVALID_CONFIG", "FRAME_OUT_OF_RANGE", "COMPOSITION_NOT_FOUND") else 1
    except ValidationError as e:
        print(str(e), file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
