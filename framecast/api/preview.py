"""Preview API endpoints: interactive playback over a WebSocket and still frames.

1. ``/``: a small HTML player page
2. ``/composition``: composition summary
3. ``/frame/{frame}``: one frame rendered through the offline path, as PNG
4. ``/ws/preview``: JPEG frame stream driven by play / pause / seek commands
"""

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, WebSocket, status
from fastapi.responses import HTMLResponse, Response
from pydantic import ValidationError
from starlette.websockets import WebSocketDisconnect

from framecast.config import get_settings
from framecast.exceptions import FrameRangeError
from framecast.render.composition import Composition
from framecast.render.feeds import RenderFeeds, prepare_feeds
from framecast.render.frame_context import build_frame_context, paint_frame
from framecast.render.playback import PlaybackEngine
from framecast.schemas.render import PlaybackCommand
from framecast.services.surface import PillowSurface

router = APIRouter()
logger = logging.getLogger(__name__)


PLAYER_PAGE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>framecast preview</title>
  <style>
    body {{ background: #111; color: #ddd; font-family: sans-serif; margin: 24px; }}
    img {{ max-width: 100%; background: #000; display: block; }}
    .controls {{ margin-top: 12px; display: flex; gap: 8px; align-items: center; }}
    input[type=range] {{ flex: 1; }}
  </style>
</head>
<body>
  <img id="frame" width="{width}" height="{height}" alt="preview">
  <div class="controls">
    <button id="play">Play</button>
    <button id="pause">Pause</button>
    <input id="seek" type="range" min="0" max="{duration}" step="0.01" value="0">
    <span id="status">frame 0</span>
  </div>
  <script>
    const ws = new WebSocket(`ws://${{location.host}}/ws/preview`);
    ws.binaryType = "blob";
    const img = document.getElementById("frame");
    const statusEl = document.getElementById("status");
    ws.onmessage = (event) => {{
      if (typeof event.data === "string") {{
        const msg = JSON.parse(event.data);
        if (msg.type === "state") statusEl.textContent = `frame ${{msg.frame}} / ${{msg.position.toFixed(2)}}s`;
        return;
      }}
      const url = URL.createObjectURL(event.data);
      img.onload = () => URL.revokeObjectURL(url);
      img.src = url;
    }};
    const send = (msg) => ws.send(JSON.stringify(msg));
    document.getElementById("play").onclick = () => send({{action: "play"}});
    document.getElementById("pause").onclick = () => send({{action: "pause"}});
    document.getElementById("seek").oninput = (e) => send({{action: "seek", time: parseFloat(e.target.value)}});
  </script>
</body>
</html>
"""


def _composition(holder: Any) -> Composition:
    return holder.app.state.composition


async def _video_feeds(holder: Any) -> RenderFeeds:
    """Video frame maps for the app's composition, extracted once."""
    state = holder.app.state
    if getattr(state, "feeds", None) is None:
        config = _composition(holder).config
        state.feeds = await asyncio.to_thread(prepare_feeds, config)
    return state.feeds


def render_still(composition: Composition, feeds: RenderFeeds, frame: int) -> bytes:
    """Render ``frame`` exactly as an offline worker would and return PNG bytes."""
    config = composition.config
    with PillowSurface.for_config(config) as surface:
        build = build_frame_context(
            config,
            composition.timeline,
            frame,
            feeds.signals(frame),
            surface=surface,
            assets=surface.assets,
        )
        paint_frame(build, surface)
        return surface.to_png()


def state_message(engine: PlaybackEngine) -> dict[str, Any]:
    return {
        "type": "state",
        "playing": engine.is_playing,
        "position": engine.position,
        "frame": engine.current_frame,
    }


@router.get("/", response_class=HTMLResponse)
async def player_page(request: Request) -> str:
    config = _composition(request).config
    return PLAYER_PAGE.format(width=config.width, height=config.height, duration=config.duration_float)


@router.get("/composition")
async def composition_info(request: Request) -> dict[str, Any]:
    composition = _composition(request)
    config = composition.config
    return {
        "reference": composition.reference,
        "width": config.width,
        "height": config.height,
        "fps": config.fps_float,
        "duration_seconds": config.duration_float,
        "total_frames": config.total_frames,
        "clips": [
            {
                "id": clip.id,
                "label": clip.label,
                "start_frame": clip.start_frame,
                "end_frame": clip.end_frame,
                "z_index": clip.z_index,
            }
            for clip in composition.timeline.clips
        ],
    }


@router.get("/frame/{frame}", response_class=Response)
async def still_frame(frame: int, request: Request) -> Response:
    composition = _composition(request)
    feeds = await _video_feeds(request)
    try:
        png = await asyncio.to_thread(render_still, composition, feeds, frame)
    except FrameRangeError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message) from e
    return Response(content=png, media_type="image/png")


@router.websocket("/ws/preview")
async def preview_socket(websocket: WebSocket) -> None:
    """Interactive playback session; each connection gets its own engine and surface."""
    settings = get_settings()
    composition = _composition(websocket)
    await websocket.accept()

    loop = asyncio.get_running_loop()
    frames: asyncio.Queue[bytes] = asyncio.Queue(maxsize=1)

    def push(jpeg: bytes) -> None:
        # Keep only the newest frame when the client falls behind
        if frames.full():
            frames.get_nowait()
        frames.put_nowait(jpeg)

    def on_frame(frame: int, surface: PillowSurface) -> None:
        loop.call_soon_threadsafe(push, surface.to_jpeg(settings.preview_jpeg_quality))

    feeds = await _video_feeds(websocket)
    engine = composition.player(feeds=feeds, on_frame=on_frame)
    await asyncio.to_thread(engine.load)

    async def sender() -> None:
        while True:
            await websocket.send_bytes(await frames.get())

    sender_task = asyncio.create_task(sender())
    logger.info("[PREVIEW] Session opened")
    try:
        await websocket.send_json(state_message(engine))
        while True:
            payload = await websocket.receive_json()
            try:
                command = PlaybackCommand.model_validate(payload)
            except ValidationError as e:
                await websocket.send_json({"type": "error", "message": str(e)})
                continue

            if command.action == "play":
                engine.play()
            elif command.action == "pause":
                engine.pause()
            else:
                engine.seek(command.time or 0.0)
            await websocket.send_json(state_message(engine))
    except WebSocketDisconnect:
        logger.info("[PREVIEW] Session closed")
    finally:
        engine.dispose()
        sender_task.cancel()
