"""Render job endpoints with WebSocket progress."""

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request, WebSocket, status
from starlette.websockets import WebSocketDisconnect

from framecast.api.websocket import progress_notifier, websocket_manager
from framecast.exceptions import FramecastError, RenderCancelledError
from framecast.render.composition import load_composition
from framecast.render.pipeline import RenderPipeline, RenderStatus
from framecast.schemas.render import RenderJobRequest, RenderJobResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def _jobs(request: Request) -> dict[str, RenderPipeline]:
    return request.app.state.jobs


def _job_response(pipeline: RenderPipeline, output_path: str | None = None) -> RenderJobResponse:
    progress = pipeline.progress
    return RenderJobResponse(
        job_id=progress.job_id,
        status=progress.status.value,
        percent=progress.percent,
        current_step=progress.current_step,
        frames_done=progress.frames_done,
        total_frames=progress.total_frames,
        elapsed_ms=progress.elapsed_ms,
        error_message=progress.error_message,
        output_path=output_path or pipeline.config.output_file,
    )


async def run_render_job(pipeline: RenderPipeline, resume: bool) -> None:
    """Run a render job in the background and broadcast its outcome."""
    job_id = pipeline.job_id
    try:
        output_path = await pipeline.render(resume=resume)
    except RenderCancelledError:
        await progress_notifier.notify_cancelled(job_id)
    except FramecastError as e:
        logger.error(f"[RENDER] Job {job_id} failed: {e.message}")
        await progress_notifier.notify_error(job_id, e.to_error_info())
    except Exception as e:
        logger.exception(f"[RENDER] Job {job_id} crashed")
        pipeline.progress.status = RenderStatus.FAILED
        pipeline.progress.error_message = str(e)
        await progress_notifier.notify_error(job_id, FramecastError(str(e)).to_error_info())
    else:
        await progress_notifier.notify_complete(job_id, output_path, pipeline.progress.elapsed_ms)


@router.post("/render", response_model=RenderJobResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_render(body: RenderJobRequest, request: Request) -> RenderJobResponse:
    """Start rendering the app's composition (or ``body.composition``) in the background."""
    composition = request.app.state.composition
    if body.composition:
        composition = await asyncio.to_thread(load_composition, body.composition)
    composition = composition.with_overrides(**body.config_overrides())

    pipeline = composition.pipeline(workers=body.workers, executor=body.executor)
    jobs = _jobs(request)
    existing = jobs.get(pipeline.job_id)
    if existing is not None and existing.progress.status is RenderStatus.PROCESSING:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Render job {pipeline.job_id} is already running",
        )

    pipeline.set_progress_callback(progress_notifier.pipeline_callback(pipeline.job_id))
    jobs[pipeline.job_id] = pipeline
    request.app.state.tasks[pipeline.job_id] = asyncio.create_task(run_render_job(pipeline, body.resume))
    logger.info(f"[RENDER] Started job {pipeline.job_id} -> {pipeline.config.output_file}")
    return _job_response(pipeline)


@router.get("/render/{job_id}", response_model=RenderJobResponse)
async def get_render(job_id: str, request: Request) -> RenderJobResponse:
    pipeline = _jobs(request).get(job_id)
    if pipeline is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Render job not found")
    return _job_response(pipeline)


@router.delete("/render/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_render(job_id: str, request: Request) -> None:
    pipeline = _jobs(request).get(job_id)
    if pipeline is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Render job not found")
    pipeline.cancel()


@router.websocket("/ws/render/{job_id}")
async def render_progress_socket(websocket: WebSocket, job_id: str) -> None:
    await websocket_manager.connect(websocket, job_id)
    try:
        while True:
            # Clients only listen; incoming text keeps the connection alive
            await websocket.receive_text()
    except WebSocketDisconnect:
        websocket_manager.disconnect(websocket, job_id)
