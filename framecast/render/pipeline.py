"""
Render job orchestration.

This module drives an offline render from start to finish:
1. Validate the configuration
2. Precompute external feeds (audio analysis, video frame maps) once
3. Partition the frame range across workers
4. Dispatch partitions to a process pool, thread pool or Celery workers
5. Reassemble the chunks and mux the audio track

Completed partitions leave a ``.done`` marker next to their chunk file, so a
failed or cancelled job can be resumed with ``render(resume=True)`` without
re-rendering them.
"""

import asyncio
import functools
import hashlib
import logging
import shutil
import threading
import time
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from framecast.config import get_settings
from framecast.exceptions import ConfigurationError, FramecastError, RenderCancelledError
from framecast.render.feeds import RenderFeeds, prepare_feeds
from framecast.render.interfaces import DrawingSurface, FrameSink, ProgressReporter
from framecast.render.partitioner import RenderPartition, partition_frames, resolve_worker_count
from framecast.render.reassembly import ChunkReassembler
from framecast.render.timeline import RenderConfig, Timeline
from framecast.render.worker import (
    ChunkResult,
    PartitionJob,
    read_done_marker,
    render_and_mark,
    run_partition_job,
)

logger = logging.getLogger(__name__)

EXECUTORS = ("auto", "process", "thread", "celery")

# Percent ranges of the overall job reported to progress callbacks
_FEEDS_PERCENT = 5
_RENDER_PERCENT_END = 90


class RenderStatus(Enum):
    """Render job status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class RenderProgress:
    """Progress information for a render job."""

    job_id: str
    status: RenderStatus
    percent: float = 0.0
    current_step: Optional[str] = None
    frames_done: int = 0
    total_frames: int = 0
    elapsed_ms: int = 0
    error_message: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "percent": self.percent,
            "current_step": self.current_step,
            "frames_done": self.frames_done,
            "total_frames": self.total_frames,
            "elapsed_ms": self.elapsed_ms,
            "error_message": self.error_message,
        }


def default_job_id(output_file: str) -> str:
    """Job id stable across runs for one output path (so ``resume`` finds its chunks)."""
    digest = hashlib.sha1(str(Path(output_file).resolve()).encode()).hexdigest()[:10]
    stem = Path(output_file).stem
    return f"{stem}-{digest}" if stem else digest


def chunk_file_name(partition: RenderPartition) -> str:
    return f"chunk_{partition.worker_index:03d}_{partition.start_frame}_{partition.end_frame}.mp4"


class RenderPipeline:
    """
    Parallel offline renderer for one composition.

    Handles:
    - Feed precomputation shared by all workers
    - Frame partitioning and dispatch to process / thread / Celery workers
    - Progress reporting and cancellation
    - Resume from completed chunks
    - Chunk reassembly with a single audio mux
    """

    def __init__(
        self,
        config: RenderConfig,
        timeline: Timeline,
        *,
        composition_ref: Optional[str] = None,
        workers: Optional[int] = None,
        executor: Optional[str] = None,
        work_dir: Optional[str] = None,
        job_id: Optional[str] = None,
        surface_factory: Optional[Callable[[RenderConfig], DrawingSurface]] = None,
        encoder_factory: Optional[Callable[..., FrameSink]] = None,
        reassembler: Optional[ChunkReassembler] = None,
        feeds: Optional[RenderFeeds] = None,
        progress_reporter: Optional[ProgressReporter] = None,
    ):
        settings = get_settings()
        self.config = config
        self.timeline = timeline
        self.composition_ref = composition_ref
        self.workers = workers if workers is not None else settings.render_workers
        self.executor = executor or settings.render_executor
        if self.executor not in EXECUTORS:
            raise ConfigurationError(f"Unknown executor '{self.executor}'", field="executor")
        self.job_id = job_id or default_job_id(config.output_file)
        self.work_dir = Path(work_dir or settings.render_work_dir) / self.job_id
        self.chunks_dir = self.work_dir / "chunks"
        self.surface_factory = surface_factory
        self.encoder_factory = encoder_factory
        self.reassembler = reassembler or ChunkReassembler(work_dir=str(self.work_dir))
        self.feeds = feeds
        self.progress_reporter = progress_reporter
        self.celery_timeout_s = settings.render_celery_timeout_s

        self.progress = RenderProgress(job_id=self.job_id, status=RenderStatus.PENDING)
        self._progress_callback: Optional[Callable[[int, str], Any]] = None
        self._cancel_check: Optional[Callable[[], Any]] = None
        self._cancelled = threading.Event()
        self._frames_lock = threading.Lock()
        self._started_at = 0.0

    # ------------------------------------------------------------------
    # Progress / cancellation
    # ------------------------------------------------------------------

    def set_progress_callback(self, callback: Callable[[int, str], Any]) -> None:
        """Set callback for progress updates: ``callback(percent, stage)``."""
        self._progress_callback = callback

    def _update_progress(self, progress: int, stage: str) -> None:
        """Update render progress."""
        self.progress.percent = float(progress)
        self.progress.current_step = stage
        self.progress.elapsed_ms = int((time.monotonic() - self._started_at) * 1000)
        if self._progress_callback:
            self._progress_callback(progress, stage)

    def _frames_completed(self, count: int) -> None:
        with self._frames_lock:
            self.progress.frames_done += count
            done = self.progress.frames_done
        total = max(self.progress.total_frames, 1)
        percent = _FEEDS_PERCENT + int(done / total * (_RENDER_PERCENT_END - _FEEDS_PERCENT))
        if self.progress_reporter is not None:
            self.progress_reporter.update(done)
        self._update_progress(percent, f"Rendered {done}/{self.progress.total_frames} frames")

    def cancel(self) -> None:
        """Stop dispatching partitions; running workers finish their partition."""
        logger.info(f"[PIPELINE] Cancel requested for job {self.job_id}")
        self._cancelled.set()

    async def _is_cancelled(self) -> bool:
        """Check if render has been cancelled."""
        if self._cancelled.is_set():
            return True
        if self._cancel_check is None:
            return False
        result = self._cancel_check()
        if asyncio.iscoroutine(result):
            result = await result
        if result:
            self._cancelled.set()
        return bool(result)

    # ------------------------------------------------------------------
    # Render
    # ------------------------------------------------------------------

    async def render(
        self,
        output_path: Optional[str] = None,
        *,
        resume: bool = False,
        cancel_check: Optional[Callable[[], Any]] = None,
    ) -> str:
        """
        Execute the full render.

        Args:
            output_path: Final video path (defaults to ``config.output_file``)
            resume: Reuse chunks completed by a previous run of this job
            cancel_check: Optional (async) callable that returns True if cancelled

        Returns:
            Path to rendered video

        Raises:
            ConfigurationError: before any frame work, for invalid configs
            PartitionRenderError: the first partition that failed
            RenderCancelledError: if the job was cancelled
        """
        self._cancel_check = cancel_check
        self._started_at = time.monotonic()
        output_path = output_path or self.config.output_file

        try:
            config = self.config.validate()
            executor_kind = self._resolve_executor()

            self.progress.status = RenderStatus.PROCESSING
            self.progress.total_frames = config.total_frames
            self.progress.frames_done = 0
            self._update_progress(0, "Preparing render")

            if self.feeds is None:
                self._update_progress(1, "Analyzing media")
                self.feeds = await asyncio.to_thread(prepare_feeds, config)
            await self._raise_if_cancelled()

            worker_count = resolve_worker_count(self.workers)
            partitions = partition_frames(config.total_frames, worker_count)
            logger.info(
                f"[PIPELINE] Job {self.job_id}: {config.total_frames} frames, "
                f"{worker_count} workers, executor={executor_kind}"
            )
            if self.progress_reporter is not None:
                self.progress_reporter.start(config.total_frames)

            if not resume:
                shutil.rmtree(self.chunks_dir, ignore_errors=True)
            self.chunks_dir.mkdir(parents=True, exist_ok=True)

            results, pending = self._collect_resumable(partitions, resume)
            self._update_progress(_FEEDS_PERCENT, f"Rendering {len(pending)} partitions")
            results += await self._dispatch(pending, executor_kind)

            await self._raise_if_cancelled()
            self._update_progress(_RENDER_PERCENT_END + 2, "Reassembling chunks")
            await self.reassembler.reassemble(
                results,
                output_path,
                audio_file=config.audio_file,
                duration_seconds=config.duration_seconds,
            )
        except RenderCancelledError as e:
            self.progress.status = RenderStatus.CANCELLED
            self.progress.error_message = e.message
            raise
        except FramecastError as e:
            self.progress.status = RenderStatus.FAILED
            self.progress.error_message = e.message
            raise

        self._update_progress(97, "Cleaning up")
        self._cleanup()

        self.progress.status = RenderStatus.COMPLETED
        self._update_progress(100, "Complete")
        if self.progress_reporter is not None:
            self.progress_reporter.finish(output_path)
        logger.info(f"[PIPELINE] Job {self.job_id} complete: {output_path}")
        return output_path

    def _resolve_executor(self) -> str:
        if self.executor == "auto":
            return "process" if self.composition_ref else "thread"
        if self.executor in ("process", "celery") and not self.composition_ref:
            raise ConfigurationError(
                f"The {self.executor} executor needs a composition reference ('module:attribute')",
                field="composition_ref",
            )
        return self.executor

    async def _raise_if_cancelled(self) -> None:
        if await self._is_cancelled():
            raise RenderCancelledError(f"Render job {self.job_id} cancelled")

    def _collect_resumable(
        self, partitions: list[RenderPartition], resume: bool
    ) -> tuple[list[ChunkResult], list[RenderPartition]]:
        """Split partitions into reusable results and partitions still to render."""
        results: list[ChunkResult] = []
        pending: list[RenderPartition] = []
        for partition in partitions:
            if partition.is_empty:
                results.append(ChunkResult(partition.worker_index, None, 0))
                continue
            previous = read_done_marker(self.chunks_dir / chunk_file_name(partition)) if resume else None
            if previous is not None and previous.frame_count == partition.frame_count:
                logger.info(f"[PIPELINE] Reusing chunk for partition {partition.worker_index}")
                results.append(previous)
                self._frames_completed(previous.frame_count)
            else:
                pending.append(partition)
        return results, pending

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _dispatch(self, partitions: list[RenderPartition], executor_kind: str) -> list[ChunkResult]:
        if not partitions:
            return []
        if executor_kind == "celery":
            return await self._gather([self._run_celery(p) for p in partitions])

        pool_cls = ProcessPoolExecutor if executor_kind == "process" else ThreadPoolExecutor
        pool: Executor = pool_cls(max_workers=len(partitions))
        loop = asyncio.get_running_loop()
        try:
            coros = [
                loop.run_in_executor(pool, self._partition_callable(p, executor_kind, loop))
                for p in partitions
            ]
            return await self._gather(coros, per_frame_progress=executor_kind == "thread")
        finally:
            pool.shutdown(wait=True, cancel_futures=True)

    def _partition_callable(
        self,
        partition: RenderPartition,
        executor_kind: str,
        loop: asyncio.AbstractEventLoop,
    ) -> Callable[[], ChunkResult]:
        output_path = str(self.chunks_dir / chunk_file_name(partition))
        if executor_kind == "process":
            return functools.partial(run_partition_job, self._job_for(partition, output_path))

        kwargs: dict[str, Any] = {
            # Progress callbacks run on the event loop, not in worker threads
            "progress": lambda frame: loop.call_soon_threadsafe(self._frames_completed, 1),
        }
        if self.surface_factory is not None:
            kwargs["surface_factory"] = self.surface_factory
        if self.encoder_factory is not None:
            kwargs["encoder_factory"] = self.encoder_factory
        return functools.partial(
            render_and_mark, partition, self.config, self.timeline, self.feeds, output_path, **kwargs
        )

    def _job_for(self, partition: RenderPartition, output_path: str) -> PartitionJob:
        return PartitionJob(
            composition_ref=self.composition_ref,
            partition=partition,
            config=self.config,
            feeds=self.feeds,
            output_path=output_path,
        )

    async def _run_celery(self, partition: RenderPartition) -> ChunkResult:
        from framecast.tasks.render_task import render_partition_task

        output_path = str(self.chunks_dir / chunk_file_name(partition))
        job = self._job_for(partition, output_path)
        async_result = render_partition_task.delay(job.to_dict())
        logger.info(f"[PIPELINE] Partition {partition.worker_index} sent to Celery task {async_result.id}")
        payload = await asyncio.to_thread(async_result.get, timeout=self.celery_timeout_s)
        return ChunkResult.from_dict(payload)

    async def _gather(
        self,
        awaitables: list[Awaitable[ChunkResult]],
        *,
        per_frame_progress: bool = False,
    ) -> list[ChunkResult]:
        """Wait for every partition, reporting progress as chunks complete.

        On the first failure (or a cancel request) partitions that have not
        started are cancelled. Workers already running finish their partition
        and write its ``.done`` marker, so a resumed run can reuse the chunk.
        Then the first error is raised.
        """
        tasks = [asyncio.ensure_future(a) for a in awaitables]
        results: list[ChunkResult] = []
        first_error: Optional[BaseException] = None

        for next_done in asyncio.as_completed(tasks):
            try:
                result = await next_done
            except asyncio.CancelledError:
                continue
            except Exception as e:
                if first_error is None:
                    first_error = e
                    logger.error(f"[PIPELINE] Partition failed: {e}")
                    for task in tasks:
                        task.cancel()
                continue

            results.append(result)
            if not per_frame_progress:
                self._frames_completed(result.frame_count)

            if first_error is None and await self._is_cancelled():
                first_error = RenderCancelledError(f"Render job {self.job_id} cancelled")
                for task in tasks:
                    task.cancel()

        if first_error is not None:
            raise first_error
        return results

    def _cleanup(self) -> None:
        """Clean up chunk files once the final video exists."""
        try:
            shutil.rmtree(self.work_dir)
        except OSError as e:
            logger.warning(f"[PIPELINE] Could not remove work dir {self.work_dir}: {e}")
