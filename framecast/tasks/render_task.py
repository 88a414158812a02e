"""Celery task rendering one partition of a render job.

Chunk files are written to the job's work directory, which must be shared
between the orchestrator and the Celery workers.
"""

import logging

from framecast.celery_app import celery_app
from framecast.exceptions import FramecastError
from framecast.render.worker import PartitionJob, run_partition_job

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3, default_retry_delay=10)
def render_partition_task(self, job_payload: dict) -> dict:
    """
    Render one partition as a Celery task.

    Args:
        job_payload: ``PartitionJob.to_dict()``

    Returns:
        ``ChunkResult.to_dict()``
    """
    job = PartitionJob.from_dict(job_payload)
    index = job.partition.worker_index
    self.update_state(state="PROGRESS", meta={"partition": index, "frames": job.partition.frame_count})

    try:
        result = run_partition_job(job)
    except FramecastError as e:
        if e.retryable and self.request.retries < self.max_retries:
            logger.warning(f"[WORKER {index}] Retrying after error: {e.message}")
            raise self.retry(exc=e)
        logger.error(f"[WORKER {index}] Giving up: {e.message}")
        raise

    return result.to_dict()
