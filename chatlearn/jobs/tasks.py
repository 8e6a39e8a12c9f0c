# chatlearn/jobs/tasks.py
"""
Celery entry point for background jobs.

The task carries only the job id; status, attempts and errors live on the
BackgroundJob row so clients can poll /api/jobs/{id}.
"""

from celery.exceptions import SoftTimeLimitExceeded

from ..celery_app import celery_app
from ..config import settings
from ..logging_config import get_logger
from . import service

logger = get_logger(__name__)


@celery_app.task(name="run_background_job", bind=True, max_retries=settings.JOB_MAX_RETRIES)
def run_background_job(self, job_id: str):
    """
    Run one attempt of a job.

    Retries: JOB_MAX_RETRIES with exponential backoff
    (JOB_RETRY_BACKOFF_SECONDS * 2^n). The last attempt marks the job failed.
    """
    final_attempt = self.request.retries >= self.max_retries

    logger.info(
        "Starting background job",
        extra={"job_id": job_id, "extra_data": {
            "task_id": self.request.id,
            "retry_attempt": self.request.retries
        }}
    )

    try:
        return service.run_job(job_id, final_attempt=final_attempt)
    except SoftTimeLimitExceeded:
        logger.error("Background job exceeded time limit", extra={"job_id": job_id})
        raise
    except Exception as e:
        if final_attempt:
            raise
        retry_delay = settings.JOB_RETRY_BACKOFF_SECONDS * (2 ** self.request.retries)
        logger.info(
            f"Retrying background job in {retry_delay}s",
            extra={"job_id": job_id, "extra_data": {
                "retry_attempt": self.request.retries + 1,
                "max_retries": self.max_retries
            }}
        )
        raise self.retry(exc=e, countdown=retry_delay)
