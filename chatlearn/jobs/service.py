# chatlearn/jobs/service.py
"""
Detached work started by a request: copying a generated image into the
bucket and embedding a stored message.

Each unit of work is a BackgroundJob row plus a Celery task. The row is the
source of truth for status; the task only carries the job id. Handlers
must be safe to run more than once (delivery is at-least-once).
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from ..ai.factory import get_embedding_provider
from ..chats.models import Message
from ..database import get_db_session
from ..error_handlers import ForbiddenException, NotFoundException
from ..images.service import generated_image_path, save_image_from_url
from ..logging_config import get_logger, log_business_event
from ..storage.service import get_storage
from .models import BackgroundJob, JobStatus, JobType

logger = get_logger(__name__)


# ============================================================================
# ENQUEUE (request side)
# ============================================================================

def dispatch_job(job_id: str):
    # Import here to avoid circular dependencies
    from .tasks import run_background_job
    run_background_job.apply_async(args=[job_id])


async def enqueue_job(
    db: AsyncSession,
    job_type: JobType,
    user_id: Optional[str] = None,
    chat_id: Optional[UUID] = None,
    message_id: Optional[UUID] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> BackgroundJob:
    """
    Persist the job row, then hand its id to the queue.

    The row is committed before dispatch so a fast worker always finds it.
    A broker failure marks the job failed instead of failing the request.
    """
    job = BackgroundJob(
        job_type=job_type.value,
        status=JobStatus.QUEUED.value,
        user_id=user_id,
        chat_id=chat_id,
        message_id=message_id,
        payload=payload or {},
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)

    try:
        await run_in_threadpool(dispatch_job, str(job.id))
    except Exception as e:
        logger.error(
            f"Failed to dispatch job {job.id}: {e}",
            extra={"user_id": user_id, "extra_data": {"job_type": job_type.value}},
            exc_info=True
        )
        job.status = JobStatus.FAILED.value
        job.error = f"dispatch failed: {e}"
        await db.commit()
        return job

    # Eager workers finish inside dispatch; reload so callers see the outcome
    await db.refresh(job)
    logger.info(
        f"Job enqueued: {job.id}",
        extra={"user_id": user_id, "extra_data": {"job_type": job_type.value, "status": job.status}}
    )
    return job


async def get_job_for_user(db: AsyncSession, job_id: UUID, user_id: str) -> BackgroundJob:
    job = await db.get(BackgroundJob, job_id)
    if not job:
        raise NotFoundException("Job", str(job_id))
    if job.user_id and job.user_id != user_id:
        raise ForbiddenException("You don't have access to this job")
    return job


# ============================================================================
# HANDLERS (worker side)
# ============================================================================

def persist_image(db: Session, job: BackgroundJob) -> Dict[str, Any]:
    """Copy the provider's temporary image URL into the bucket and repoint the message attachment"""
    temp_url = job.payload["temp_url"]
    user_id = job.user_id or "anonymous"
    # Path fixed by the job, so a redelivery overwrites the same object
    path = generated_image_path(user_id, int(job.created_at.timestamp() * 1000), job.id.hex[:8])

    permanent_url = save_image_from_url(get_storage(), temp_url, user_id, path=path)
    if not permanent_url:
        raise RuntimeError(f"Could not copy image into storage: {path}")

    if job.message_id:
        message = db.get(Message, job.message_id)
        if message:
            attachments = []
            for attachment in message.file_attachments or []:
                if attachment.get("url") == temp_url:
                    attachment = {**attachment, "url": permanent_url}
                attachments.append(attachment)
            # New list so the JSON column registers the change
            message.file_attachments = attachments

    return {"url": permanent_url, "path": path}


def embed_message(db: Session, job: BackgroundJob) -> Dict[str, Any]:
    """Compute and store the message's embedding"""
    message = db.get(Message, job.message_id)
    if not message:
        raise ValueError(f"Message {job.message_id} not found")

    if message.embedding:
        return {"dimensions": len(message.embedding), "already_embedded": True}

    async def _embed():
        return await get_embedding_provider().embed(message.content)

    embedding = asyncio.run(_embed())
    message.embedding = embedding
    return {"dimensions": len(embedding)}


HANDLERS: Dict[str, Callable[[Session, BackgroundJob], Dict[str, Any]]] = {
    JobType.PERSIST_IMAGE.value: persist_image,
    JobType.EMBED_MESSAGE.value: embed_message,
}


def run_job(job_id: str, final_attempt: bool = True) -> Dict[str, Any]:
    """
    Execute one attempt of a job and record the outcome on its row.

    Raises the handler's exception after recording it so the task can
    decide whether to retry.
    """
    with get_db_session() as db:
        job = db.get(BackgroundJob, UUID(job_id))
        if not job:
            raise ValueError(f"Job {job_id} not found")

        if job.status == JobStatus.COMPLETED.value:
            logger.info(f"Job already completed, skipping: {job_id}")
            return job.result or {}

        handler = HANDLERS.get(job.job_type)
        if not handler:
            raise ValueError(f"No handler for job type {job.job_type}")

        job.status = JobStatus.RUNNING.value
        job.attempts = (job.attempts or 0) + 1
        job.started_at = datetime.now(timezone.utc)
        db.commit()

        try:
            result = handler(db, job)
        except Exception as e:
            db.rollback()
            job = db.get(BackgroundJob, UUID(job_id))
            job.status = JobStatus.FAILED.value if final_attempt else JobStatus.RETRYING.value
            job.error = str(e) or type(e).__name__
            if final_attempt:
                job.completed_at = datetime.now(timezone.utc)
            db.commit()

            logger.error(
                f"Job attempt failed: {job_id}",
                extra={
                    "user_id": job.user_id,
                    "job_id": job_id,
                    "extra_data": {
                        "job_type": job.job_type,
                        "attempts": job.attempts,
                        "final_attempt": final_attempt,
                        "error": job.error,
                    }
                }
            )
            if final_attempt:
                log_business_event("job_failed", user_id=job.user_id, job_id=job_id, job_type=job.job_type)
            raise

        job.status = JobStatus.COMPLETED.value
        job.result = result
        job.error = None
        job.completed_at = datetime.now(timezone.utc)
        db.commit()

        logger.info(
            f"Job completed: {job_id}",
            extra={"user_id": job.user_id, "job_id": job_id, "extra_data": {"job_type": job.job_type, "attempts": job.attempts}}
        )
        return result
