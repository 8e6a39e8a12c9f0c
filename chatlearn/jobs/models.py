# chatlearn/jobs/models.py
import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, Uuid

from ..database import Base


class JobType(str, Enum):
    PERSIST_IMAGE = "persist_image"
    EMBED_MESSAGE = "embed_message"


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"


class BackgroundJob(Base):
    """
    Durable record of detached work started by a request.

    The request never waits on these; clients poll /api/jobs/{id} for the
    outcome.
    """
    __tablename__ = "background_jobs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    job_type = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default=JobStatus.QUEUED.value, index=True)

    user_id = Column(String, nullable=True, index=True)
    chat_id = Column(Uuid, nullable=True)
    message_id = Column(Uuid, nullable=True, index=True)

    payload = Column(JSON, nullable=False, default=dict)
    result = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<BackgroundJob {self.id} {self.job_type} - {self.status}>"
