from datetime import datetime
from typing import Annotated, Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.dependencies import get_current_user_id
from ..database import get_async_db
from . import service

router = APIRouter(prefix="/jobs", tags=["jobs"])


class JobResponse(BaseModel):
    id: UUID
    job_type: str
    status: str
    chat_id: Optional[UUID] = None
    message_id: Optional[UUID] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    attempts: int
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: UUID,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: AsyncSession = Depends(get_async_db)
):
    """Poll a background job started by one of the caller's requests"""
    return await service.get_job_for_user(db, job_id, user_id)
