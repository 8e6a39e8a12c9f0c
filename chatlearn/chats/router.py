"""
Chats API
Endpoints:
- POST /chats
- GET /chats (list user chats, optional project filter)
- GET /chats/{chat_id}
- PATCH /chats/{chat_id}
- DELETE /chats/{chat_id}
- GET /chats/{chat_id}/messages
- POST /chats/{chat_id}/messages
"""

from typing import Annotated, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.dependencies import get_current_user_id
from ..database import get_async_db
from ..logging_config import get_logger, log_business_event
from ..projects import service as project_service
from . import schemas, service

logger = get_logger(__name__)

router = APIRouter(prefix="/chats", tags=["chats"])


@router.post("", response_model=schemas.ChatResponse, status_code=201)
async def create_chat(
    payload: schemas.ChatCreate,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: AsyncSession = Depends(get_async_db)
):
    if payload.project_id:
        await project_service.get_owned_project(db, payload.project_id, user_id)
    chat = await service.create_chat(db, user_id, payload.title, payload.project_id)
    log_business_event("chat_created", user_id=user_id, chat_id=str(chat.id))
    return chat


@router.get("", response_model=List[schemas.ChatResponse])
async def list_chats(
    user_id: Annotated[str, Depends(get_current_user_id)],
    project_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_async_db)
):
    return await service.list_chats(db, user_id, project_id)


@router.get("/{chat_id}", response_model=schemas.ChatResponse)
async def get_chat(
    chat_id: UUID,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: AsyncSession = Depends(get_async_db)
):
    return await service.get_owned_chat(db, chat_id, user_id)


@router.patch("/{chat_id}", response_model=schemas.ChatResponse)
async def update_chat(
    chat_id: UUID,
    payload: schemas.ChatUpdate,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: AsyncSession = Depends(get_async_db)
):
    chat = await service.get_owned_chat(db, chat_id, user_id)
    if payload.project_id:
        await project_service.get_owned_project(db, payload.project_id, user_id)
    return await service.update_chat(db, chat, payload.title, payload.project_id)


@router.delete("/{chat_id}")
async def delete_chat(
    chat_id: UUID,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: AsyncSession = Depends(get_async_db)
):
    await service.get_owned_chat(db, chat_id, user_id)
    await service.delete_chat(db, chat_id)
    log_business_event("chat_deleted", user_id=user_id, chat_id=str(chat_id))
    return {"success": True}


@router.get("/{chat_id}/messages", response_model=List[schemas.MessageResponse])
async def list_messages(
    chat_id: UUID,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: AsyncSession = Depends(get_async_db)
):
    await service.get_owned_chat(db, chat_id, user_id)
    return await service.list_messages(db, chat_id)


@router.post("/{chat_id}/messages", response_model=schemas.MessageResponse, status_code=201)
async def add_message(
    chat_id: UUID,
    payload: schemas.MessageCreate,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: AsyncSession = Depends(get_async_db)
):
    """Store a turn before asking the orchestrator for a reply"""
    chat = await service.get_owned_chat(db, chat_id, user_id)
    attachments = [a.model_dump() for a in payload.file_attachments]
    if payload.role == "user":
        return await service.append_user_message(db, chat, payload.content, attachments)
    return await service.add_message(db, chat_id, payload.role, payload.content, attachments)
