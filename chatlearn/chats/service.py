# chatlearn/chats/service.py
import uuid
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..error_handlers import ForbiddenException, NotFoundException
from ..logging_config import get_logger
from .models import Chat, Message, utcnow

logger = get_logger(__name__)

DEFAULT_CHAT_TITLE = "New Chat"
TITLE_MAX_CHARS = 50


def derive_title(text: str) -> str:
    text = text.strip()
    if len(text) > TITLE_MAX_CHARS:
        return text[:TITLE_MAX_CHARS] + "..."
    return text


def build_attachment(name: str, url: str, content_type: str = "image/png", size: int = 0) -> dict:
    return {
        "id": str(uuid.uuid4()),
        "name": name,
        "url": url,
        "type": content_type,
        "size": size,
    }


# ============================================================================
# CHATS
# ============================================================================

async def create_chat(
    db: AsyncSession,
    user_id: str,
    title: Optional[str] = None,
    project_id: Optional[UUID] = None,
) -> Chat:
    chat = Chat(user_id=user_id, title=title or DEFAULT_CHAT_TITLE, project_id=project_id)
    db.add(chat)
    await db.commit()
    await db.refresh(chat)
    logger.info(
        f"Chat created: {chat.id}",
        extra={"user_id": user_id, "extra_data": {"project_id": str(project_id) if project_id else None}}
    )
    return chat


async def list_chats(db: AsyncSession, user_id: str, project_id: Optional[UUID] = None) -> List[Chat]:
    """Most recently updated first"""
    query = select(Chat).where(Chat.user_id == user_id)
    if project_id:
        query = query.where(Chat.project_id == project_id)
    result = await db.execute(query.order_by(Chat.updated_at.desc()))
    return list(result.scalars().all())


async def get_chat(db: AsyncSession, chat_id: UUID) -> Chat:
    chat = await db.get(Chat, chat_id)
    if not chat:
        raise NotFoundException("Chat", str(chat_id))
    return chat


async def get_owned_chat(db: AsyncSession, chat_id: UUID, user_id: str) -> Chat:
    chat = await get_chat(db, chat_id)
    if chat.user_id != user_id:
        logger.warning(
            "Chat access denied",
            extra={"user_id": user_id, "extra_data": {"chat_id": str(chat_id)}}
        )
        raise ForbiddenException("You don't have access to this chat")
    return chat


async def update_chat(
    db: AsyncSession,
    chat: Chat,
    title: Optional[str] = None,
    project_id: Optional[UUID] = None,
) -> Chat:
    if title is not None:
        chat.title = title
    if project_id is not None:
        chat.project_id = project_id
    chat.updated_at = utcnow()
    await db.commit()
    await db.refresh(chat)
    return chat


async def delete_chat(db: AsyncSession, chat_id: UUID):
    await db.execute(delete(Message).where(Message.chat_id == chat_id))
    await db.execute(delete(Chat).where(Chat.id == chat_id))
    await db.commit()
    logger.info(f"Chat deleted: {chat_id}")


async def touch_chat(db: AsyncSession, chat_id: UUID):
    await db.execute(update(Chat).where(Chat.id == chat_id).values(updated_at=utcnow()))


# ============================================================================
# MESSAGES
# ============================================================================

async def list_messages(db: AsyncSession, chat_id: UUID) -> List[Message]:
    result = await db.execute(
        select(Message).where(Message.chat_id == chat_id).order_by(Message.created_at.asc())
    )
    return list(result.scalars().all())


async def load_recent_history(db: AsyncSession, chat_id: UUID, limit: int) -> List[Message]:
    """
    The last `limit` messages of a chat in chronological order.

    Fetched newest first so the limit keeps the most recent turns, then
    reversed.
    """
    result = await db.execute(
        select(Message)
        .where(Message.chat_id == chat_id)
        .order_by(Message.created_at.desc())
        .limit(limit)
    )
    return list(reversed(result.scalars().all()))


async def count_user_messages(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count(Message.id))
        .join(Chat, Chat.id == Message.chat_id)
        .where(Chat.user_id == user_id, Message.role == "user")
    )
    return result.scalar_one()


async def add_message(
    db: AsyncSession,
    chat_id: UUID,
    role: str,
    content: str,
    file_attachments: Optional[List[dict]] = None,
    webhook_delivery_id: Optional[str] = None,
) -> Message:
    """Insert one message and bump the chat's updated_at"""
    message = Message(
        chat_id=chat_id,
        role=role,
        content=content,
        file_attachments=file_attachments or [],
        webhook_delivery_id=webhook_delivery_id,
    )
    db.add(message)
    await touch_chat(db, chat_id)
    await db.commit()
    await db.refresh(message)
    return message


async def append_user_message(
    db: AsyncSession,
    chat: Chat,
    content: str,
    file_attachments: Optional[List[dict]] = None,
) -> Message:
    """Store a user turn; the first one names an untitled chat"""
    if chat.title == DEFAULT_CHAT_TITLE and content.strip():
        existing = await db.execute(
            select(func.count(Message.id)).where(Message.chat_id == chat.id, Message.role == "user")
        )
        if existing.scalar_one() == 0:
            chat.title = derive_title(content)
    return await add_message(db, chat.id, "user", content, file_attachments)
