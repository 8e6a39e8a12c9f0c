from typing import Any, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..chats import service as chat_service
from ..chats.models import Message
from ..error_handlers import ErrorCode, ValidationException
from ..images import service as image_service
from ..logging_config import get_logger, log_business_event
from ..storage.service import ObjectStorage
from .payloads import decode_response_data, resolve_content

logger = get_logger(__name__)

WEBHOOK_IMAGE_TYPE = "webhook"
WEBHOOK_IMAGE_NAME = "image.png"


async def find_delivery(db: AsyncSession, delivery_id: str) -> Optional[Message]:
    result = await db.execute(select(Message).where(Message.webhook_delivery_id == delivery_id))
    return result.scalar_one_or_none()


async def ingest_response(
    db: AsyncSession,
    storage: ObjectStorage,
    chat_id: UUID,
    response_data: Any,
    user_id: Optional[str] = None,
    delivery_id: Optional[str] = None,
) -> Tuple[Message, bool]:
    """
    Store an automation's reply as one assistant message.

    Returns (message, duplicate). A repeated delivery id returns the
    message stored the first time instead of inserting again.
    """
    if delivery_id:
        existing = await find_delivery(db, delivery_id)
        if existing:
            logger.info(f"Duplicate webhook delivery ignored: {delivery_id}")
            return existing, True

    decoded = decode_response_data(response_data)
    content = resolve_content(decoded)
    if content.is_empty:
        logger.warning(
            "Webhook payload carried no text or image",
            extra={"extra_data": {"chat_id": str(chat_id), "variant": type(decoded).__name__}}
        )
        raise ValidationException(
            "No AI response text found",
            error_code=ErrorCode.INVALID_WEBHOOK_PAYLOAD,
        )

    chat = await chat_service.get_chat(db, chat_id)
    owner_id = user_id or chat.user_id

    attachments = []
    if content.image_base64:
        data = image_service.decode_base64_image(content.image_base64)
        url, path = await image_service.save_image_bytes(
            storage, data, owner_id, str(chat_id), WEBHOOK_IMAGE_NAME, WEBHOOK_IMAGE_TYPE
        )
        attachments.append(chat_service.build_attachment(path.rsplit("/", 1)[-1], url, size=len(data)))

    try:
        message = await chat_service.add_message(
            db, chat_id, "assistant", content.text, attachments, webhook_delivery_id=delivery_id
        )
    except IntegrityError:
        # Concurrent delivery of the same id won the insert
        await db.rollback()
        existing = await find_delivery(db, delivery_id) if delivery_id else None
        if not existing:
            raise
        return existing, True

    log_business_event(
        "webhook_ingested",
        user_id=owner_id,
        chat_id=str(chat_id),
        message_id=str(message.id),
        has_image=bool(attachments),
    )
    return message, False
