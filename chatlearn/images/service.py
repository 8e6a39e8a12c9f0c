# chatlearn/images/service.py
"""
Image pipeline: copy provider-hosted (expiring) images into the bucket,
store user uploads and edited images, and run image edits.
"""

import base64
import binascii
import re
import time
import uuid
from typing import Optional, Tuple
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from ..ai.base import BaseAIProvider
from ..chats import service as chat_service
from ..config import settings
from ..error_handlers import ErrorCode, ExternalServiceException, ValidationException
from ..logging_config import get_logger, log_business_event
from ..storage.service import ObjectStorage

logger = get_logger(__name__)

DATA_URL_PREFIX = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")


def _unique_suffix() -> str:
    return uuid.uuid4().hex[:8]


def generated_image_path(user_id: str, timestamp_ms: Optional[int] = None, suffix: Optional[str] = None) -> str:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{user_id}/{timestamp_ms}-{suffix or _unique_suffix()}.png"


def uploaded_image_path(user_id: str, chat_id: str, file_name: str, image_type: str) -> str:
    return f"{user_id}/{chat_id}/{image_type}_{int(time.time() * 1000)}_{_unique_suffix()}_{file_name}"


def decode_base64_image(data: str) -> bytes:
    """Accepts raw base64 or a data: URL"""
    try:
        decoded = base64.b64decode(DATA_URL_PREFIX.sub("", data.strip()), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationException("Image data is not valid base64", error_code=ErrorCode.INVALID_IMAGE)
    if not decoded:
        raise ValidationException("Image data is empty", error_code=ErrorCode.INVALID_IMAGE)
    return decoded


def download_image(url: str) -> bytes:
    with httpx.Client(timeout=settings.IMAGE_DOWNLOAD_TIMEOUT) as client:
        response = client.get(url)
        response.raise_for_status()
        return response.content


def save_image_from_url(storage: ObjectStorage, url: str, user_id: str, path: Optional[str] = None) -> Optional[str]:
    """
    Copy a temporary image URL into the bucket.

    Returns the permanent public URL, or None when the download or the
    upload fails. Runs in workers, after the reply has been sent.
    """
    path = path or generated_image_path(user_id)
    try:
        data = download_image(url)
        permanent_url = storage.upload(path, data)
    except (httpx.HTTPError, ExternalServiceException) as e:
        logger.error(
            f"Failed to copy image into storage: {e}",
            extra={"user_id": user_id, "extra_data": {"source_url": url[:200], "path": path}},
        )
        return None

    log_business_event("image_persisted", user_id=user_id, path=path, size_bytes=len(data))
    return permanent_url


async def save_image_bytes(
    storage: ObjectStorage,
    data: bytes,
    user_id: str,
    chat_id: str,
    file_name: str,
    image_type: str = "edited",
) -> Tuple[str, str]:
    """Store an image under the chat's folder. Returns (public_url, path)."""
    path = uploaded_image_path(user_id, chat_id, file_name, image_type)
    url = await storage.upload_async(path, data)
    log_business_event("image_saved", user_id=user_id, chat_id=chat_id, path=path, image_type=image_type)
    return url, path


async def edit_image(
    db: AsyncSession,
    provider: BaseAIProvider,
    image_data: str,
    prompt: str,
    file_name: str,
    chat_id: UUID,
    user_id: str,
) -> Tuple[str, str]:
    """
    Edit an uploaded image and post the result into the chat.

    Returns (edited_image_url, reply_text). The reply row is best effort:
    a failed insert is logged and the edited image is still returned.
    """
    image = decode_base64_image(image_data)
    edited = await provider.edit_image(image, file_name, prompt)
    if not edited.url:
        raise ExternalServiceException(
            service_name="OpenAI",
            message="No edited image returned",
            error_code=ErrorCode.IMAGE_GENERATION_FAILED,
            status_code=500,
        )

    reply = f'I\'ve edited your image based on your request: "{prompt}"'
    try:
        await chat_service.add_message(
            db,
            chat_id,
            "assistant",
            reply,
            [chat_service.build_attachment(f"edited_{file_name}", edited.url)],
        )
    except Exception as e:
        await db.rollback()
        logger.error(
            f"Failed to save edited image message: {e}",
            extra={"user_id": user_id, "extra_data": {"chat_id": str(chat_id)}},
            exc_info=True
        )

    log_business_event("image_edited", user_id=user_id, chat_id=str(chat_id))
    return edited.url, reply
