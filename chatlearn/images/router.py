"""
Image API
Endpoints:
- POST /save-image
- POST /edit-image
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..ai.base import BaseAIProvider
from ..ai.factory import get_openai_provider
from ..database import get_async_db
from ..logging_config import get_logger
from ..rate_limit import IMAGE_LIMIT, limiter
from ..storage.service import ObjectStorage, get_storage
from . import schemas, service

logger = get_logger(__name__)

router = APIRouter(tags=["images"])


@router.post("/save-image", response_model=schemas.SaveImageResponse)
@limiter.limit(IMAGE_LIMIT)
async def save_image(
    request: Request,
    payload: schemas.SaveImageRequest,
    storage: ObjectStorage = Depends(get_storage)
):
    """Store a base64 image under {userId}/{chatId}/. Every call creates a new object."""
    data = service.decode_base64_image(payload.imageBase64)
    url, path = await service.save_image_bytes(
        storage,
        data,
        user_id=payload.userId,
        chat_id=payload.chatId,
        file_name=payload.fileName,
        image_type=payload.imageType,
    )
    logger.info(
        "Image saved",
        extra={"user_id": payload.userId, "extra_data": {"path": path, "size_bytes": len(data)}}
    )
    return schemas.SaveImageResponse(url=url, path=path)


@router.post("/edit-image", response_model=schemas.EditImageResponse)
@limiter.limit(IMAGE_LIMIT)
async def edit_image(
    request: Request,
    payload: schemas.EditImageRequest,
    provider: BaseAIProvider = Depends(get_openai_provider),
    db: AsyncSession = Depends(get_async_db)
):
    image_url, message = await service.edit_image(
        db,
        provider,
        image_data=payload.imageData,
        prompt=payload.prompt,
        file_name=payload.fileName,
        chat_id=payload.chatId,
        user_id=payload.userId,
    )
    return schemas.EditImageResponse(imageUrl=image_url, message=message)
