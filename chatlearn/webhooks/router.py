import hmac
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_async_db
from ..error_handlers import UnauthorizedException
from ..rate_limit import WEBHOOK_LIMIT, limiter
from ..storage.service import ObjectStorage, get_storage
from . import service

router = APIRouter(tags=["webhooks"])


class WebhookRequest(BaseModel):
    chat_id: UUID
    response_data: Any = None
    user_id: Optional[str] = None


def verify_webhook_secret(x_webhook_secret: Optional[str] = Header(None)):
    if not settings.WEBHOOK_SECRET:
        return
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, settings.WEBHOOK_SECRET):
        raise UnauthorizedException("Invalid webhook secret")


@router.post("/webhook-handler", dependencies=[Depends(verify_webhook_secret)])
@limiter.limit(WEBHOOK_LIMIT)
async def webhook_handler(
    request: Request,
    payload: WebhookRequest,
    x_webhook_delivery_id: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_async_db),
    storage: ObjectStorage = Depends(get_storage)
):
    message, duplicate = await service.ingest_response(
        db,
        storage,
        chat_id=payload.chat_id,
        response_data=payload.response_data,
        user_id=payload.user_id,
        delivery_id=x_webhook_delivery_id,
    )
    response = {"success": True, "message_id": str(message.id), "content": message.content}
    if duplicate:
        response["duplicate"] = True
    return response
