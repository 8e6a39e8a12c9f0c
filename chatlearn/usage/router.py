from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_async_db
from ..logging_config import get_logger
from . import service

logger = get_logger(__name__)

router = APIRouter(tags=["usage"])


@router.post("/save-token-usage")
async def save_token_usage(
    payload: Any = Body(...),
    db: AsyncSession = Depends(get_async_db)
):
    """
    Record model usage reported by an external automation.

    Body: {userId, model, totalTokens, ...} or an array of them.
    """
    fields = service.parse_usage_payload(payload)
    usage = await service.record_usage(db, **fields)
    logger.info(
        f"Saved token usage: {usage.id}",
        extra={"user_id": usage.user_id, "extra_data": {"model": usage.model, "total_tokens": usage.total_tokens}}
    )
    return {"success": True, "id": str(usage.id)}
