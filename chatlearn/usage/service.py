from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..error_handlers import ValidationException
from ..logging_config import get_logger
from .models import TokenUsage
from .pricing import calculate_cost

logger = get_logger(__name__)


def _first(body: Dict[str, Any], *keys):
    for key in keys:
        value = body.get(key)
        if value is not None and value != "":
            return value
    return None


def _as_int(value, field: str) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationException(f"{field} must be an integer", details={"field": field})


def _as_uuid(value) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


def parse_usage_payload(raw: Any) -> Dict[str, Any]:
    """
    Normalize a usage report from an automation tool.

    Accepts one object or an array of them (the first is used) and both
    camelCase and snake_case keys.
    """
    body = raw
    if isinstance(raw, list):
        if not raw:
            raise ValidationException("Missing required fields: userId, model, totalTokens")
        body = raw[0]
    if not isinstance(body, dict):
        raise ValidationException("Usage report must be an object or an array of objects")

    user_id = _first(body, "userId", "user_id")
    model = _first(body, "model")
    total_tokens = _as_int(_first(body, "totalTokens", "total_tokens"), "totalTokens")

    if not user_id or not model or not total_tokens:
        raise ValidationException("Missing required fields: userId, model, totalTokens")

    return {
        "user_id": str(user_id),
        "model": str(model),
        "total_tokens": total_tokens,
        "prompt_tokens": _as_int(_first(body, "promptTokens", "prompt_tokens"), "promptTokens"),
        "completion_tokens": _as_int(_first(body, "completionTokens", "completion_tokens"), "completionTokens"),
        "chat_id": _as_uuid(_first(body, "chatId", "chat_id")),
        "message_id": _as_uuid(_first(body, "messageId", "message_id")),
    }


async def record_usage(
    db: AsyncSession,
    user_id: str,
    model: str,
    total_tokens: int,
    prompt_tokens: int = 0,
    completion_tokens: int = 0,
    chat_id: Optional[UUID] = None,
    message_id: Optional[UUID] = None,
) -> TokenUsage:
    """Append one usage row. Never deduplicates."""
    usage = TokenUsage(
        user_id=user_id,
        chat_id=chat_id,
        message_id=message_id,
        model=model,
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=total_tokens,
        cost_usd=calculate_cost(model, prompt_tokens, completion_tokens, total_tokens),
    )
    db.add(usage)
    await db.commit()
    await db.refresh(usage)

    logger.debug(
        "Token usage recorded",
        extra={"user_id": user_id, "extra_data": {"model": model, "total_tokens": total_tokens}}
    )
    return usage
