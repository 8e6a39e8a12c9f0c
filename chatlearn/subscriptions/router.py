from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.dependencies import get_current_user_id
from ..database import get_async_db
from ..error_handlers import ValidationException
from ..users import service as user_service
from . import service

router = APIRouter(tags=["subscriptions"])


@router.api_route("/check-subscription", methods=["GET", "POST"])
async def check_subscription(
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: AsyncSession = Depends(get_async_db),
    gateway: service.StripeSubscriptionGateway = Depends(service.get_subscription_gateway)
):
    """Re-read the caller's subscription from Stripe and refresh the cached row"""
    user = await user_service.get_user_by_id_async(db, user_id)
    if not user or not user.email:
        raise ValidationException("User not authenticated or email not available")
    return await service.check_subscription(db, gateway, user_id, user.email)


@router.get("/message-limit")
async def message_limit(
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: AsyncSession = Depends(get_async_db)
):
    return await service.get_message_limit(db, user_id)
