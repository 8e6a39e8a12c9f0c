# chatlearn/subscriptions/service.py
"""
Stripe subscription lookup and the cached user_subscriptions row.

Stripe is the source of truth. Every check rewrites the cached row: upsert
when an active subscription exists, delete when none does.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

import stripe
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..chats import service as chat_service
from ..config import settings
from ..error_handlers import ConfigurationException, ErrorCode, ExternalServiceException
from ..logging_config import get_logger, log_business_event
from ..monitoring import track_external_api_call
from .models import PlanTier, UserSubscription

logger = get_logger(__name__)


@dataclass
class StripeSubscriptionInfo:
    customer_id: Optional[str]
    subscription_id: Optional[str] = None
    product_id: Optional[str] = None
    current_period_end: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.subscription_id is not None


def plan_for_product(product_id: Optional[str]) -> Tuple[str, str]:
    """(plan_name, tier). Unmapped paid products count as pro."""
    if product_id == settings.STRIPE_PRO_PRODUCT_ID:
        return "Pro", PlanTier.PRO
    if product_id == settings.STRIPE_ULTRA_PRO_PRODUCT_ID:
        return "Ultra Pro", PlanTier.ULTRA_PRO
    if product_id:
        return "Unknown", PlanTier.PRO
    return "Free", PlanTier.FREE


class StripeSubscriptionGateway:
    """Blocking Stripe SDK calls; use lookup_async from request handlers"""

    def __init__(self, api_key: str):
        self.api_key = api_key

    def lookup(self, email: str) -> StripeSubscriptionInfo:
        try:
            with track_external_api_call("Stripe", "customers.list"):
                customers = stripe.Customer.list(email=email, limit=1, api_key=self.api_key)
            if not customers.data:
                return StripeSubscriptionInfo(customer_id=None)

            customer_id = customers.data[0].id
            with track_external_api_call("Stripe", "subscriptions.list", customer_id=customer_id):
                subscriptions = stripe.Subscription.list(
                    customer=customer_id, status="active", limit=1, api_key=self.api_key
                )
        except stripe.error.StripeError as e:
            raise ExternalServiceException(
                service_name="Stripe",
                message=str(e),
                error_code=ErrorCode.PAYMENT_GATEWAY_ERROR,
                status_code=500,
            )

        if not subscriptions.data:
            return StripeSubscriptionInfo(customer_id=customer_id)

        subscription = subscriptions.data[0]
        item = subscription["items"]["data"][0]
        # Newer API versions moved the period end onto the subscription item
        period_end = subscription.get("current_period_end") or item.get("current_period_end")

        return StripeSubscriptionInfo(
            customer_id=customer_id,
            subscription_id=subscription.id,
            product_id=item["price"]["product"],
            current_period_end=datetime.fromtimestamp(period_end, tz=timezone.utc) if period_end else None,
        )

    async def lookup_async(self, email: str) -> StripeSubscriptionInfo:
        return await run_in_threadpool(self.lookup, email)


def get_subscription_gateway() -> StripeSubscriptionGateway:
    if not settings.STRIPE_SECRET_KEY:
        raise ConfigurationException("STRIPE_SECRET_KEY")
    return StripeSubscriptionGateway(settings.STRIPE_SECRET_KEY)


# ============================================================================
# CACHED ROW
# ============================================================================

async def get_subscription(db: AsyncSession, user_id: str) -> Optional[UserSubscription]:
    result = await db.execute(select(UserSubscription).where(UserSubscription.user_id == user_id))
    return result.scalar_one_or_none()


async def has_active_subscription(db: AsyncSession, user_id: str) -> bool:
    row = await get_subscription(db, user_id)
    return bool(row and row.plan != PlanTier.FREE and row.status == "active")


async def _upsert_subscription(db: AsyncSession, user_id: str, info: StripeSubscriptionInfo):
    plan_name, tier = plan_for_product(info.product_id)
    row = await get_subscription(db, user_id)
    if row is None:
        row = UserSubscription(user_id=user_id)
        db.add(row)

    row.stripe_customer_id = info.customer_id
    row.stripe_subscription_id = info.subscription_id
    row.product_id = info.product_id
    row.plan_name = plan_name
    row.plan = tier
    row.status = "active"
    row.current_period_end = info.current_period_end
    await db.commit()


async def check_subscription(
    db: AsyncSession,
    gateway: StripeSubscriptionGateway,
    user_id: str,
    email: str,
) -> dict:
    info = await gateway.lookup_async(email)

    # The Stripe answer is authoritative; the cached row is best effort
    try:
        if info.is_active:
            await _upsert_subscription(db, user_id, info)
        else:
            await db.execute(delete(UserSubscription).where(UserSubscription.user_id == user_id))
            await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(
            f"Failed to cache subscription: {e}",
            extra={"user_id": user_id, "extra_data": {"product_id": info.product_id, "subscribed": info.is_active}},
            exc_info=True
        )

    logger.info(
        "Subscription checked",
        extra={"user_id": user_id, "extra_data": {"subscribed": info.is_active, "product_id": info.product_id}}
    )
    log_business_event("subscription_checked", user_id=user_id, subscribed=info.is_active)

    return {
        "subscribed": info.is_active,
        "product_id": info.product_id,
        "subscription_end": info.current_period_end.isoformat() if info.current_period_end else None,
    }


async def get_message_limit(db: AsyncSession, user_id: str) -> dict:
    """Free users get FREE_MESSAGE_LIMIT user messages; subscribers are unlimited"""
    unlimited = await has_active_subscription(db, user_id)
    count = await chat_service.count_user_messages(db, user_id)
    return {
        "message_count": count,
        "limit": None if unlimited else settings.FREE_MESSAGE_LIMIT,
        "has_unlimited_access": unlimited,
        "is_limit_reached": (not unlimited) and count >= settings.FREE_MESSAGE_LIMIT,
    }
