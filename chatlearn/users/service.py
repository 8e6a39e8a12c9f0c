from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.dependencies import delete_clerk_user
from ..chats.models import Chat, Message
from ..favorites.models import FavoriteTool
from ..jobs.models import BackgroundJob
from ..logging_config import get_logger, log_business_event
from ..projects.models import Project
from ..storage.service import ObjectStorage
from ..subscriptions.models import UserSubscription
from ..usage.models import TokenUsage
from . import models, schemas

logger = get_logger(__name__)


async def get_user_by_id_async(db: AsyncSession, user_id: str) -> Optional[models.User]:
    return await db.get(models.User, user_id)


async def store_user_on_login_async(db: AsyncSession, user_id: str, user: schemas.UserStore) -> models.User:
    """Create the profile on first login; later logins refresh email and name"""
    db_user = await get_user_by_id_async(db, user_id)

    if db_user:
        if user.email:
            db_user.email = user.email
        if user.full_name:
            db_user.full_name = user.full_name
    else:
        db_user = models.User(user_id=user_id, email=user.email, full_name=user.full_name)
        db.add(db_user)
        log_business_event("user_signed_up", user_id=user_id)

    await db.commit()
    await db.refresh(db_user)
    return db_user


async def delete_account(db: AsyncSession, storage: ObjectStorage, user_id: str):
    """
    Remove everything the user owns, then the Clerk identity.

    Stored images go first; a storage failure is logged and deletion goes on.
    The Clerk call is last so a database failure leaves the user able to
    sign in and retry.
    """
    try:
        removed = await storage.delete_prefix_async(f"{user_id}/")
        logger.info(f"Deleted {removed} stored images", extra={"user_id": user_id})
    except Exception as e:
        logger.error(f"Failed to delete stored images: {e}", extra={"user_id": user_id}, exc_info=True)

    chat_ids = select(Chat.id).where(Chat.user_id == user_id)
    await db.execute(delete(Message).where(Message.chat_id.in_(chat_ids)))
    await db.execute(delete(Chat).where(Chat.user_id == user_id))
    await db.execute(delete(Project).where(Project.user_id == user_id))
    await db.execute(delete(FavoriteTool).where(FavoriteTool.user_id == user_id))
    await db.execute(delete(UserSubscription).where(UserSubscription.user_id == user_id))
    await db.execute(delete(TokenUsage).where(TokenUsage.user_id == user_id))
    await db.execute(delete(BackgroundJob).where(BackgroundJob.user_id == user_id))
    await db.execute(delete(models.User).where(models.User.user_id == user_id))
    await db.commit()

    await delete_clerk_user(user_id)
    log_business_event("account_deleted", user_id=user_id)
