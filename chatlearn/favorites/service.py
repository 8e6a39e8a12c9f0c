from typing import List

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import FavoriteTool


async def list_favorites(db: AsyncSession, user_id: str) -> List[str]:
    result = await db.execute(
        select(FavoriteTool.tool_name)
        .where(FavoriteTool.user_id == user_id)
        .order_by(FavoriteTool.created_at.asc())
    )
    return list(result.scalars().all())


async def add_favorite(db: AsyncSession, user_id: str, tool_name: str):
    """Delete-then-insert keeps at most one row per (user, tool)"""
    await db.execute(
        delete(FavoriteTool).where(FavoriteTool.user_id == user_id, FavoriteTool.tool_name == tool_name)
    )
    db.add(FavoriteTool(user_id=user_id, tool_name=tool_name))
    await db.commit()


async def remove_favorite(db: AsyncSession, user_id: str, tool_name: str):
    await db.execute(
        delete(FavoriteTool).where(FavoriteTool.user_id == user_id, FavoriteTool.tool_name == tool_name)
    )
    await db.commit()
