from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.dependencies import get_current_user_id
from ..database import get_async_db
from . import service

router = APIRouter(prefix="/favorite-tools", tags=["favorites"])


class FavoriteToolRequest(BaseModel):
    tool_name: str = Field(..., min_length=1)


@router.get("")
async def list_favorites(
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: AsyncSession = Depends(get_async_db)
):
    return {"favorite_tools": await service.list_favorites(db, user_id)}


@router.post("")
async def add_favorite(
    payload: FavoriteToolRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: AsyncSession = Depends(get_async_db)
):
    await service.add_favorite(db, user_id, payload.tool_name)
    return {"favorite_tools": await service.list_favorites(db, user_id)}


@router.delete("/{tool_name}")
async def remove_favorite(
    tool_name: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: AsyncSession = Depends(get_async_db)
):
    await service.remove_favorite(db, user_id, tool_name)
    return {"favorite_tools": await service.list_favorites(db, user_id)}
