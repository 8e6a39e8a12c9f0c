from typing import Annotated, List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.dependencies import get_current_user_id
from ..database import get_async_db
from . import schemas, service

router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("", response_model=schemas.ProjectResponse, status_code=201)
async def create_project(
    payload: schemas.ProjectCreate,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: AsyncSession = Depends(get_async_db)
):
    return await service.create_project(db, user_id, payload)


@router.get("", response_model=List[schemas.ProjectResponse])
async def list_projects(
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: AsyncSession = Depends(get_async_db)
):
    return await service.list_projects(db, user_id)


@router.patch("/{project_id}", response_model=schemas.ProjectResponse)
async def update_project(
    project_id: UUID,
    payload: schemas.ProjectUpdate,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: AsyncSession = Depends(get_async_db)
):
    project = await service.get_owned_project(db, project_id, user_id)
    return await service.update_project(db, project, payload)


@router.delete("/{project_id}")
async def delete_project(
    project_id: UUID,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: AsyncSession = Depends(get_async_db)
):
    await service.get_owned_project(db, project_id, user_id)
    await service.delete_project(db, project_id)
    return {"success": True}
