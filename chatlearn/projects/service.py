from typing import List
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..chats.models import Chat
from ..error_handlers import ForbiddenException, NotFoundException
from ..logging_config import get_logger
from .models import Project
from .schemas import ProjectCreate, ProjectUpdate

logger = get_logger(__name__)


async def create_project(db: AsyncSession, user_id: str, data: ProjectCreate) -> Project:
    project = Project(user_id=user_id, **data.model_dump())
    db.add(project)
    await db.commit()
    await db.refresh(project)
    logger.info(f"Project created: {project.id}", extra={"user_id": user_id})
    return project


async def list_projects(db: AsyncSession, user_id: str) -> List[Project]:
    result = await db.execute(
        select(Project).where(Project.user_id == user_id).order_by(Project.created_at.desc())
    )
    return list(result.scalars().all())


async def get_owned_project(db: AsyncSession, project_id: UUID, user_id: str) -> Project:
    project = await db.get(Project, project_id)
    if not project:
        raise NotFoundException("Project", str(project_id))
    if project.user_id != user_id:
        raise ForbiddenException("You don't have access to this project")
    return project


async def update_project(db: AsyncSession, project: Project, data: ProjectUpdate) -> Project:
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(project, key, value)
    await db.commit()
    await db.refresh(project)
    return project


async def delete_project(db: AsyncSession, project_id: UUID):
    """Chats in the project survive with project_id cleared"""
    await db.execute(update(Chat).where(Chat.project_id == project_id).values(project_id=None))
    await db.execute(delete(Project).where(Project.id == project_id))
    await db.commit()
    logger.info(f"Project deleted: {project_id}")
