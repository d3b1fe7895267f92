from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from hbg_authentication.models import User
from hbg_authorization import auth_required
from hbg_core.config import HbgSettings, get_settings
from hbg_core.schemas.parameter import LoadOptions
from hbg_core.schemas.response import LoadResult
from hbg_db import get_db, load_page
from sqlalchemy.ext.asyncio import AsyncSession

from .models import PermissionType
from .schemas import ProjectCreate, ProjectDetailDto, ProjectDto, ProjectUpdate
from .service import ProjectsService

router = APIRouter(prefix="/api/projects", tags=["projects"])

SORTABLE_FIELDS = ("id", "name", "description")


def get_projects_service(db: AsyncSession = Depends(get_db)) -> ProjectsService:
    return ProjectsService(db)


@router.get("", response_model=LoadResult[ProjectDto])
async def list_projects(
    options: Annotated[LoadOptions, Query()],
    user: User = Depends(auth_required),
    service: ProjectsService = Depends(get_projects_service),
    settings: HbgSettings = Depends(get_settings),
):
    items, total = await load_page(
        service.db,
        service.projects_for(user.subject_id),
        options,
        allowed=SORTABLE_FIELDS,
        max_take=settings.MAX_TAKE,
    )
    return LoadResult[ProjectDto](
        data=[ProjectDto.model_validate(p) for p in items], total_count=total
    )


@router.get("/{project_id}", response_model=ProjectDetailDto)
async def get_project(
    project_id: int,
    user: User = Depends(auth_required),
    service: ProjectsService = Depends(get_projects_service),
):
    await service.authorize(user.subject_id, project_id, PermissionType.READ)
    return ProjectDetailDto.model_validate(await service.get_project(project_id))


@router.post("", response_model=ProjectDto, status_code=status.HTTP_201_CREATED)
async def create_project(
    payload: ProjectCreate,
    user: User = Depends(auth_required),
    service: ProjectsService = Depends(get_projects_service),
):
    return ProjectDto.model_validate(await service.create_project(payload, user.subject_id))


@router.put("/{project_id}", response_model=ProjectDto)
async def update_project(
    project_id: int,
    payload: ProjectUpdate,
    user: User = Depends(auth_required),
    service: ProjectsService = Depends(get_projects_service),
):
    await service.authorize(user.subject_id, project_id, PermissionType.UPDATE)
    return ProjectDto.model_validate(await service.update_project(project_id, payload))


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: int,
    user: User = Depends(auth_required),
    service: ProjectsService = Depends(get_projects_service),
) -> None:
    await service.authorize(user.subject_id, project_id, PermissionType.DELETE)
    await service.remove_project(project_id)
