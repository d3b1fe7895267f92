import uuid

from fastapi import APIRouter, Depends, Request, status
from hbg_authentication.models import User
from hbg_authorization import IsOwner, auth_required, check_object_permissions
from hbg_db import get_db
from sqlalchemy.ext.asyncio import AsyncSession

from .models import GenerationSource
from .schemas import (
    ConfigurationCreate,
    ConfigurationDto,
    ConfigurationUpdate,
    GenerateImageRequest,
    ImageDto,
    ProjectCreate,
    ProjectDto,
    ProjectUpdate,
)
from .service import ConstructorService

router = APIRouter(prefix="/api/constructor", tags=["constructor"])


def get_constructor_service(
    request: Request, db: AsyncSession = Depends(get_db)
) -> ConstructorService:
    return ConstructorService(db, getattr(request.app.state, "image_generator", None))


# --- Projects ---


@router.get("/projects", response_model=list[ProjectDto])
async def list_projects(
    user: User = Depends(auth_required),
    service: ConstructorService = Depends(get_constructor_service),
):
    return [ProjectDto.model_validate(p) for p in await service.get_user_projects(user.subject_id)]


@router.get("/projects/{project_id}", response_model=ProjectDto)
async def get_project(
    project_id: uuid.UUID,
    user: User = Depends(auth_required),
    service: ConstructorService = Depends(get_constructor_service),
):
    return ProjectDto.model_validate(await service.get_project(project_id, user.subject_id))


@router.post("/projects", response_model=ProjectDto, status_code=status.HTTP_201_CREATED)
async def create_project(
    payload: ProjectCreate,
    user: User = Depends(auth_required),
    service: ConstructorService = Depends(get_constructor_service),
):
    return ProjectDto.model_validate(await service.create_project(payload, user.subject_id))


@router.put("/projects/{project_id}", response_model=ProjectDto)
async def update_project(
    project_id: uuid.UUID,
    payload: ProjectUpdate,
    user: User = Depends(auth_required),
    service: ConstructorService = Depends(get_constructor_service),
):
    project = await service.update_project(project_id, payload, user.subject_id)
    return ProjectDto.model_validate(project)


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: uuid.UUID,
    user: User = Depends(auth_required),
    service: ConstructorService = Depends(get_constructor_service),
) -> None:
    await service.delete_project(project_id, user.subject_id)


@router.get("/projects/{project_id}/images", response_model=list[ImageDto])
async def list_project_images(
    project_id: uuid.UUID,
    user: User = Depends(auth_required),
    service: ConstructorService = Depends(get_constructor_service),
):
    images = await service.get_project_images(project_id, user.subject_id)
    return [ImageDto.model_validate(i) for i in images]


# --- Configurations ---


@router.get(
    "/projects/{project_id}/configurations", response_model=list[ConfigurationDto]
)
async def list_configurations(
    project_id: uuid.UUID,
    user: User = Depends(auth_required),
    service: ConstructorService = Depends(get_constructor_service),
):
    configurations = await service.get_configurations(project_id, user.subject_id)
    return [ConfigurationDto.from_model(c) for c in configurations]


@router.post(
    "/projects/{project_id}/configurations",
    response_model=ConfigurationDto,
    status_code=status.HTTP_201_CREATED,
)
async def create_configuration(
    project_id: uuid.UUID,
    payload: ConfigurationCreate,
    user: User = Depends(auth_required),
    service: ConstructorService = Depends(get_constructor_service),
):
    configuration = await service.create_configuration(project_id, payload, user.subject_id)
    return ConfigurationDto.from_model(configuration)


@router.put(
    "/projects/{project_id}/configurations/{configuration_id}",
    response_model=ConfigurationDto,
)
async def update_configuration(
    project_id: uuid.UUID,
    configuration_id: uuid.UUID,
    payload: ConfigurationUpdate,
    user: User = Depends(auth_required),
    service: ConstructorService = Depends(get_constructor_service),
):
    configuration = await service.update_configuration(
        project_id, configuration_id, payload, user.subject_id
    )
    return ConfigurationDto.from_model(configuration)


@router.delete(
    "/projects/{project_id}/configurations/{configuration_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_configuration(
    project_id: uuid.UUID,
    configuration_id: uuid.UUID,
    user: User = Depends(auth_required),
    service: ConstructorService = Depends(get_constructor_service),
) -> None:
    await service.delete_configuration(project_id, configuration_id, user.subject_id)


@router.post(
    "/projects/{project_id}/configurations/{configuration_id}/generate",
    response_model=ImageDto,
    status_code=status.HTTP_201_CREATED,
)
async def generate_image(
    project_id: uuid.UUID,
    configuration_id: uuid.UUID,
    payload: GenerateImageRequest,
    user: User = Depends(auth_required),
    service: ConstructorService = Depends(get_constructor_service),
):
    configuration = await service.get_project_configuration(
        project_id, configuration_id, user.subject_id
    )
    image = await service.generate_and_save_image(
        configuration.id, payload.aspect_ratio, GenerationSource.FORM
    )
    return ImageDto.model_validate(image)


# --- Images ---


@router.get("/images/{image_id}", response_model=ImageDto)
async def get_image(
    image_id: uuid.UUID,
    request: Request,
    user: User = Depends(auth_required),
    service: ConstructorService = Depends(get_constructor_service),
):
    image = await service.get_image(image_id)
    await check_object_permissions(request, image.configuration.project, user, [IsOwner()])
    return ImageDto.model_validate(image)


@router.delete("/images/{image_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_image(
    image_id: uuid.UUID,
    request: Request,
    user: User = Depends(auth_required),
    service: ConstructorService = Depends(get_constructor_service),
) -> None:
    image = await service.get_image(image_id)
    await check_object_permissions(request, image.configuration.project, user, [IsOwner()])
    await service.delete_image(image)
