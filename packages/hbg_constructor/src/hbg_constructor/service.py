import json
import logging
import uuid
from typing import Any

from hbg_core.exceptions import AccessDeniedException, NotFoundException
from hbg_db import apply_partial
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from .generator import ImageGenerator, UnconfiguredImageGenerator
from .models import (
    ChatInteraction,
    ConstructorProject,
    GeneratedImage,
    GenerationSource,
    JewelryType,
    ProjectConfiguration,
    utcnow,
)
from .schemas import ConfigurationCreate, ProjectCreate

logger = logging.getLogger(__name__)

PROMPT_SUFFIX = (
    "high-quality product photography, studio lighting, white background, 4K, "
    "detailed craftsmanship"
)


def build_prompt(form_data: dict[str, Any], jewelry_type: JewelryType) -> str:
    """
    Turn the configuration form into an image prompt.

    Example:
        >>> build_prompt({"material": "Gold"}, JewelryType.RING)
        'A hyperrealistic 3D render of a ring, made of gold, high-quality ...'
    """
    parts = [f"A hyperrealistic 3D render of a {jewelry_type.value.lower()}"]
    if form_data.get("material"):
        parts.append(f"made of {str(form_data['material']).lower()}")
    gemstone = form_data.get("gemstone")
    if gemstone and str(gemstone) != "None":
        parts.append(f"featuring {str(gemstone).lower()} gemstone")
    if form_data.get("style"):
        parts.append(f"{str(form_data['style']).lower()} style")
    if form_data.get("finish"):
        parts.append(f"{str(form_data['finish']).lower()} finish")
    notes = form_data.get("notes")
    if notes and str(notes).strip():
        parts.append(str(notes))
    parts.append(PROMPT_SUFFIX)
    return ", ".join(parts)


class ConstructorService:
    """
    Jewelry projects of the current user, their configurations and images.

    Projects owned by someone else are indistinguishable from missing ones:
    both raise `AccessDeniedException`.
    """

    def __init__(self, db: AsyncSession, generator: ImageGenerator | None = None):
        self.db = db
        self.generator = generator or UnconfiguredImageGenerator()

    # --- Projects ---

    async def get_user_projects(self, user_id: str) -> list[ConstructorProject]:
        return list(
            await ConstructorProject.objects.filter(user_id=user_id, is_active=True)
            .order_by("-updated_at")
            .fetch(self.db)
        )

    async def get_project(self, project_id: uuid.UUID, user_id: str) -> ConstructorProject:
        project = await ConstructorProject.objects.filter(
            id=project_id, user_id=user_id
        ).first(self.db)
        if project is None:
            raise AccessDeniedException(f"Project {project_id} not found or access denied")
        return project

    async def create_project(self, dto: ProjectCreate, user_id: str) -> ConstructorProject:
        now = utcnow()
        project = ConstructorProject(
            user_id=user_id, created_at=now, updated_at=now, **dto.model_dump()
        )
        self.db.add(project)
        await self.db.commit()
        await self.db.refresh(project)
        logger.info("User %s created constructor project %s", user_id, project.id)
        return project

    async def update_project(
        self, project_id: uuid.UUID, values: BaseModel | dict[str, Any], user_id: str
    ) -> ConstructorProject:
        project = await self.get_project(project_id, user_id)
        apply_partial(project, values, exclude=("id", "user_id", "created_at"))
        project.updated_at = utcnow()
        await self.db.commit()
        await self.db.refresh(project)
        return project

    async def delete_project(self, project_id: uuid.UUID, user_id: str) -> None:
        project = await self.get_project(project_id, user_id)
        project.is_active = False
        project.updated_at = utcnow()
        await self.db.commit()
        logger.info("Constructor project %s marked as inactive", project_id)

    async def get_project_images(
        self, project_id: uuid.UUID, user_id: str
    ) -> list[GeneratedImage]:
        await self.get_project(project_id, user_id)
        return list(
            await GeneratedImage.objects.filter(
                GeneratedImage.configuration.has(ProjectConfiguration.project_id == project_id),
                is_deleted=False,
            )
            .order_by("-generated_at")
            .fetch(self.db)
        )

    # --- Configurations ---

    async def get_configurations(
        self, project_id: uuid.UUID, user_id: str
    ) -> list[ProjectConfiguration]:
        await self.get_project(project_id, user_id)
        return list(
            await ProjectConfiguration.objects.filter(project_id=project_id)
            .order_by("created_at")
            .fetch(self.db)
        )

    async def get_configuration(
        self, configuration_id: uuid.UUID, user_id: str
    ) -> ProjectConfiguration:
        configuration = (
            await ProjectConfiguration.objects.filter(
                ProjectConfiguration.project.has(ConstructorProject.user_id == user_id),
                id=configuration_id,
            )
            .select_related("project")
            .first(self.db)
        )
        if configuration is None:
            raise AccessDeniedException(
                f"Configuration {configuration_id} not found or access denied"
            )
        return configuration

    async def get_project_configuration(
        self, project_id: uuid.UUID, configuration_id: uuid.UUID, user_id: str
    ) -> ProjectConfiguration:
        configuration = await self.get_configuration(configuration_id, user_id)
        if configuration.project_id != project_id:
            raise NotFoundException(
                f"Configuration {configuration_id} not found in the project {project_id}"
            )
        return configuration

    async def create_configuration(
        self, project_id: uuid.UUID, dto: ConfigurationCreate, user_id: str
    ) -> ProjectConfiguration:
        project = await self.get_project(project_id, user_id)
        now = utcnow()
        configuration = ProjectConfiguration(
            project_id=project.id,
            configuration_name=dto.configuration_name,
            form_data_json=json.dumps(dto.form_data),
            generated_prompt=build_prompt(dto.form_data, project.jewelry_type),
            created_at=now,
            updated_at=now,
        )
        self.db.add(configuration)
        await self.db.commit()
        await self.db.refresh(configuration)
        logger.info("Configuration %s saved for project %s", configuration.id, project_id)
        return configuration

    async def update_configuration(
        self,
        project_id: uuid.UUID,
        configuration_id: uuid.UUID,
        values: BaseModel | dict[str, Any],
        user_id: str,
    ) -> ProjectConfiguration:
        configuration = await self.get_project_configuration(
            project_id, configuration_id, user_id
        )
        changes = apply_partial(
            configuration, values, exclude=("id", "project_id", "form_data")
        )
        form_data = (
            getattr(values, "form_data", None)
            if isinstance(values, BaseModel)
            else values.get("form_data")
        )
        if form_data is not None:
            configuration.form_data_json = json.dumps(form_data)
            configuration.generated_prompt = build_prompt(
                form_data, configuration.project.jewelry_type
            )
        if changes or form_data is not None:
            configuration.updated_at = utcnow()
        await self.db.commit()
        await self.db.refresh(configuration)
        return configuration

    async def delete_configuration(
        self, project_id: uuid.UUID, configuration_id: uuid.UUID, user_id: str
    ) -> None:
        configuration = await self.get_project_configuration(
            project_id, configuration_id, user_id
        )
        await ProjectConfiguration.objects.delete_by_pk(self.db, configuration.id)

    # --- Images ---

    async def get_image(self, image_id: uuid.UUID) -> GeneratedImage:
        """Image with its configuration and project, for object permission checks."""
        image = (
            await GeneratedImage.objects.filter(id=image_id, is_deleted=False)
            .prefetch_related("configuration.project")
            .first(self.db)
        )
        if image is None:
            raise NotFoundException(f"Image {image_id} not found")
        return image

    async def delete_image(self, image: GeneratedImage) -> None:
        image.is_deleted = True
        await self.db.commit()

    async def generate_and_save_image(
        self,
        configuration_id: uuid.UUID,
        aspect_ratio: str = "1:1",
        source: GenerationSource = GenerationSource.FORM,
    ) -> GeneratedImage:
        configuration = await self.db.get(ProjectConfiguration, configuration_id)
        if configuration is None:
            raise NotFoundException(f"Configuration {configuration_id} not found")

        logger.info("Generating image for configuration %s", configuration_id)
        generated = await self.generator.generate(
            configuration.generated_prompt,
            aspect_ratio,
            configuration_id=configuration.id,
            project_id=configuration.project_id,
        )
        image = GeneratedImage(
            configuration_id=configuration.id,
            file_service_url=generated.url,
            file_name=generated.file_name,
            thumbnail_url=generated.thumbnail_url,
            generation_prompt=configuration.generated_prompt,
            generation_source=source,
            aspect_ratio=aspect_ratio,
        )
        self.db.add(image)
        await self.db.commit()
        await self.db.refresh(image)
        logger.info("Image %s saved for configuration %s", image.id, configuration_id)
        return image

    # --- Chat ---

    async def record_chat(
        self,
        project_id: uuid.UUID,
        user_id: str,
        message: str,
        response: str | None = None,
    ) -> ChatInteraction:
        interaction = ChatInteraction(
            project_id=project_id,
            user_id=user_id,
            user_message=message,
            assistant_response=response,
        )
        self.db.add(interaction)
        await self.db.commit()
        await self.db.refresh(interaction)
        return interaction
