from typing import Any

from hbg_core.exceptions import ValidationFailedException
from hbg_hub import CrudAction, CrudHub, EntityHandler, HubContext
from hbg_hub.manager import ConnectionManager
from pydantic import TypeAdapter
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import PermissionType
from .schemas import (
    ArticleCreate,
    ArticleDto,
    ArticleUpdate,
    PlanCreate,
    PlanDto,
    PlanUpdate,
    ProjectCreate,
    ProjectDto,
    ProjectUpdate,
)
from .service import ProjectsService

_int_adapter = TypeAdapter(int)


def _as_int(value: Any) -> int:
    return _int_adapter.validate_python(value)


def project_group(project_id: int) -> str:
    return f"project:{project_id}"


class ProjectEntity(EntityHandler[ProjectDto]):
    """Projects of the calling user; pushes go to the user's other connections."""

    entity = "Project"

    async def load(self, ctx: HubContext, subject_id: Any) -> list[ProjectDto]:
        projects = await ProjectsService(ctx.db).get_projects(ctx.user_id)
        return [ProjectDto.model_validate(p) for p in projects]

    async def insert(self, ctx: HubContext, values: dict[str, Any], subject_id: Any) -> ProjectDto:
        dto = ProjectCreate.model_validate(values)
        project = await ProjectsService(ctx.db).create_project(dto, ctx.user_id)
        return ProjectDto.model_validate(project)

    async def update(
        self, ctx: HubContext, key: Any, values: dict[str, Any], subject_id: Any
    ) -> ProjectDto:
        project_id = _as_int(key)
        service = ProjectsService(ctx.db)
        await service.authorize(ctx.user_id, project_id, PermissionType.UPDATE)
        project = await service.update_project(project_id, ProjectUpdate.model_validate(values))
        return ProjectDto.model_validate(project)

    async def remove(self, ctx: HubContext, key: Any, subject_id: Any) -> None:
        project_id = _as_int(key)
        service = ProjectsService(ctx.db)
        await service.authorize(ctx.user_id, project_id, PermissionType.DELETE)
        await service.remove_project(project_id)


class ProjectChildEntity(EntityHandler):
    """Shared authorization and grouping for entities scoped by a project id."""

    def group_name(self, ctx: HubContext, subject_id: Any) -> str:
        return project_group(_as_int(subject_id))

    async def authorize(self, ctx: HubContext, subject_id: Any, action: CrudAction) -> None:
        if subject_id is None:
            raise ValidationFailedException(f"{self.entity} calls require a project id")
        permission = PermissionType.READ if action == CrudAction.LOAD else PermissionType.UPDATE
        await ProjectsService(ctx.db).authorize(ctx.user_id, _as_int(subject_id), permission)


class PlanEntity(ProjectChildEntity):
    entity = "Plan"

    async def load(self, ctx: HubContext, subject_id: Any) -> list[PlanDto]:
        plans = await ProjectsService(ctx.db).get_plans(_as_int(subject_id))
        return [PlanDto.model_validate(p) for p in plans]

    async def insert(self, ctx: HubContext, values: dict[str, Any], subject_id: Any) -> PlanDto:
        plan = await ProjectsService(ctx.db).add_plan(
            _as_int(subject_id), PlanCreate.model_validate(values)
        )
        return PlanDto.model_validate(plan)

    async def update(
        self, ctx: HubContext, key: Any, values: dict[str, Any], subject_id: Any
    ) -> PlanDto:
        plan = await ProjectsService(ctx.db).update_plan(
            _as_int(subject_id), _as_int(key), PlanUpdate.model_validate(values)
        )
        return PlanDto.model_validate(plan)

    async def remove(self, ctx: HubContext, key: Any, subject_id: Any) -> None:
        await ProjectsService(ctx.db).remove_plan(_as_int(subject_id), _as_int(key))


class ArticleEntity(ProjectChildEntity):
    entity = "Article"

    async def load(self, ctx: HubContext, subject_id: Any) -> list[ArticleDto]:
        articles = await ProjectsService(ctx.db).get_articles(_as_int(subject_id))
        return [ArticleDto.model_validate(a) for a in articles]

    async def insert(self, ctx: HubContext, values: dict[str, Any], subject_id: Any) -> ArticleDto:
        article = await ProjectsService(ctx.db).add_article(
            _as_int(subject_id), ArticleCreate.model_validate(values)
        )
        return ArticleDto.model_validate(article)

    async def update(
        self, ctx: HubContext, key: Any, values: dict[str, Any], subject_id: Any
    ) -> ArticleDto:
        article = await ProjectsService(ctx.db).update_article(
            _as_int(subject_id), _as_int(key), ArticleUpdate.model_validate(values)
        )
        return ArticleDto.model_validate(article)

    async def remove(self, ctx: HubContext, key: Any, subject_id: Any) -> None:
        await ProjectsService(ctx.db).remove_article(_as_int(subject_id), _as_int(key))


class ProjectHub(CrudHub):
    """`/hub/proj`: projects, plans and articles with live updates."""

    name = "proj"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        manager: ConnectionManager | None = None,
    ) -> None:
        super().__init__(
            session_factory,
            manager,
            handlers=[ProjectEntity(), PlanEntity(), ArticleEntity()],
        )
