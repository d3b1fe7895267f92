import logging
from typing import Any

from hbg_core.exceptions import AccessDeniedException, NotFoundException
from hbg_db import apply_partial, atomic
from hbg_db.queryset import QuerySet
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from .models import CREATOR_PERMISSIONS, Article, PermissionType, Plan, Project, ProjectPermission
from .schemas import ArticleCreate, PlanCreate, ProjectCreate

logger = logging.getLogger(__name__)


class ProjectsService:
    """
    Projects, plans and articles of one request or hub call.

    Access is granted by `ProjectPermission` rows; every method that takes a
    `project_id` expects the caller to have run `authorize` first.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # --- Permissions ---

    async def has_permission(
        self, user_id: str | None, project_id: int, permission: PermissionType
    ) -> bool:
        if not user_id:
            return False
        return await ProjectPermission.objects.exists(
            self.db,
            ProjectPermission.project_id == project_id,
            ProjectPermission.user_id == user_id,
            ProjectPermission.type == permission,
        )

    async def authorize(
        self, user_id: str | None, project_id: int, permission: PermissionType
    ) -> None:
        if not await self.has_permission(user_id, project_id, permission):
            logger.info(
                "User %s denied %s on project %s", user_id, permission.value, project_id
            )
            raise AccessDeniedException("Unauthorized access to the project")

    # --- Projects ---

    def projects_for(self, user_id: str) -> QuerySet[Project]:
        """Projects where the user holds any permission row."""
        return Project.objects.filter(
            Project.permissions.any(ProjectPermission.user_id == user_id)
        )

    async def get_projects(self, user_id: str) -> list[Project]:
        return list(await self.projects_for(user_id).order_by("id").fetch(self.db))

    async def get_project(self, project_id: int) -> Project:
        """Project with its plans and articles."""
        project = (
            await Project.objects.filter(id=project_id)
            .prefetch_related("plans", "articles")
            .first(self.db)
        )
        if project is None:
            raise NotFoundException(f"Project {project_id} not found")
        return project

    async def create_project(self, dto: ProjectCreate, user_id: str) -> Project:
        project = Project(**dto.model_dump())
        project.permissions = [
            ProjectPermission(user_id=user_id, type=permission)
            for permission in CREATOR_PERMISSIONS
        ]
        async with atomic(self.db):
            self.db.add(project)
        await self.db.refresh(project)
        logger.info("User %s created project %s", user_id, project.id)
        return project

    async def update_project(
        self, project_id: int, values: BaseModel | dict[str, Any]
    ) -> Project:
        project = await self.db.get(Project, project_id)
        if project is None:
            raise NotFoundException(f"Project {project_id} not found")
        apply_partial(project, values)
        await self.db.commit()
        await self.db.refresh(project)
        return project

    async def remove_project(self, project_id: int) -> None:
        deleted = await Project.objects.delete_by_pk(self.db, project_id)
        if not deleted:
            raise NotFoundException(f"Project {project_id} not found")
        logger.info("Project %s removed", project_id)

    # --- Plans ---

    async def get_plans(self, project_id: int) -> list[Plan]:
        return list(
            await Plan.objects.filter(project_id=project_id).order_by("id").fetch(self.db)
        )

    async def get_plan(self, project_id: int, key: int) -> Plan:
        plan = await Plan.objects.filter(id=key, project_id=project_id).first(self.db)
        if plan is None:
            raise NotFoundException(
                f"Plan with key {key} not found in the project {project_id}"
            )
        return plan

    async def add_plan(self, project_id: int, dto: PlanCreate) -> Plan:
        await self._require_project(project_id)
        plan = Plan(project_id=project_id, **dto.model_dump())
        self.db.add(plan)
        await self.db.commit()
        await self.db.refresh(plan)
        return plan

    async def update_plan(
        self, project_id: int, key: int, values: BaseModel | dict[str, Any]
    ) -> Plan:
        plan = await self.get_plan(project_id, key)
        apply_partial(plan, values, exclude=("id", "project_id"))
        await self.db.commit()
        await self.db.refresh(plan)
        return plan

    async def remove_plan(self, project_id: int, key: int) -> None:
        plan = await self.get_plan(project_id, key)
        # articles on the plan keep existing with plan_id NULL
        await Plan.objects.delete_by_pk(self.db, plan.id)

    # --- Articles ---

    async def get_articles(self, project_id: int) -> list[Article]:
        return list(
            await Article.objects.filter(project_id=project_id).order_by("id").fetch(self.db)
        )

    async def get_article(self, project_id: int, key: int) -> Article:
        article = await Article.objects.filter(id=key, project_id=project_id).first(self.db)
        if article is None:
            raise NotFoundException(
                f"Article with key {key} not found in the project {project_id}"
            )
        return article

    async def add_article(self, project_id: int, dto: ArticleCreate) -> Article:
        await self._require_project(project_id)
        if dto.plan_id is not None:
            await self.get_plan(project_id, dto.plan_id)
        article = Article(project_id=project_id, **dto.model_dump())
        self.db.add(article)
        await self.db.commit()
        await self.db.refresh(article)
        return article

    async def update_article(
        self, project_id: int, key: int, values: BaseModel | dict[str, Any]
    ) -> Article:
        article = await self.get_article(project_id, key)
        changes = apply_partial(article, values, exclude=("id", "project_id"))
        if changes.get("plan_id") is not None:
            await self.get_plan(project_id, changes["plan_id"])
        await self.db.commit()
        await self.db.refresh(article)
        return article

    async def remove_article(self, project_id: int, key: int) -> None:
        article = await self.get_article(project_id, key)
        await Article.objects.delete_by_pk(self.db, article.id)

    async def _require_project(self, project_id: int) -> None:
        if not await Project.objects.exists(self.db, Project.id == project_id):
            raise NotFoundException(f"Project {project_id} not found")
