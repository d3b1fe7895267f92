from .hub import ProjectHub, project_group
from .models import Article, ArticleType, PermissionType, Plan, Project, ProjectPermission
from .routes import router
from .seeding import seed_projects
from .service import ProjectsService

__all__ = [
    "Article",
    "ArticleType",
    "PermissionType",
    "Plan",
    "Project",
    "ProjectHub",
    "ProjectPermission",
    "ProjectsService",
    "project_group",
    "router",
    "seed_projects",
]
