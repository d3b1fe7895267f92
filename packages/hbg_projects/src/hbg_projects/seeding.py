import logging

from sqlalchemy.ext.asyncio import AsyncSession

from .models import Article, Plan, Project

logger = logging.getLogger(__name__)

ORDINALS = ("First", "Second", "Third")


async def seed_projects(db: AsyncSession) -> bool:
    """Insert three demo projects with plans and articles into an empty table."""
    if await Project.objects.exists(db):
        return False

    for number in range(1, 4):
        db.add(
            Project(
                name=f"Seeding project {number}",
                articles=[
                    Article(name=f"{ordinal} Article of Project {number}")
                    for ordinal in ORDINALS
                ],
                plans=[
                    Plan(name=f"{ordinal} Plan of Project {number}")
                    for ordinal in ORDINALS
                ],
            )
        )
    await db.commit()
    logger.info("Seeded demo projects")
    return True
