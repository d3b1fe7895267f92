from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import ArticleType


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)


class ProjectDto(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None


class PlanCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    has_plan_picture: bool = False
    pic_center_x: float = 0
    pic_center_y: float = 0
    pic_width: float = 0
    pic_height: float = 0
    pic_scale: float = 0
    pic_rotation: float = 0


class PlanUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    has_plan_picture: Optional[bool] = None
    pic_center_x: Optional[float] = None
    pic_center_y: Optional[float] = None
    pic_width: Optional[float] = None
    pic_height: Optional[float] = None
    pic_scale: Optional[float] = None
    pic_rotation: Optional[float] = None


class PlanDto(PlanCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int


class ArticleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    plan_id: Optional[int] = None
    type: ArticleType = ArticleType.UNDEFINED


class ArticleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    plan_id: Optional[int] = None
    type: Optional[ArticleType] = None


class ArticleDto(ArticleCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int


class ProjectDetailDto(ProjectDto):
    """Project with its plans and articles, as returned by `GET /api/projects/{id}`."""

    plans: list[PlanDto] = Field(default_factory=list)
    articles: list[ArticleDto] = Field(default_factory=list)
