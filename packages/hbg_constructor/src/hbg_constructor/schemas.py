import json
import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import GenerationSource, JewelryType, ProjectConfiguration


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    jewelry_type: JewelryType = JewelryType.RING


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    jewelry_type: Optional[JewelryType] = None
    is_active: Optional[bool] = None


class ProjectDto(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str
    name: str
    description: Optional[str] = None
    jewelry_type: JewelryType
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ConfigurationCreate(BaseModel):
    configuration_name: str = Field(..., min_length=1, max_length=100)
    form_data: dict[str, Any] = Field(default_factory=dict)


class ConfigurationUpdate(BaseModel):
    configuration_name: Optional[str] = Field(None, min_length=1, max_length=100)
    form_data: Optional[dict[str, Any]] = None


class ConfigurationDto(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    configuration_name: str
    form_data: dict[str, Any]
    generated_prompt: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, configuration: ProjectConfiguration) -> "ConfigurationDto":
        return cls(
            id=configuration.id,
            project_id=configuration.project_id,
            configuration_name=configuration.configuration_name,
            form_data=json.loads(configuration.form_data_json or "{}"),
            generated_prompt=configuration.generated_prompt,
            created_at=configuration.created_at,
            updated_at=configuration.updated_at,
        )


class ImageDto(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    configuration_id: uuid.UUID
    file_service_url: str
    file_name: str
    generation_prompt: str
    generation_source: GenerationSource
    aspect_ratio: str
    generated_at: Optional[datetime] = None
    thumbnail_url: Optional[str] = None


class GenerateImageRequest(BaseModel):
    aspect_ratio: str = Field("1:1", pattern=r"^\d+:\d+$")
