import enum
import uuid
from datetime import datetime, timezone

from hbg_db.models import Model, TimestampMixin
from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JewelryType(str, enum.Enum):
    RING = "RING"
    EARRINGS = "EARRINGS"
    PENDANT = "PENDANT"
    BRACELET = "BRACELET"
    NECKLACE = "NECKLACE"


class GenerationSource(str, enum.Enum):
    FORM = "FORM"
    CHAT = "CHAT"
    REGENERATE = "REGENERATE"


class ConstructorProject(TimestampMixin, Model):
    """A jewelry design of one user. Deleting only clears `is_active`."""

    __tablename__ = "constructor_projects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(50), index=True)
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    jewelry_type: Mapped[JewelryType] = mapped_column(
        Enum(JewelryType, name="jewelry_type"), default=JewelryType.RING
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    configurations: Mapped[list["ProjectConfiguration"]] = relationship(
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProjectConfiguration.created_at",
    )
    chat_interactions: Mapped[list["ChatInteraction"]] = relationship(
        back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )


class ProjectConfiguration(TimestampMixin, Model):
    __tablename__ = "project_configurations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("constructor_projects.id", ondelete="CASCADE"), index=True
    )
    configuration_name: Mapped[str] = mapped_column(String(100))
    form_data_json: Mapped[str] = mapped_column(Text, default="{}")
    generated_prompt: Mapped[str] = mapped_column(String(2000), default="")

    project: Mapped[ConstructorProject] = relationship(back_populates="configurations")
    images: Mapped[list["GeneratedImage"]] = relationship(
        back_populates="configuration", cascade="all, delete-orphan", passive_deletes=True
    )


class GeneratedImage(Model):
    __tablename__ = "generated_images"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    configuration_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("project_configurations.id", ondelete="CASCADE"), index=True
    )
    file_service_url: Mapped[str] = mapped_column(String(500))
    file_name: Mapped[str] = mapped_column(String(255))
    generation_prompt: Mapped[str] = mapped_column(Text, default="")
    generation_source: Mapped[GenerationSource] = mapped_column(
        Enum(GenerationSource, name="generation_source"), default=GenerationSource.FORM
    )
    aspect_ratio: Mapped[str] = mapped_column(String(10), default="1:1")
    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    thumbnail_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)

    configuration: Mapped[ProjectConfiguration] = relationship(back_populates="images")


class ChatInteraction(Model):
    __tablename__ = "chat_interactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("constructor_projects.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[str] = mapped_column(String(50))
    user_message: Mapped[str] = mapped_column(String(2000))
    assistant_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_config_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    resulting_image_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("generated_images.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    project: Mapped[ConstructorProject] = relationship(back_populates="chat_interactions")
