import enum
from typing import Optional

from hbg_db.models import Model
from sqlalchemy import BigInteger, Boolean, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship


class ArticleType(str, enum.Enum):
    UNDEFINED = "UNDEFINED"
    DEVICE = "DEVICE"
    CABLE = "CABLE"
    MATERIAL = "MATERIAL"
    WORK = "WORK"


class PermissionType(str, enum.Enum):
    NONE = "NONE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    SHARE = "SHARE"
    SEE_PRICES = "SEE_PRICES"


CREATOR_PERMISSIONS = (
    PermissionType.READ,
    PermissionType.UPDATE,
    PermissionType.DELETE,
    PermissionType.SHARE,
    PermissionType.SEE_PRICES,
)

# Plan picture placement, read back as floats
PictureDecimal = Numeric(18, 6, asdecimal=False)


class Project(Model):
    __tablename__ = "projects"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)

    plans: Mapped[list["Plan"]] = relationship(
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Plan.id",
    )
    articles: Mapped[list["Article"]] = relationship(
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Article.id",
    )
    permissions: Mapped[list["ProjectPermission"]] = relationship(
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, name='{self.name}')>"


class Plan(Model):
    """One room plan of a project; articles may be placed on it."""

    __tablename__ = "plans"

    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    has_plan_picture: Mapped[bool] = mapped_column(Boolean, default=False)
    pic_center_x: Mapped[float] = mapped_column(PictureDecimal, default=0)
    pic_center_y: Mapped[float] = mapped_column(PictureDecimal, default=0)
    pic_width: Mapped[float] = mapped_column(PictureDecimal, default=0)
    pic_height: Mapped[float] = mapped_column(PictureDecimal, default=0)
    pic_scale: Mapped[float] = mapped_column(PictureDecimal, default=0)
    pic_rotation: Mapped[float] = mapped_column(PictureDecimal, default=0)

    project: Mapped[Project] = relationship(back_populates="plans")
    articles: Mapped[list["Article"]] = relationship(
        back_populates="plan", passive_deletes=True
    )


class Article(Model):
    __tablename__ = "articles"

    # INTEGER on SQLite so the rowid alias keeps autoincrementing
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, index=True
    )
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    plan_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("plans.id", ondelete="SET NULL"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[ArticleType] = mapped_column(
        Enum(ArticleType, name="article_type"), default=ArticleType.UNDEFINED
    )

    project: Mapped[Project] = relationship(back_populates="articles")
    plan: Mapped[Optional[Plan]] = relationship(back_populates="articles")


class ProjectPermission(Model):
    __tablename__ = "project_permissions"

    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[str] = mapped_column(String(50), index=True)
    type: Mapped[PermissionType] = mapped_column(
        Enum(PermissionType, name="permission_type"), default=PermissionType.NONE
    )

    project: Mapped[Project] = relationship(back_populates="permissions")
