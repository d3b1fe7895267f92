"""
Generic Load/Insert/Update/Remove targets for a named entity.

For an entity ``Plan`` a `CrudHub` exposes::

    loadPlan(subjectId)                    -> [Plan]   caller joins the subject group
    insertPlan(values, subjectId)          -> Plan     pushes addedPlan(item)
    updatePlan(key, values, subjectId)     -> None     pushes updatedPlan(key, item)
    removePlan(key, subjectId)             -> None     pushes removedPlan(key)

Pushes go to the other members of the subject group.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, ClassVar, Generic, Iterable, TypeVar

from hbg_core.exceptions import ValidationFailedException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .hub import Hub, HubContext
from .manager import ConnectionManager, user_group

ItemT = TypeVar("ItemT")


class CrudAction(str, Enum):
    LOAD = "load"
    INSERT = "insert"
    UPDATE = "update"
    REMOVE = "remove"


class EntityHandler(ABC, Generic[ItemT]):
    """Storage and authorization for one entity exposed through a `CrudHub`."""

    entity: ClassVar[str]

    async def authorize(
        self,
        ctx: HubContext,  # noqa: ARG002
        subject_id: Any,  # noqa: ARG002
        action: CrudAction,  # noqa: ARG002
    ) -> None:
        """Raise an `HbgError` to refuse the call before storage is touched."""
        return None

    def group_name(self, ctx: HubContext, subject_id: Any) -> str:
        if subject_id is None:
            return user_group(ctx.user_id)
        return f"{self.entity.lower()}:{subject_id}"

    @abstractmethod
    async def load(self, ctx: HubContext, subject_id: Any) -> list[ItemT]: ...

    @abstractmethod
    async def insert(self, ctx: HubContext, values: dict[str, Any], subject_id: Any) -> ItemT: ...

    @abstractmethod
    async def update(
        self, ctx: HubContext, key: Any, values: dict[str, Any], subject_id: Any
    ) -> ItemT: ...

    @abstractmethod
    async def remove(self, ctx: HubContext, key: Any, subject_id: Any) -> None: ...


def _require_mapping(values: Any, target: str) -> dict[str, Any]:
    if not isinstance(values, dict):
        msg = f"'{target}' expects an object of values"
        raise ValidationFailedException(msg)
    return values


class CrudHub(Hub):
    """Hub that exposes a set of `EntityHandler`s with the generic CRUD contract."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        manager: ConnectionManager | None = None,
        handlers: Iterable[EntityHandler] = (),
    ) -> None:
        super().__init__(session_factory, manager)
        self.handlers: dict[str, EntityHandler] = {}
        for handler in handlers:
            self.add_entity(handler)

    def add_entity(self, handler: EntityHandler) -> None:
        entity = handler.entity
        self.handlers[entity] = handler

        async def load(ctx: HubContext, subject_id: Any = None) -> list[Any]:
            await handler.authorize(ctx, subject_id, CrudAction.LOAD)
            items = await handler.load(ctx, subject_id)
            ctx.manager.add_to_group(ctx.connection_id, handler.group_name(ctx, subject_id))
            return items

        async def insert(ctx: HubContext, values: Any, subject_id: Any = None) -> Any:
            values = _require_mapping(values, f"insert{entity}")
            await handler.authorize(ctx, subject_id, CrudAction.INSERT)
            item = await handler.insert(ctx, values, subject_id)
            await ctx.manager.send_to_group(
                handler.group_name(ctx, subject_id),
                f"added{entity}",
                item,
                exclude=ctx.connection_id,
            )
            return item

        async def update(ctx: HubContext, key: Any, values: Any, subject_id: Any = None) -> None:
            values = _require_mapping(values, f"update{entity}")
            await handler.authorize(ctx, subject_id, CrudAction.UPDATE)
            item = await handler.update(ctx, key, values, subject_id)
            await ctx.manager.send_to_group(
                handler.group_name(ctx, subject_id),
                f"updated{entity}",
                key,
                item,
                exclude=ctx.connection_id,
            )

        async def remove(ctx: HubContext, key: Any, subject_id: Any = None) -> None:
            await handler.authorize(ctx, subject_id, CrudAction.REMOVE)
            await handler.remove(ctx, key, subject_id)
            await ctx.manager.send_to_group(
                handler.group_name(ctx, subject_id),
                f"removed{entity}",
                key,
                exclude=ctx.connection_id,
            )

        self.register(f"load{entity}", load)
        self.register(f"insert{entity}", insert)
        self.register(f"update{entity}", update)
        self.register(f"remove{entity}", remove)
