from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Generic, TypeVar, cast
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from .exceptions import DoesNotExistError, MultipleObjectsReturnedError
from .models import Model
from .queryset import QuerySet

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql import ColumnElement

T = TypeVar("T", bound=Model)
PrimaryKey = int | str | UUID


class ModelManager(Generic[T]):
    """
    The `Model.objects` entry point.

    Reads go through QuerySets. Single-row writes commit immediately; a
    failing write rolls the session back, and driver errors surface as
    `RuntimeError`.

    Examples:
        >>> receivers = await Receiver.objects.filter(user_id="1").order_by("name").fetch(db)
        >>> await Receiver.objects.delete_by_pk(db, 3)
    """

    def __init__(self, model: type[T]):
        self._model = model

    @property
    def _name(self) -> str:
        return self._model.__name__

    def all(self) -> QuerySet[T]:
        return QuerySet(self._model, select(self._model))

    def filter(self, *conditions: ColumnElement[bool], **lookups: Any) -> QuerySet[T]:
        return self.all().filter(*conditions, **lookups)

    def exclude(self, *conditions: ColumnElement[bool], **lookups: Any) -> QuerySet[T]:
        return self.all().exclude(*conditions, **lookups)

    @asynccontextmanager
    async def _writing(self, db: AsyncSession, action: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            await db.rollback()
            msg = f"Database error while {action} {self._name}: {e}"
            raise RuntimeError(msg) from e
        except Exception:
            await db.rollback()
            raise

    async def get(self, db: AsyncSession, *conditions: ColumnElement[bool]) -> T:
        """
        The single row matching `conditions`.

        Raises:
            DoesNotExistError: nothing matches.
            MultipleObjectsReturnedError: more than one row matches.
        """
        rows = cast(
            "list[T]",
            (await db.scalars(select(self._model).where(*conditions).limit(2))).all(),
        )
        if not rows:
            raise DoesNotExistError(f"{self._name} matching query does not exist")
        if len(rows) > 1:
            raise MultipleObjectsReturnedError(
                f"get() returned more than one {self._name} -- it returned {len(rows)}!"
            )
        return rows[0]

    async def get_by_pk(self, db: AsyncSession, pk: PrimaryKey) -> T:
        return await self.get(db, self._model.id == pk)

    async def count(self, db: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self._model).where(*conditions)
        return int(await db.scalar(stmt) or 0)

    async def exists(self, db: AsyncSession, *conditions: ColumnElement[bool]) -> bool:
        return await self.filter(*conditions).exists(db)

    async def create(self, db: AsyncSession, **fields: Any) -> T:
        instance: T = self._model(**fields)
        async with self._writing(db, "creating"):
            db.add(instance)
            await db.commit()
            await db.refresh(instance)
        return instance

    async def get_or_create(
        self,
        db: AsyncSession,
        defaults: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> tuple[T, bool]:
        """Fetch the row matching `kwargs`, or create it with `defaults` added."""
        conditions = [getattr(self._model, k) == v for k, v in kwargs.items()]
        try:
            return await self.get(db, *conditions), False
        except DoesNotExistError:
            return await self.create(db, **kwargs, **(defaults or {})), True

    async def update(self, db: AsyncSession, pk: PrimaryKey, **fields: Any) -> T:
        """
        UPDATE ... RETURNING for one primary key.

        Raises:
            DoesNotExistError: no row has that key.
        """
        stmt = (
            update(self._model)
            .where(self._model.id == pk)
            .values(**fields)
            .returning(self._model)
        )
        async with self._writing(db, "updating"):
            instance = (await db.execute(stmt)).scalar_one_or_none()
            if instance is not None:
                await db.commit()
        if instance is None:
            raise DoesNotExistError(f"{self._name} with id {pk} not found")
        return cast("T", instance)

    async def delete_by_pk(
        self,
        db: AsyncSession,
        pk: PrimaryKey,
        *,
        raise_if_missing: bool = False,
    ) -> int:
        """
        Delete one row and return the number of deleted rows.

        Children are removed by the database (`ON DELETE CASCADE` / `SET NULL`).
        """
        async with self._writing(db, "deleting"):
            result = await db.execute(delete(self._model).where(self._model.id == pk))
            await db.commit()
        count = getattr(result, "rowcount", 0)
        if raise_if_missing and count == 0:
            raise DoesNotExistError(f"{self._name} with id {pk} not found")
        return count
