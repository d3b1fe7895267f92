from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, Iterable, Sequence, Type, TypeVar

from sqlalchemy import delete, func, not_, select
from sqlalchemy.orm import joinedload, selectinload

from .models import Model

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql import ColumnElement, Select


T = TypeVar("T", bound=Model)


class QuerySet(Generic[T]):
    """
    Represents a lazy database query for a specific model type.

    Conditions are composed on a SQLAlchemy `Select` and only executed by
    `fetch()`, `first()`, `count()`, `exists()` or `delete()`.

    Examples:
        >>> qs = Receiver.objects.filter(user_id="42").order_by("name")

        >>> qs = Email.objects.filter(distribution_id=3, status__in=[1, 2])
    """

    def __init__(self, model: Type[T], stmt: Select):
        self.model: Type[T] = model
        self._stmt: Select = stmt

    def _clone(self, stmt: Select) -> QuerySet[T]:
        return QuerySet(self.model, stmt)

    def _column(self, name: str) -> Any:
        try:
            return getattr(self.model, name)
        except AttributeError as e:
            msg = f"{self.model.__name__} has no field '{name}'"
            raise ValueError(msg) from e

    def _resolve_lookup(self, key: str, value: Any) -> ColumnElement[bool]:
        field, _, op = key.partition("__")
        column = self._column(field)
        if op in ("", "exact"):
            return column.is_(None) if value is None else column == value
        if op == "in":
            return column.in_(list(value))
        if op == "isnull":
            return column.is_(None) if value else column.is_not(None)
        if op == "ne":
            return column != value
        msg = f"Unsupported lookup '{op}' for {self.model.__name__}.{field}"
        raise ValueError(msg)

    # --- Chainable methods ---

    def filter(self, *conditions: ColumnElement[bool], **lookups: Any) -> QuerySet[T]:
        """
        Add WHERE criteria to the query.

        Example:
            >>> Email.objects.filter(Email.status != EmailStatus.SENT, distribution_id=1)
        """
        if not conditions and not lookups:
            return self
        exprs = [*conditions, *(self._resolve_lookup(k, v) for k, v in lookups.items())]
        return self._clone(self._stmt.where(*exprs))

    def exclude(self, *conditions: ColumnElement[bool], **lookups: Any) -> QuerySet[T]:
        """
        Add negative WHERE criteria to the query.
        """
        if not conditions and not lookups:
            return self
        exprs = [*conditions, *(self._resolve_lookup(k, v) for k, v in lookups.items())]
        return self._clone(self._stmt.where(*(not_(e) for e in exprs)))

    def order_by(self, *criterion: Any) -> QuerySet[T]:
        """
        Add ORDER BY criteria. Strings prefixed with '-' sort descending.

        Example:
            >>> Receiver.objects.order_by("-name", Receiver.id)
        """
        resolved = []
        for item in criterion:
            if isinstance(item, str):
                desc = item.startswith("-")
                column = self._column(item.lstrip("-"))
                resolved.append(column.desc() if desc else column.asc())
            else:
                resolved.append(item)
        return self._clone(self._stmt.order_by(*resolved))

    def limit(self, count: int | None) -> QuerySet[T]:
        return self._clone(self._stmt.limit(count))

    def offset(self, count: int) -> QuerySet[T]:
        return self._clone(self._stmt.offset(count))

    def window(
        self,
        *,
        offset: int = 0,
        limit: int | None = None,
        ordering: Iterable[tuple[str, str]] = (),
        allowed: Iterable[str] | None = None,
    ) -> QuerySet[T]:
        """
        Apply grid paging and ordering. Unknown or disallowed sort fields are skipped.

        Example:
            >>> qs.window(offset=20, limit=10, ordering=[("name", "desc")])
        """
        allowed_fields = set(allowed) if allowed is not None else None
        qs: QuerySet[T] = self
        for field, direction in ordering:
            if allowed_fields is not None and field not in allowed_fields:
                continue
            if not hasattr(self.model, field):
                continue
            qs = qs.order_by(f"-{field}" if direction == "desc" else field)
        if offset:
            qs = qs.offset(offset)
        if limit is not None:
            qs = qs.limit(limit)
        return qs

    def select_related(self, *fields: str) -> QuerySet[T]:
        """
        Eagerly load many-to-one relationships using SQL JOINs.
        """
        stmt = self._stmt
        for field in fields:
            stmt = stmt.options(joinedload(self._column(field)))
        return self._clone(stmt)

    def prefetch_related(self, *fields: str) -> QuerySet[T]:
        """
        Eagerly load one-to-many relationships using separate queries.

        Nested paths use dots: ``prefetch_related("emails.receiver")``.
        """
        stmt = self._stmt
        for field in fields:
            model: Any = self.model
            loader = None
            for part in field.split("."):
                attr = getattr(model, part)
                loader = selectinload(attr) if loader is None else loader.selectinload(attr)
                model = attr.property.mapper.class_
            stmt = stmt.options(loader)
        return self._clone(stmt)

    # --- Execution ---

    async def fetch(self, db: AsyncSession) -> Sequence[T]:
        """
        Execute query and return results as model instances.
        """
        result = await db.execute(self._stmt)
        return result.scalars().unique().all()

    async def first(self, db: AsyncSession) -> T | None:
        result = await db.execute(self._stmt.limit(1))
        return result.scalars().unique().first()

    async def count(self, db: AsyncSession) -> int:
        """
        Count rows matching the current filters (ordering and paging ignored).
        """
        stmt = select(func.count()).select_from(
            self._stmt.order_by(None).limit(None).offset(None).subquery()
        )
        return int(await db.scalar(stmt) or 0)

    async def exists(self, db: AsyncSession) -> bool:
        stmt = select(self._stmt.order_by(None).limit(1).exists())
        return bool(await db.scalar(stmt))

    async def delete(self, db: AsyncSession) -> int:
        """
        Delete matching rows. The caller commits.

        Example:
            >>> await Email.objects.filter(distribution_id=1, receiver_id=2).delete(db)
        """
        where_clause = self._stmt.whereclause
        if where_clause is None:
            msg = "Refusing to delete without filters"
            raise ValueError(msg)

        result = await db.execute(delete(self.model).where(where_clause))
        return getattr(result, "rowcount", 0)
