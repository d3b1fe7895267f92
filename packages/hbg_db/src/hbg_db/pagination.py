from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, TypeVar

from hbg_core.schemas.parameter import LoadOptions

from .models import Model

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from .queryset import QuerySet

T = TypeVar("T", bound=Model)


async def load_page(
    db: AsyncSession,
    qs: QuerySet[T],
    options: LoadOptions,
    *,
    allowed: Iterable[str] | None = None,
    max_take: int | None = None,
) -> tuple[list[T], int]:
    """
    Run `qs` with the paging and sorting of `options`.

    Returns the requested window and the total number of matching rows.
    `max_take` caps the page size, usually with the app's `MAX_TAKE`.

    Example:
        >>> items, total = await load_page(db, Receiver.objects.filter(user_id="7"), options)
    """
    total = await qs.count(db)
    window = qs.window(
        offset=options.get_offset(),
        limit=options.get_limit(max_take),
        ordering=options.get_ordering(),
        allowed=allowed,
    )
    return list(await window.fetch(db)), total
