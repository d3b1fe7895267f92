from __future__ import annotations

from functools import wraps
from typing import TYPE_CHECKING, Any, Awaitable, Callable, ParamSpec, Self, TypeVar

if TYPE_CHECKING:
    from contextlib import AbstractAsyncContextManager
    from types import TracebackType

    from sqlalchemy.ext.asyncio import AsyncSession

P = ParamSpec("P")
T = TypeVar("T")

_DEPTH_KEY = "hbg_atomic_depth"


class Atomic:
    """
    Async unit of work over an `AsyncSession`.

    Works as an async context manager or a decorator. The block is committed
    on success and rolled back on exception.

    Sessions autobegin on their first query, so a block entered after a read
    (an authorization check, for example) runs in a SAVEPOINT and the
    outermost `Atomic` commits the surrounding transaction on success.
    Nested blocks only release their SAVEPOINT.

    Examples:
        >>> async with atomic(db):
        ...     db.add(project)
        ...     db.add_all(permissions)

        >>> @atomic(db)
        ... async def create():
        ...     db.add(receiver)
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self._cm: AbstractAsyncContextManager[Any] | None = None
        self._outermost = False
        self._owns_transaction = False

    def _get_transaction_cm(self) -> AbstractAsyncContextManager[Any]:
        if self.db.in_transaction():
            return self.db.begin_nested()
        self._owns_transaction = True
        return self.db.begin()

    async def __aenter__(self) -> Self:
        depth = self.db.info.get(_DEPTH_KEY, 0)
        self._outermost = depth == 0
        self.db.info[_DEPTH_KEY] = depth + 1
        self._cm = self._get_transaction_cm()
        await self._cm.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.db.info[_DEPTH_KEY] = self.db.info.get(_DEPTH_KEY, 1) - 1
        try:
            if self._cm:
                await self._cm.__aexit__(exc_type, exc, tb)
        finally:
            if self._outermost and not self._owns_transaction:
                if exc_type is None:
                    await self.db.commit()
                else:
                    await self.db.rollback()

    def __call__(self, func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            async with Atomic(self.db):
                return await func(*args, **kwargs)

        return wrapper


def atomic(db: AsyncSession) -> Atomic:
    """
    Factory helper for creating an Atomic manager.
    """
    return Atomic(db)
