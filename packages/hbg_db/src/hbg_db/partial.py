from __future__ import annotations

from typing import Any, Iterable

from pydantic import BaseModel

from .models import Model


def partial_values(
    values: BaseModel | dict[str, Any],
    *,
    exclude: Iterable[str] = (),
) -> dict[str, Any]:
    """
    Return only the fields that carry a value.

    Fields that are absent or null are dropped, so a partial DTO never
    overwrites stored data with ``None``.

    Example:
        >>> partial_values(PlanUpdate(name="Ground floor"))
        {'name': 'Ground floor'}
    """
    if isinstance(values, BaseModel):
        data = values.model_dump(exclude_unset=True, exclude_none=True)
    else:
        data = {k: v for k, v in values.items() if v is not None}
    for key in exclude:
        data.pop(key, None)
    return data


def apply_partial(
    instance: Model,
    values: BaseModel | dict[str, Any],
    *,
    exclude: Iterable[str] = ("id",),
) -> dict[str, Any]:
    """
    Merge a partial DTO into a loaded instance and return the applied changes.

    Unknown attributes are ignored. The caller flushes or commits.
    """
    changes = {
        key: value
        for key, value in partial_values(values, exclude=exclude).items()
        if hasattr(type(instance), key)
    }
    for key, value in changes.items():
        setattr(instance, key, value)
    return changes
