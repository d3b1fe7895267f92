"""
Core Pydantic schemas shared across modules.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T", bound="BaseModel")


class LoadResult(BaseModel, Generic[T]):
    """
    Generic list response returned by the REST load endpoints.

    Example:
        >>> class Receiver(BaseModel):
        ...     id: int
        ...     name: str
        ...
        >>> result = LoadResult[Receiver](
        ...     data=[Receiver(id=1, name="alex")], total_count=1
        ... )
        >>> result.model_dump()
        {'data': [{'id': 1, 'name': 'alex'}], 'total_count': 1}
    """

    model_config = ConfigDict(from_attributes=True)

    data: list[T] = Field(..., description="Items of the requested window")
    total_count: int = Field(..., description="Total number of items")
