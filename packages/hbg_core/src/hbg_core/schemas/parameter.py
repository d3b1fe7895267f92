import json
from typing import Annotated, List, Literal, Self, Tuple, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, model_validator

from hbg_core.config import hbg_settings

SortDirection: TypeAlias = Literal["asc", "desc"]
OrderingInstruction: TypeAlias = Tuple[str, SortDirection]


class LoadOptions(BaseModel):
    """
    Grid load options sent by the DataStore bridge.

    Only paging and sorting are applied server-side. `sort` is either the grid
    convention, a JSON list of ``{"selector": ..., "desc": ...}`` objects, or
    a plain ``"field1,-field2"`` string.

    Examples
    --------
        >>> LoadOptions(skip=20, take=10).get_offset()
        20
        >>> LoadOptions(sort='[{"selector": "name", "desc": true}]').get_ordering()
        [('name', 'desc')]
        >>> LoadOptions(sort="-name,id").get_ordering()
        [('name', 'desc'), ('id', 'asc')]
    """

    model_config = ConfigDict(
        populate_by_name=True,
        # extra grid options (filter, group, ...) are accepted and ignored
        extra="ignore",
    )

    skip: Annotated[int, Field(default=0, description="Raw skip count")]
    take: Annotated[int | None, Field(default=None, description="Items to return")]
    sort: Annotated[
        str | None, Field(default=None, description="Sort descriptors or 'field,-field'")
    ]
    require_total_count: Annotated[
        bool, Field(default=False, alias="requireTotalCount")
    ]

    @model_validator(mode="after")
    def _validate_bounds(self) -> Self:
        self.skip = max(0, self.skip)
        if self.take is not None:
            self.take = max(1, self.take)
        return self

    def get_offset(self) -> int:
        return self.skip

    def get_limit(self, max_take: int | None = None) -> int | None:
        """`take` capped at `max_take`, or at `MAX_TAKE` of `hbg_settings`."""
        if self.take is None:
            return None
        return min(self.take, max_take or hbg_settings.MAX_TAKE)

    def get_ordering(self) -> List[OrderingInstruction]:
        """
        Parses the sort option into typed instructions.
        """
        if not self.sort:
            return []

        instructions: List[OrderingInstruction] = []
        sort = self.sort.strip()
        if sort.startswith('"'):
            # a JSON-encoded plain string
            sort = json.loads(sort)
        if sort.startswith("["):
            for item in json.loads(sort):
                if isinstance(item, str):
                    instructions.append((item, "asc"))
                elif item.get("selector"):
                    instructions.append(
                        (item["selector"], "desc" if item.get("desc") else "asc")
                    )
            return instructions

        for part in sort.split(","):
            field = part.strip()
            if not field:
                continue
            if field.startswith("-"):
                instructions.append((field[1:], "desc"))
            else:
                instructions.append((field, "asc"))
        return instructions
