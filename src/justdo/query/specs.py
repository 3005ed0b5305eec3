from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


# PUBLIC_INTERFACE
class DoneState(str, Enum):
    """Done-state selector of a filter specification."""

    DONE = "done"
    NOT_DONE = "not_done"
    ALL = "all"


# PUBLIC_INTERFACE
class Direction(str, Enum):
    """Sort direction. An unspecified direction is represented by None."""

    ASC = "asc"
    DESC = "desc"


# PUBLIC_INTERFACE
class SortField(str, Enum):
    """Closed set of record fields a client may order by."""

    NAME = "name"
    DONE = "done"
    DUE_DATE = "dueDateUtc"

    # PUBLIC_INTERFACE
    @classmethod
    def parse(cls, token: Optional[str]) -> Optional["SortField"]:
        """
        Resolve a client-supplied field token (case-insensitive).

        Returns None for empty or unrecognized tokens; callers treat that as
        "skip this order", never as an error.
        """
        if not token:
            return None
        return _FIELD_TOKENS.get(token.strip().lower())


_FIELD_TOKENS = {
    "name": SortField.NAME,
    "done": SortField.DONE,
    "duedateutc": SortField.DUE_DATE,
    "duedate": SortField.DUE_DATE,
}


# PUBLIC_INTERFACE
def resolve_direction(direction: Optional[Direction]) -> Direction:
    """Unspecified direction falls back to descending."""
    return Direction.DESC if direction is None else direction


@dataclass(frozen=True)
class DateRange:
    """Inclusive due-date bounds, each optional. Compared by date component only."""

    from_: Optional[datetime] = None
    to: Optional[datetime] = None


@dataclass(frozen=True)
class TodoFilters:
    """
    Filter specification for todo queries.

    Defaults to done-only, matching what clients get when they send an empty
    `filters` object.
    """

    due_date: Optional[DateRange] = None
    name: Optional[str] = None
    done: DoneState = DoneState.DONE


@dataclass(frozen=True)
class OrderSpec:
    """A raw (field token, direction) pair as supplied by the client."""

    field: str
    direction: Optional[Direction] = None


@dataclass(frozen=True)
class PageSpec:
    """Zero-based page index and page size."""

    index: int = 0
    size: int = 25

    @property
    def offset(self) -> int:
        return self.index * self.size


@dataclass(frozen=True)
class ListQuery:
    """Everything needed to list todos grouped by due date."""

    filters: Optional[TodoFilters] = None
    group_order: Optional[OrderSpec] = None
    todo_order: Tuple[OrderSpec, ...] = ()


@dataclass(frozen=True)
class PagedListQuery(ListQuery):
    page: PageSpec = field(default_factory=PageSpec)
