from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .models import TodoEntity, TodoPriority
from .query.grouping import TodoGroups
from .query.pipeline import TodoListResult, TodoPagedResult
from .query.specs import (
    DateRange,
    Direction,
    DoneState,
    ListQuery,
    OrderSpec,
    PagedListQuery,
    PageSpec,
    TodoFilters,
)

MAX_ITEMS_PER_PAGE = 1000
# Largest row offset SQLite accepts (signed 64-bit)
MAX_OFFSET = 2**63 - 1


def _require_utc(value: Optional[datetime], *, convert: bool = False) -> Optional[datetime]:
    """
    Internal helper enforcing the UTC invariant on incoming timestamps.
    - None passes through.
    - Naive datetimes are always rejected: their zone is unknown.
    - Aware datetimes with a non-zero offset are converted to UTC when
      `convert` is set, rejected otherwise.
    - The result always carries timezone.utc as tzinfo.
    """
    if value is None:
        return None
    offset = value.utcoffset()
    if offset is None:
        raise ValueError("timestamp must be expressed in UTC (e.g. '2020-08-11T15:48:13Z')")
    if offset and not convert:
        raise ValueError("timestamp must be expressed in UTC, got offset " + str(offset))
    return value.astimezone(timezone.utc)


def _lower_token(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


def _clean_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    s = value.strip()
    if not (1 <= len(s) <= 200):
        raise ValueError("name length must be between 1 and 200 characters")
    return s


# PUBLIC_INTERFACE
class TodoCreate(BaseModel):
    """
    Schema for creating a new Todo item. New todos always start not done.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "name": "MyToDo",
                "dueDate": "2020-08-11T15:48:13Z",
                "priority": "medium",
            }
        },
    )

    name: str = Field(..., description="Short name of the todo item", max_length=200)
    due_date: datetime = Field(..., alias="dueDate", description="Due date/time, UTC only")
    priority: TodoPriority = Field(default=TodoPriority.NOT_SET, description="Todo priority")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Strip whitespace and enforce 1..200 length."""
        return _clean_name(v)  # type: ignore[return-value]

    @field_validator("due_date")
    @classmethod
    def validate_due_date(cls, v: datetime) -> datetime:
        return _require_utc(v)  # type: ignore[return-value]

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority(cls, v: Any) -> Any:
        return _lower_token(v)


# PUBLIC_INTERFACE
class TodoUpdate(BaseModel):
    """
    Schema for updating an existing Todo item.
    All fields are optional; only provided fields will be updated. Due dates
    with a non-UTC offset are converted to UTC.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "name": "MyToDo renamed",
                "dueDate": "2020-08-12T09:30:00Z",
                "priority": "high",
                "done": True,
            }
        },
    )

    name: Optional[str] = Field(default=None, description="Short name of the todo item")
    due_date: Optional[datetime] = Field(default=None, alias="dueDate", description="Due date/time")
    priority: Optional[TodoPriority] = Field(default=None, description="Todo priority")
    done: Optional[bool] = Field(default=None, description="Completion status flag")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        """Empty or blank names leave the name unchanged; others must be 1..200 long."""
        if v is None or not v.strip():
            return None
        return _clean_name(v)

    @field_validator("due_date")
    @classmethod
    def validate_due_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _require_utc(v, convert=True)

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority(cls, v: Any) -> Any:
        return _lower_token(v)


# PUBLIC_INTERFACE
class TodoOut(BaseModel):
    """
    Schema returned by the API for a Todo item.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_schema_extra={
            "example": {
                "id": "0b5e1c2a-3f47-4d59-9a43-6f3a4d1b2c3e",
                "name": "MyTodo1",
                "dueDateUtc": "2020-11-12T00:00:00Z",
                "priority": "high",
                "done": True,
            }
        },
    )

    id: UUID = Field(..., description="Unique identifier of the todo item")
    name: str = Field(..., description="Short name of the todo item")
    due_date_utc: datetime = Field(..., alias="dueDateUtc", description="Due date/time in UTC")
    priority: TodoPriority = Field(..., description="Todo priority")
    done: bool = Field(..., description="Completion status flag")

    @classmethod
    def from_entity(cls, entity: TodoEntity) -> "TodoOut":
        return cls(**entity)


# PUBLIC_INTERFACE
class TodoEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    todo: TodoOut


# PUBLIC_INTERFACE
class DateRangeFilter(BaseModel):
    """Inclusive due-date range; bounds compare by calendar day (UTC)."""

    model_config = ConfigDict(populate_by_name=True)

    from_: Optional[datetime] = Field(default=None, alias="from", description="Lower bound, UTC")
    to: Optional[datetime] = Field(default=None, description="Upper bound, UTC")

    @field_validator("from_", "to")
    @classmethod
    def validate_bound(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _require_utc(v)


# PUBLIC_INTERFACE
class TodoFilterCollection(BaseModel):
    """
    Filters applied before grouping. `done` defaults to 'done' when omitted
    or null.
    """

    model_config = ConfigDict(populate_by_name=True)

    due_date: Optional[DateRangeFilter] = Field(default=None, alias="dueDate")
    name: Optional[str] = Field(default=None, description="Case-insensitive name substring")
    done: DoneState = Field(default=DoneState.DONE, description="One of 'done', 'not_done', 'all'")

    @field_validator("done", mode="before")
    @classmethod
    def normalize_done(cls, v: Any) -> Any:
        if v is None:
            return DoneState.DONE
        return _lower_token(v)

    def to_spec(self) -> TodoFilters:
        due = None
        if self.due_date is not None:
            due = DateRange(from_=self.due_date.from_, to=self.due_date.to)
        return TodoFilters(due_date=due, name=self.name, done=self.done)


# PUBLIC_INTERFACE
class Order(BaseModel):
    """
    Ordering params. `field` is matched case-insensitively; `direction` is
    'asc' or 'desc' (case-insensitive) and defaults to 'desc' when omitted.
    """

    field: str = Field(..., description="Field to order by")
    direction: Optional[Direction] = Field(default=None, description="'asc' or 'desc'")

    @field_validator("field")
    @classmethod
    def validate_field(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("field must not be empty")
        return v.strip()

    @field_validator("direction", mode="before")
    @classmethod
    def normalize_direction(cls, v: Any) -> Any:
        return _lower_token(v)

    def to_spec(self) -> OrderSpec:
        return OrderSpec(field=self.field, direction=self.direction)


# PUBLIC_INTERFACE
class TodoListRequest(BaseModel):
    """
    Body of the list query.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "filters": {
                    "done": "all",
                    "dueDate": {"from": "1980-12-11T00:00:00Z", "to": "2020-12-01T00:00:00Z"},
                    "name": "todo",
                },
                "groupOrder": {"field": "dueDateUtc", "direction": "asc"},
                "todoOrder": [
                    {"field": "name", "direction": "asc"},
                    {"field": "done", "direction": "desc"},
                ],
            }
        },
    )

    filters: Optional[TodoFilterCollection] = None
    group_order: Optional[Order] = Field(default=None, alias="groupOrder")
    todo_order: Optional[List[Order]] = Field(default=None, alias="todoOrder")

    def _query_kwargs(self) -> Dict[str, Any]:
        return {
            "filters": self.filters.to_spec() if self.filters is not None else None,
            "group_order": self.group_order.to_spec() if self.group_order is not None else None,
            "todo_order": tuple(o.to_spec() for o in self.todo_order or ()),
        }

    def to_query(self) -> ListQuery:
        return ListQuery(**self._query_kwargs())


# PUBLIC_INTERFACE
class TodoPagedListRequest(TodoListRequest):
    """
    Body of the paged list query. `page` is zero-based.
    """

    page: int = Field(default=0, ge=0, description="Zero-based page index")
    items_per_page: int = Field(
        default=25, alias="itemsPerPage", ge=1, le=MAX_ITEMS_PER_PAGE, description="Page size"
    )

    @model_validator(mode="after")
    def check_offset(self) -> "TodoPagedListRequest":
        if self.page * self.items_per_page > MAX_OFFSET:
            raise ValueError("page is too large for the given itemsPerPage")
        return self

    def to_query(self) -> PagedListQuery:
        return PagedListQuery(
            page=PageSpec(index=self.page, size=self.items_per_page),
            **self._query_kwargs(),
        )


def _groups_out(groups: TodoGroups) -> Dict[datetime, List[TodoOut]]:
    return {due: [TodoOut.from_entity(t) for t in todos] for due, todos in groups.items()}


# PUBLIC_INTERFACE
class TodoListEnvelope(BaseModel):
    """Todos grouped by due date, groups in the requested order."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    todo_list: Dict[datetime, List[TodoOut]] = Field(..., alias="todoList")

    @classmethod
    def from_result(cls, result: TodoListResult) -> "TodoListEnvelope":
        return cls(todo_list=_groups_out(result.todo_list))


# PUBLIC_INTERFACE
class PagedTodoGroups(BaseModel):
    """
    Paged data. `items` holds at most `itemsPerPage` todos in total,
    `totalItems` counts every todo matching the filters.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    items: Dict[datetime, List[TodoOut]]
    total_items: int = Field(..., alias="totalItems")
    page_num: int = Field(..., alias="pageNum")
    items_per_page: int = Field(..., alias="itemsPerPage")


# PUBLIC_INTERFACE
class TodoPagedListEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    todo_paged: PagedTodoGroups = Field(..., alias="todoPaged")

    @classmethod
    def from_result(cls, result: TodoPagedResult) -> "TodoPagedListEnvelope":
        return cls(
            todo_paged=PagedTodoGroups(
                items=_groups_out(result.items),
                total_items=result.total_items,
                page_num=result.page_num,
                items_per_page=result.items_per_page,
            )
        )
