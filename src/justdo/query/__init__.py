"""
Query pipeline for todo lists: filtering, ordering, grouping by due date and
pagination over a record store.
"""

from .cancellation import CancellationToken, OperationCancelled
from .filters import Predicate, apply_filters
from .grouping import group_and_order
from .ordering import order_todos
from .paging import Page, paginate
from .pipeline import TodoListResult, TodoPagedResult, list_todos, list_todos_paged
from .specs import (
    DateRange,
    Direction,
    DoneState,
    ListQuery,
    OrderSpec,
    PagedListQuery,
    PageSpec,
    SortField,
    TodoFilters,
)

__all__ = [
    "CancellationToken",
    "OperationCancelled",
    "Predicate",
    "apply_filters",
    "group_and_order",
    "order_todos",
    "Page",
    "paginate",
    "TodoListResult",
    "TodoPagedResult",
    "list_todos",
    "list_todos_paged",
    "DateRange",
    "Direction",
    "DoneState",
    "ListQuery",
    "OrderSpec",
    "PagedListQuery",
    "PageSpec",
    "SortField",
    "TodoFilters",
]
