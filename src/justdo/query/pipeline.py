from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from ..models import project
from .cancellation import CancellationToken, check_cancelled
from .filters import Predicate, apply_filters
from .grouping import TodoGroups, group_and_order
from .paging import paginate
from .specs import ListQuery, PagedListQuery

if TYPE_CHECKING:
    from ..repositories import Repository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TodoListResult:
    todo_list: TodoGroups


@dataclass(frozen=True)
class TodoPagedResult:
    items: TodoGroups
    total_items: int
    page_num: int
    items_per_page: int


# PUBLIC_INTERFACE
def list_todos(
    store: "Repository",
    query: ListQuery,
    cancel: Optional[CancellationToken] = None,
) -> TodoListResult:
    """
    Return every todo matching the filters, grouped by due date.

    filter -> read -> project -> group and order. Read-only.
    """
    predicate = apply_filters(Predicate(), query.filters)
    logger.debug("Listing todos with %d filter clause(s)", len(predicate.clauses))

    with store.read() as reader:
        rows = reader.query(predicate, cancel=cancel)
    todos = [project(row) for row in rows]

    groups = group_and_order(todos, query.group_order, query.todo_order, cancel=cancel)
    check_cancelled(cancel)
    return TodoListResult(todo_list=groups)


# PUBLIC_INTERFACE
def list_todos_paged(
    store: "Repository",
    query: PagedListQuery,
    cancel: Optional[CancellationToken] = None,
) -> TodoPagedResult:
    """
    Return one page of matching todos, grouped by due date, with paging metadata.

    Page membership is decided by the store slice before any ordering;
    grouping and item ordering apply to the page's contents only.
    `total_items` counts the whole filtered view.
    """
    predicate = apply_filters(Predicate(), query.filters)
    logger.debug(
        "Listing todo page %d (size %d) with %d filter clause(s)",
        query.page.index,
        query.page.size,
        len(predicate.clauses),
    )

    page = paginate(store, predicate, query.page, cancel=cancel)
    todos = [project(row) for row in page.items]

    groups = group_and_order(todos, query.group_order, query.todo_order, cancel=cancel)
    check_cancelled(cancel)
    return TodoPagedResult(
        items=groups,
        total_items=page.total,
        page_num=query.page.index,
        items_per_page=query.page.size,
    )
