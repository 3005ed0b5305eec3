from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..models import TodoEntity
from .cancellation import CancellationToken, check_cancelled
from .ordering import order_todos
from .specs import Direction, OrderSpec, SortField, resolve_direction

TodoGroups = Dict[datetime, Tuple[TodoEntity, ...]]


# PUBLIC_INTERFACE
def group_direction(group_order: Optional[OrderSpec]) -> Direction:
    """
    Direction in which due-date groups are listed.

    Only the due date is a valid group field. A missing group order, or one
    naming any other field, falls back to descending.
    """
    if group_order is None or SortField.parse(group_order.field) is not SortField.DUE_DATE:
        return Direction.DESC
    return resolve_direction(group_order.direction)


# PUBLIC_INTERFACE
def group_and_order(
    todos: Sequence[TodoEntity],
    group_order: Optional[OrderSpec] = None,
    todo_order: Optional[Iterable[OrderSpec]] = None,
    cancel: Optional[CancellationToken] = None,
) -> TodoGroups:
    """
    Partition todos by their exact due datetime and order both levels.

    Groups are keyed by the full timestamp, so two todos due on the same day
    at different times land in different groups. Items inside each group are
    ordered by `todo_order` (see order_todos); groups are ordered by
    group_direction(group_order). The returned dict preserves that order.
    """
    buckets: Dict[datetime, List[TodoEntity]] = {}
    for todo in todos:
        buckets.setdefault(todo["due_date_utc"], []).append(todo)

    todo_order = tuple(todo_order or ())
    reverse = group_direction(group_order) is Direction.DESC
    groups: TodoGroups = {}
    for due in sorted(buckets, reverse=reverse):
        check_cancelled(cancel)
        groups[due] = order_todos(buckets[due], todo_order)
    return groups
