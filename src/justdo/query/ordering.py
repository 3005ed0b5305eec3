from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..models import TodoEntity
from .specs import Direction, OrderSpec, SortField, resolve_direction

# Typed accessor per orderable field. Client tokens only ever reach a record
# through this table.
ACCESSORS: Dict[SortField, Callable[[TodoEntity], Any]] = {
    SortField.NAME: lambda t: t["name"],
    SortField.DONE: lambda t: bool(t["done"]),
    SortField.DUE_DATE: lambda t: t["due_date_utc"],
}


def _default_key(todo: TodoEntity) -> Tuple[bool, Any, str]:
    return bool(todo["done"]), todo["due_date_utc"], todo["name"]


# PUBLIC_INTERFACE
def resolve_orders(order_specs: Optional[Iterable[OrderSpec]]) -> List[Tuple[SortField, Direction]]:
    """
    Validate client order specs against the field whitelist.

    Keeps the caller's sequence, drops specs with unrecognized fields and
    resolves unspecified directions to descending.
    """
    resolved: List[Tuple[SortField, Direction]] = []
    for spec in order_specs or ():
        sort_field = SortField.parse(spec.field)
        if sort_field is None:
            continue
        resolved.append((sort_field, resolve_direction(spec.direction)))
    return resolved


# PUBLIC_INTERFACE
def order_todos(
    todos: Sequence[TodoEntity],
    order_specs: Optional[Iterable[OrderSpec]] = None,
) -> Tuple[TodoEntity, ...]:
    """
    Return `todos` in a total order driven by client order specs.

    The first valid spec is the primary key and later ones break ties; equal
    records keep their input order. When no spec is given, or none of the
    given ones names a known field, the default order applies: done, then
    due date, then name, all ascending.
    """
    orders = resolve_orders(order_specs)
    if not orders:
        return tuple(sorted(todos, key=_default_key))

    # Python's sort is stable, so sorting by the least significant key first
    # and the primary key last yields the combined multi-key order.
    result = list(todos)
    for sort_field, direction in reversed(orders):
        result.sort(key=ACCESSORS[sort_field], reverse=direction is Direction.DESC)
    return tuple(result)
