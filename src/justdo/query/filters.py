from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Any, List, Optional, Tuple

from ..models import TodoEntity
from .specs import DoneState, TodoFilters


class Clause(ABC):
    """
    One conjunctive condition over todo records.

    Every clause can be evaluated in memory (matches) and rendered as a
    parameterized SQL fragment (to_sql) so all store backends agree on the
    result set.
    """

    @abstractmethod
    def matches(self, todo: TodoEntity) -> bool:
        """Return True if the record satisfies the condition."""

    @abstractmethod
    def to_sql(self) -> Tuple[str, List[Any]]:
        """Return a SQL boolean expression and its bound parameters."""


@dataclass(frozen=True)
class DueOnOrAfter(Clause):
    day: date

    def matches(self, todo: TodoEntity) -> bool:
        return todo["due_date_utc"].date() >= self.day

    def to_sql(self) -> Tuple[str, List[Any]]:
        return "date(due_date_utc) >= ?", [self.day.isoformat()]


@dataclass(frozen=True)
class DueOnOrBefore(Clause):
    day: date

    def matches(self, todo: TodoEntity) -> bool:
        return todo["due_date_utc"].date() <= self.day

    def to_sql(self) -> Tuple[str, List[Any]]:
        return "date(due_date_utc) <= ?", [self.day.isoformat()]


@dataclass(frozen=True)
class NameContains(Clause):
    """Case-insensitive, unanchored substring match on the name."""

    text: str

    def matches(self, todo: TodoEntity) -> bool:
        return self.text.casefold() in (todo["name"] or "").casefold()

    def to_sql(self) -> Tuple[str, List[Any]]:
        # contains_ci is registered on every connection by SQLiteRepository
        return "contains_ci(name, ?)", [self.text]


@dataclass(frozen=True)
class DoneIs(Clause):
    done: bool

    def matches(self, todo: TodoEntity) -> bool:
        return bool(todo["done"]) == self.done

    def to_sql(self) -> Tuple[str, List[Any]]:
        return "done = ?", [1 if self.done else 0]


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Predicate:
    """
    Conjunction of clauses describing a filtered view of the record store.

    The empty predicate matches every record. Predicates are immutable;
    narrowing returns a new instance and adding a clause that is already
    present returns the same predicate.
    """

    clauses: Tuple[Clause, ...] = ()

    def where(self, clause: Clause) -> "Predicate":
        if clause in self.clauses:
            return self
        return Predicate(self.clauses + (clause,))

    def __call__(self, todo: TodoEntity) -> bool:
        return all(c.matches(todo) for c in self.clauses)

    def to_sql(self) -> Tuple[str, List[Any]]:
        """Render as a WHERE clause ('' when unconstrained) plus parameters."""
        if not self.clauses:
            return "", []
        parts: List[str] = []
        params: List[Any] = []
        for clause in self.clauses:
            sql, args = clause.to_sql()
            parts.append(sql)
            params.extend(args)
        return "WHERE " + " AND ".join(parts), params


# PUBLIC_INTERFACE
def apply_filters(source: Predicate, filters: Optional[TodoFilters]) -> Predicate:
    """
    Narrow `source` by a filter specification.

    Rules are applied conjunctively and only when present:
    - due-date lower/upper bounds, compared on the date component only
      (the time of day of both the bound and the record is discarded)
    - non-empty name substring, case-insensitive
    - done selector: done / not_done narrow, all leaves the view as-is

    An absent filter specification returns `source` unchanged. Applying the
    same filters twice yields the same predicate.
    """
    if filters is None:
        return source

    result = source
    if filters.due_date is not None:
        if filters.due_date.from_ is not None:
            result = result.where(DueOnOrAfter(filters.due_date.from_.date()))
        if filters.due_date.to is not None:
            result = result.where(DueOnOrBefore(filters.due_date.to.date()))

    if filters.name:
        result = result.where(NameContains(filters.name))

    if filters.done is DoneState.DONE:
        result = result.where(DoneIs(True))
    elif filters.done is DoneState.NOT_DONE:
        result = result.where(DoneIs(False))

    return result
