from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from functools import lru_cache
from threading import RLock
from typing import Iterator, List, Optional, Protocol
from uuid import UUID, uuid4

from .models import TodoEntity
from .query.cancellation import CancellationToken, check_cancelled
from .query.filters import Predicate
from .schemas import TodoCreate, TodoUpdate
from .settings import get_settings

logger = logging.getLogger(__name__)


class StoreReader(Protocol):
    """The read operations available inside one Repository.read() scope."""

    def query(
        self,
        predicate: Predicate,
        offset: int = 0,
        limit: Optional[int] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> List[TodoEntity]: ...

    def count(self, predicate: Predicate, cancel: Optional[CancellationToken] = None) -> int: ...


# PUBLIC_INTERFACE
class Repository(ABC):
    """Abstract repository contract for todo storage backends."""

    @abstractmethod
    def insert(self, data: TodoCreate) -> TodoEntity:
        """Create and return a new TodoEntity. New todos are not done."""

    @abstractmethod
    def get(self, todo_id: UUID) -> Optional[TodoEntity]:
        """Return a TodoEntity by id, or None if not found."""

    @abstractmethod
    def update_fields(self, todo_id: UUID, data: TodoUpdate) -> Optional[TodoEntity]:
        """Update provided fields of an existing TodoEntity. Return updated entity or None if not found."""

    @abstractmethod
    def delete(self, todo_id: UUID) -> bool:
        """Delete a TodoEntity by id. Return True if deleted, False if not found."""

    @abstractmethod
    def query(
        self,
        predicate: Predicate,
        offset: int = 0,
        limit: Optional[int] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> List[TodoEntity]:
        """
        Return records matching `predicate` in the store's underlying
        (insertion) sequence, skipping `offset` and returning at most `limit`.
        Aborts with OperationCancelled once `cancel` fires.
        """

    @abstractmethod
    def count(self, predicate: Predicate, cancel: Optional[CancellationToken] = None) -> int:
        """Return the number of records matching `predicate`."""

    @contextmanager
    def read(self) -> Iterator[StoreReader]:
        """
        Scope for several reads that belong to one request. Backends with
        transactions run the reads inside one transaction; the default just
        hands out the repository itself.
        """
        yield self


def apply_update(entity: TodoEntity, data: TodoUpdate) -> TodoEntity:
    updated = entity.copy()
    # Update only provided fields
    if data.name:
        updated["name"] = data.name
    if data.done is not None:
        updated["done"] = data.done
    if data.due_date is not None:
        updated["due_date_utc"] = data.due_date
    if data.priority is not None:
        updated["priority"] = data.priority
    return updated


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    Records are kept in insertion order.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: dict[UUID, TodoEntity] = {}

    def insert(self, data: TodoCreate) -> TodoEntity:
        entity: TodoEntity = {
            "id": uuid4(),
            "name": data.name,
            "due_date_utc": data.due_date,
            "priority": data.priority,
            "done": False,
        }
        with self._lock:
            self._items[entity["id"]] = entity
        return entity.copy()

    def get(self, todo_id: UUID) -> Optional[TodoEntity]:
        with self._lock:
            item = self._items.get(todo_id)
            return None if item is None else item.copy()

    def update_fields(self, todo_id: UUID, data: TodoUpdate) -> Optional[TodoEntity]:
        with self._lock:
            existing = self._items.get(todo_id)
            if existing is None:
                return None
            updated = apply_update(existing, data)
            self._items[todo_id] = updated
            return updated.copy()

    def delete(self, todo_id: UUID) -> bool:
        with self._lock:
            return self._items.pop(todo_id, None) is not None

    def _scan(self, predicate: Predicate, cancel: Optional[CancellationToken]) -> Iterator[TodoEntity]:
        with self._lock:
            items = list(self._items.values())
        for item in items:
            check_cancelled(cancel)
            if predicate(item):
                yield item

    def query(
        self,
        predicate: Predicate,
        offset: int = 0,
        limit: Optional[int] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> List[TodoEntity]:
        start = max(offset, 0)
        end = None if limit is None else start + max(limit, 0)
        matched = list(self._scan(predicate, cancel))
        # Return copies to avoid external mutation
        return [t.copy() for t in matched[start:end]]

    def count(self, predicate: Predicate, cancel: Optional[CancellationToken] = None) -> int:
        return sum(1 for _ in self._scan(predicate, cancel))


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_repository() -> Repository:
    """
    Return the process-wide repository configured by settings.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository at SQLITE_DB_PATH
    The instance is created on first use and reused afterwards.
    """
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteRepository

        logger.info("Using SQLite todo store at %s", settings.sqlite_db_path)
        return SQLiteRepository(settings.sqlite_db_path)
    logger.info("Using in-memory todo store")
    return InMemoryRepository()
