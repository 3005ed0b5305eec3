from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TypedDict
from uuid import UUID


# PUBLIC_INTERFACE
class TodoPriority(str, Enum):
    """Priority of a todo item. Wire values are the lowercase tokens."""

    NOT_SET = "not_set"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# PUBLIC_INTERFACE
class TodoEntity(TypedDict):
    """
    A lightweight domain model representing a Todo item as held by the
    record store backends.

    Fields:
    - id: Globally unique identifier (UUID4)
    - name: Short name of the todo
    - due_date_utc: Timezone-aware due datetime, always in UTC
    - priority: TodoPriority
    - done: Boolean completion flag
    """

    id: UUID
    name: str
    due_date_utc: datetime
    priority: TodoPriority
    done: bool


# PUBLIC_INTERFACE
def project(entity: TodoEntity) -> TodoEntity:
    """Return the public projection of a stored record (a detached copy)."""
    return {
        "id": entity["id"],
        "name": entity["name"],
        "due_date_utc": entity["due_date_utc"],
        "priority": entity["priority"],
        "done": entity["done"],
    }
