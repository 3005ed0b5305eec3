from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple

from ..models import TodoEntity
from .cancellation import CancellationToken
from .filters import Predicate
from .specs import PageSpec

if TYPE_CHECKING:
    from ..repositories import Repository


@dataclass(frozen=True)
class Page:
    """One slice of a filtered view plus the size of the whole view."""

    items: Tuple[TodoEntity, ...]
    total: int


# PUBLIC_INTERFACE
def paginate(
    store: "Repository",
    predicate: Predicate,
    page: PageSpec,
    cancel: Optional[CancellationToken] = None,
) -> Page:
    """
    Count the filtered view and read one page of it.

    The slice starts at page.index * page.size and holds at most page.size
    records in the store's underlying sequence; ordering happens later and
    only rearranges what is already on the page.

    Count and slice are two reads of the same predicate within one read
    scope of the store. Concurrent writes between them may make `total`
    disagree with the slice; no stronger isolation is attempted.
    """
    with store.read() as reader:
        total = reader.count(predicate, cancel=cancel)
        items = reader.query(predicate, offset=page.offset, limit=page.size, cancel=cancel)
    return Page(items=tuple(items), total=total)
