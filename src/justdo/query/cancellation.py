from __future__ import annotations

import threading
import time
from typing import Optional


class OperationCancelled(Exception):
    """Raised when a query is aborted through its CancellationToken."""


# PUBLIC_INTERFACE
class CancellationToken:
    """
    Cooperative cancellation signal shared by one request's pipeline stages.

    A token is cancelled either explicitly via cancel() or implicitly once its
    optional deadline (seconds from construction) has passed. Stages poll
    `cancelled` or call raise_if_cancelled() between units of work.
    """

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._deadline = None if timeout is None else time.monotonic() + timeout

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
            return True
        return False

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled("Query was cancelled")


# PUBLIC_INTERFACE
def check_cancelled(token: Optional[CancellationToken]) -> None:
    """raise_if_cancelled() for an optional token."""
    if token is not None:
        token.raise_if_cancelled()
