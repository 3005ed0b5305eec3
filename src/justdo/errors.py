from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


# PUBLIC_INTERFACE
class ErrorCode(str, Enum):
    """Machine-readable error codes returned in error responses."""

    DB_CONN = "e_db_conn"
    INVALID_DATA = "e_invalid_data"
    OBJECT_NOT_FOUND = "e_object_not_found"
    CANCELLED = "e_cancelled"
    UNKNOWN = "e_unknown"


# PUBLIC_INTERFACE
class ErrorResponse(BaseModel):
    """A single error entry."""

    error: ErrorCode = Field(..., description="Error code")
    message: str = Field(..., description="Human readable error message")


# PUBLIC_INTERFACE
class ErrorEnvelope(BaseModel):
    """Body of every non-2xx response produced by this service."""

    errors: List[ErrorResponse] = Field(..., description="One entry per problem")


# PUBLIC_INTERFACE
class RestException(Exception):
    """
    An error with a known HTTP status and a list of error entries.

    Raised by route handlers; rendered by the exception handler in main.
    """

    def __init__(self, status_code: int, errors: Optional[List[ErrorResponse]] = None) -> None:
        super().__init__(status_code, errors)
        self.status_code = status_code
        self.errors = errors or []


# PUBLIC_INTERFACE
class StoreError(Exception):
    """The record store failed. The message is for logs only, never for clients."""


# PUBLIC_INTERFACE
def not_found(todo_id: object) -> RestException:
    """Build the 404 raised when a todo id does not exist."""
    return RestException(
        404,
        [
            ErrorResponse(
                error=ErrorCode.OBJECT_NOT_FOUND,
                message=f"Cannot find todo with ID [{todo_id}]",
            )
        ],
    )
