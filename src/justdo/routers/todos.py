from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, status

from ..errors import ErrorEnvelope, not_found
from ..query import CancellationToken, list_todos, list_todos_paged
from ..repositories import Repository, get_repository
from ..schemas import (
    TodoCreate,
    TodoEnvelope,
    TodoListEnvelope,
    TodoListRequest,
    TodoOut,
    TodoPagedListEnvelope,
    TodoPagedListRequest,
    TodoUpdate,
)
from ..settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/todos",
    tags=["todos"],
)

_ERROR_RESPONSES = {
    400: {"model": ErrorEnvelope, "description": "Request validation failed"},
    500: {"model": ErrorEnvelope, "description": "Error processing request"},
}


def _get_repo(repo: Repository = Depends(get_repository)) -> Repository:
    """
    Dependency wrapper for repository to keep signatures clean.
    """
    return repo


def _get_cancellation() -> CancellationToken:
    """
    One cancellation token per request, expiring after QUERY_TIMEOUT_SECONDS.
    """
    return CancellationToken(timeout=get_settings().query_timeout_seconds)


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=TodoOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Todo",
    description="Create a new Todo item and return the created resource. The due date must be in UTC.",
    responses={201: {"description": "Todo created successfully"}, **_ERROR_RESPONSES},
)
def create_todo(payload: TodoCreate, repo: Repository = Depends(_get_repo)) -> TodoOut:
    """
    Create a new Todo.
    """
    created = repo.insert(payload)
    logger.info("Created todo %s", created["id"])
    return TodoOut.from_entity(created)


# PUBLIC_INTERFACE
@router.post(
    "/query/list",
    response_model=TodoListEnvelope,
    summary="List Todos",
    description=(
        "List every todo matching the filters, grouped by exact due date.\n\n"
        "- filters.dueDate.from / to: inclusive bounds, compared by calendar day (UTC)\n"
        "- filters.name: case-insensitive substring\n"
        "- filters.done: 'done' (default), 'not_done' or 'all'\n"
        "- groupOrder: only 'dueDateUtc' is supported; groups default to descending\n"
        "- todoOrder: any of 'name', 'done', 'dueDateUtc'; unknown fields are ignored and "
        "the default order is done, due date, name ascending"
    ),
    responses={200: {"description": "Todo list"}, **_ERROR_RESPONSES},
)
def query_list(
    payload: Optional[TodoListRequest] = Body(default=None),
    repo: Repository = Depends(_get_repo),
    cancel: CancellationToken = Depends(_get_cancellation),
) -> TodoListEnvelope:
    """
    List todos grouped by due date.
    """
    query = (payload or TodoListRequest()).to_query()
    result = list_todos(repo, query, cancel=cancel)
    return TodoListEnvelope.from_result(result)


# PUBLIC_INTERFACE
@router.post(
    "/query/paged",
    response_model=TodoPagedListEnvelope,
    summary="List Todos (paged)",
    description=(
        "Same as the list query, with zero-based `page` (default 0) and `itemsPerPage` "
        "(default 25, max 1000). The page is cut before grouping and ordering; "
        "`totalItems` counts every todo matching the filters."
    ),
    responses={200: {"description": "Todo paged list"}, **_ERROR_RESPONSES},
)
def query_paged(
    payload: Optional[TodoPagedListRequest] = Body(default=None),
    repo: Repository = Depends(_get_repo),
    cancel: CancellationToken = Depends(_get_cancellation),
) -> TodoPagedListEnvelope:
    """
    List one page of todos grouped by due date, with paging metadata.
    """
    query = (payload or TodoPagedListRequest()).to_query()
    result = list_todos_paged(repo, query, cancel=cancel)
    return TodoPagedListEnvelope.from_result(result)


# PUBLIC_INTERFACE
@router.get(
    "/{todo_id}",
    response_model=TodoEnvelope,
    summary="Get Todo",
    description="Get a single Todo item by ID.",
    responses={
        200: {"description": "Todo data"},
        404: {"model": ErrorEnvelope, "description": "Todo not found"},
        **_ERROR_RESPONSES,
    },
)
def get_todo(todo_id: UUID, repo: Repository = Depends(_get_repo)) -> TodoEnvelope:
    """
    Retrieve a single Todo item by its ID.
    """
    item = repo.get(todo_id)
    if not item:
        raise not_found(todo_id)
    return TodoEnvelope(todo=TodoOut.from_entity(item))


def _update(todo_id: UUID, payload: TodoUpdate, repo: Repository) -> TodoOut:
    updated = repo.update_fields(todo_id, payload)
    if not updated:
        raise not_found(todo_id)
    logger.info("Updated todo %s", todo_id)
    return TodoOut.from_entity(updated)


# PUBLIC_INTERFACE
@router.patch(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Update Todo",
    description=(
        "Partially update fields of a Todo item. Omitted fields keep their value; "
        "a due date with a non-UTC offset is converted to UTC."
    ),
    responses={
        200: {"description": "Todo updated"},
        404: {"model": ErrorEnvelope, "description": "Todo not found"},
        **_ERROR_RESPONSES,
    },
)
def patch_todo(todo_id: UUID, payload: TodoUpdate, repo: Repository = Depends(_get_repo)) -> TodoOut:
    """
    Partial update of a Todo item.
    """
    return _update(todo_id, payload, repo)


# PUBLIC_INTERFACE
@router.put(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Update Todo (PUT)",
    description="Same partial-update semantics as PATCH, kept for clients that only send PUT.",
    responses={
        200: {"description": "Todo updated"},
        404: {"model": ErrorEnvelope, "description": "Todo not found"},
        **_ERROR_RESPONSES,
    },
)
def put_todo(todo_id: UUID, payload: TodoUpdate, repo: Repository = Depends(_get_repo)) -> TodoOut:
    return _update(todo_id, payload, repo)


# PUBLIC_INTERFACE
@router.delete(
    "/{todo_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Todo",
    description="Delete a Todo item by ID.",
    responses={
        204: {"description": "Todo deleted"},
        404: {"model": ErrorEnvelope, "description": "Todo not found"},
        **_ERROR_RESPONSES,
    },
)
def delete_todo(todo_id: UUID, repo: Repository = Depends(_get_repo)) -> None:
    """
    Delete a Todo. Returns 204 on success, 404 if not found.
    """
    ok = repo.delete(todo_id)
    if not ok:
        raise not_found(todo_id)
    logger.info("Deleted todo %s", todo_id)
    return None
