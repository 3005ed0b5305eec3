from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Generator, Iterator, List, Optional
from uuid import UUID, uuid4

from .errors import StoreError
from .models import TodoEntity, TodoPriority
from .query.cancellation import CancellationToken, OperationCancelled, check_cancelled
from .query.filters import Predicate
from .repositories import Repository, StoreReader, apply_update
from .schemas import TodoCreate, TodoUpdate

logger = logging.getLogger(__name__)

# Largest LIMIT/OFFSET value SQLite binds (signed 64-bit)
_MAX_ROWS = 2**63 - 1
# Number of SQLite VM instructions between cancellation checks.
_PROGRESS_STEPS = 1000


@dataclass(frozen=True)
class _Cols:
    table: str = "todos"
    seq: str = "seq"
    id: str = "id"
    name: str = "name"
    due_date_utc: str = "due_date_utc"
    priority: str = "priority"
    done: str = "done"


_COLS = _Cols()


def _dt_to_db(value: datetime) -> str:
    # Naive UTC ISO text, zero-padded to four year digits so date() can parse it
    return value.astimezone(timezone.utc).replace(tzinfo=None).isoformat(sep=" ", timespec="microseconds")


def _dt_from_db(value: str) -> datetime:
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


def _contains_ci(haystack: Optional[str], needle: Optional[str]) -> int:
    if haystack is None or needle is None:
        return 0
    return 1 if needle.casefold() in haystack.casefold() else 0


def _row_to_entity(row: sqlite3.Row) -> TodoEntity:
    return {
        "id": UUID(row[_COLS.id]),
        "name": str(row[_COLS.name]),
        "due_date_utc": _dt_from_db(row[_COLS.due_date_utc]),
        "priority": TodoPriority(row[_COLS.priority]),
        "done": bool(row[_COLS.done]),
    }


@contextmanager
def _translate_errors(cancel: Optional[CancellationToken] = None) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as exc:
        # An interrupted statement surfaces as OperationalError
        if cancel is not None and cancel.cancelled:
            raise OperationCancelled("Query was cancelled") from exc
        raise StoreError(f"SQLite operation failed: {exc}") from exc


class _Reader:
    """Runs reads on one open connection, inside the caller's transaction."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @contextmanager
    def _interruptible(self, cancel: Optional[CancellationToken]) -> Iterator[None]:
        check_cancelled(cancel)
        if cancel is not None:
            self._conn.set_progress_handler(lambda: 1 if cancel.cancelled else 0, _PROGRESS_STEPS)
        try:
            with _translate_errors(cancel):
                yield
        finally:
            if cancel is not None:
                self._conn.set_progress_handler(None, _PROGRESS_STEPS)

    def query(
        self,
        predicate: Predicate,
        offset: int = 0,
        limit: Optional[int] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> List[TodoEntity]:
        where_sql, params = predicate.to_sql()
        # LIMIT -1 means no limit in SQLite
        page_params = [
            -1 if limit is None else min(max(limit, 0), _MAX_ROWS),
            min(max(offset, 0), _MAX_ROWS),
        ]
        with self._interruptible(cancel):
            rows = self._conn.execute(
                f"""
                SELECT * FROM {_COLS.table}
                {where_sql}
                ORDER BY {_COLS.seq}
                LIMIT ? OFFSET ?
                """,
                [*params, *page_params],
            ).fetchall()
        return [_row_to_entity(r) for r in rows]

    def count(self, predicate: Predicate, cancel: Optional[CancellationToken] = None) -> int:
        where_sql, params = predicate.to_sql()
        with self._interruptible(cancel):
            count_row = self._conn.execute(
                f"SELECT COUNT(*) AS cnt FROM {_COLS.table} {where_sql}", params
            ).fetchone()
        return int(count_row["cnt"]) if count_row else 0


class SQLiteRepository(Repository):
    """
    Lightweight SQLite repository implementing the Repository interface.
    """

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        with _translate_errors():
            self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.create_function("contains_ci", 2, _contains_ci, deterministic=True)
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.seq} INTEGER PRIMARY KEY AUTOINCREMENT,
                    {_COLS.id} TEXT NOT NULL UNIQUE,
                    {_COLS.name} TEXT NOT NULL,
                    {_COLS.due_date_utc} TEXT NOT NULL,
                    {_COLS.priority} TEXT NOT NULL DEFAULT '{TodoPriority.NOT_SET.value}',
                    {_COLS.done} INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_done ON {_COLS.table}({_COLS.done})"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_due ON {_COLS.table}({_COLS.due_date_utc})"
            )
        logger.debug("SQLite todo store ready at %s", self._db_path)

    def _select(self, conn: sqlite3.Connection, todo_id: UUID) -> Optional[sqlite3.Row]:
        return conn.execute(
            f"SELECT * FROM {_COLS.table} WHERE {_COLS.id} = ?", (str(todo_id),)
        ).fetchone()

    def insert(self, data: TodoCreate) -> TodoEntity:
        new_id = uuid4()
        with _translate_errors(), self._conn() as conn:
            conn.execute(
                f"""
                INSERT INTO {_COLS.table} ({_COLS.id}, {_COLS.name}, {_COLS.due_date_utc},
                    {_COLS.priority}, {_COLS.done})
                VALUES (?, ?, ?, ?, 0)
                """,
                (str(new_id), data.name, _dt_to_db(data.due_date), data.priority.value),
            )
            row = self._select(conn, new_id)
            assert row is not None
            return _row_to_entity(row)

    def get(self, todo_id: UUID) -> Optional[TodoEntity]:
        with _translate_errors(), self._conn() as conn:
            row = self._select(conn, todo_id)
            return _row_to_entity(row) if row else None

    def update_fields(self, todo_id: UUID, data: TodoUpdate) -> Optional[TodoEntity]:
        with _translate_errors(), self._conn() as conn:
            row = self._select(conn, todo_id)
            if not row:
                return None
            updated = apply_update(_row_to_entity(row), data)
            conn.execute(
                f"""
                UPDATE {_COLS.table}
                SET {_COLS.name} = ?, {_COLS.due_date_utc} = ?, {_COLS.priority} = ?, {_COLS.done} = ?
                WHERE {_COLS.id} = ?
                """,
                (
                    updated["name"],
                    _dt_to_db(updated["due_date_utc"]),
                    TodoPriority(updated["priority"]).value,
                    1 if updated["done"] else 0,
                    str(todo_id),
                ),
            )
            row2 = self._select(conn, todo_id)
            assert row2 is not None
            return _row_to_entity(row2)

    def delete(self, todo_id: UUID) -> bool:
        with _translate_errors(), self._conn() as conn:
            cur = conn.execute(f"DELETE FROM {_COLS.table} WHERE {_COLS.id} = ?", (str(todo_id),))
            return cur.rowcount > 0

    @contextmanager
    def read(self) -> Iterator[StoreReader]:
        """
        Run the enclosed reads in one deferred transaction on one connection.
        This gives the reads whatever consistency SQLite provides for a single
        transaction; it does not serialize against concurrent writers.
        """
        with _translate_errors(), self._conn() as conn:
            conn.execute("BEGIN")
            yield _Reader(conn)

    def query(
        self,
        predicate: Predicate,
        offset: int = 0,
        limit: Optional[int] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> List[TodoEntity]:
        with self.read() as reader:
            return reader.query(predicate, offset=offset, limit=limit, cancel=cancel)

    def count(self, predicate: Predicate, cancel: Optional[CancellationToken] = None) -> int:
        with self.read() as reader:
            return reader.count(predicate, cancel=cancel)
