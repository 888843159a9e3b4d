"""
SQLExecutor Session
===================
Execution adapter over a PEP 249 (DB-API 2.0) connection.

Owns:
  - The connection supplied by the caller (one statement in flight at a time)
  - Cursor lifetime: every cursor is closed on success and failure paths
  - Statement statistics

Outcomes:
  - Statement produced a result set (cursor.description set) → RowSet
  - Otherwise → UpdateCount from cursor.rowcount
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Sequence, Tuple, Type, Union

from cli.config import DEFAULT_FETCH_SIZE

logger = logging.getLogger(__name__)


class ExecutionError(Exception):
    """A statement failed against the connection. Recoverable."""

    def __init__(self, driver_message: str):
        super().__init__(driver_message)
        self.driver_message = driver_message


class TransactionControlError(ExecutionError):
    """BEGIN / COMMIT / ROLLBACK failed. Recoverable."""
    pass


@dataclass(frozen=True)
class ColumnSpec:
    label: str
    reported_width: Optional[int] = None

    def display_width(self, cap: int, longest_value: int = 0) -> int:
        """max(driver width, label length, longest sampled value), capped at cap."""
        width = max(self.reported_width or 0, len(self.label), longest_value)
        return min(width, cap)


@dataclass
class RowSet:
    columns: List[ColumnSpec]
    rows: Iterator[Tuple[Optional[str], ...]]   # single pass
    elapsed_ms: int = 0


@dataclass(frozen=True)
class UpdateCount:
    count: int
    elapsed_ms: int = 0


QueryOutcome = Union[RowSet, UpdateCount]


class Session:
    """
    Statement execution against one connection.

    Usage:
        session = Session(sqlite3.connect(":memory:"))
        with session.execute("SELECT 1") as outcome:
            renderer.render(outcome)
    """

    def __init__(self, connection, *,
                 error_types: Optional[Union[Type[BaseException], Tuple[Type[BaseException], ...]]] = None,
                 fetch_size: int = DEFAULT_FETCH_SIZE,
                 clock=time.perf_counter):
        self.connection = connection
        # DB-API drivers may expose their exception hierarchy on the connection
        self.error_types = error_types or getattr(connection, "Error", Exception)
        self.fetch_size = fetch_size
        self._clock = clock
        self._closed = False

        self.stats = {
            "statements_executed": 0,
            "statements_failed": 0,
        }

    # ─── Query Execution ────────────────────────────────────────────

    @contextmanager
    def execute(self, sql: str) -> Iterator[QueryOutcome]:
        """
        Execute one statement, yielding its outcome.
        Raises ExecutionError on any driver failure, including failures
        while the caller is still consuming rows.
        """
        self._check_closed()
        self.stats["statements_executed"] += 1
        try:
            cursor = self.connection.cursor()
        except self.error_types as e:
            self.stats["statements_failed"] += 1
            raise ExecutionError(str(e)) from e

        try:
            start = self._clock()
            try:
                cursor.execute(sql)
            except self.error_types as e:
                self.stats["statements_failed"] += 1
                raise ExecutionError(str(e)) from e
            elapsed_ms = max(int((self._clock() - start) * 1000), 0)

            if cursor.description is not None:
                columns = [ColumnSpec(_label(d), _display_size(d)) for d in cursor.description]
                yield RowSet(columns, self._iter_rows(cursor), elapsed_ms)
            else:
                # DB-API reports -1 when the count is not determinable
                count = cursor.rowcount if cursor.rowcount and cursor.rowcount > 0 else 0
                yield UpdateCount(count, elapsed_ms)
        finally:
            self._close_cursor(cursor)

    def run(self, sql: str, renderer) -> int:
        """Execute and render in one scoped call. Returns rendered count."""
        with self.execute(sql) as outcome:
            return renderer.render(outcome)

    # ─── Transaction Control ────────────────────────────────────────

    def begin(self, renderer) -> int:
        return self._transaction("BEGIN", renderer)

    def commit(self, renderer) -> int:
        return self._transaction("COMMIT", renderer)

    def rollback(self, renderer) -> int:
        return self._transaction("ROLLBACK", renderer)

    def _transaction(self, verb: str, renderer) -> int:
        try:
            return self.run(f"{verb};", renderer)
        except TransactionControlError:
            raise
        except ExecutionError as e:
            raise TransactionControlError(e.driver_message) from e

    # ─── Internal ───────────────────────────────────────────────────

    def _iter_rows(self, cursor) -> Iterator[Tuple[Optional[str], ...]]:
        """Stream rows in fetch_size batches, stringifying non-NULL values."""
        while True:
            try:
                batch = cursor.fetchmany(self.fetch_size)
            except self.error_types as e:
                self.stats["statements_failed"] += 1
                raise ExecutionError(str(e)) from e
            if not batch:
                return
            for row in batch:
                yield tuple(None if v is None else _to_text(v) for v in row)

    def _close_cursor(self, cursor):
        try:
            cursor.close()
        except self.error_types as e:
            logger.warning("Could not close cursor: %s", e)

    def _check_closed(self):
        if self._closed:
            raise ExecutionError("Session is closed")

    # ─── Lifecycle ──────────────────────────────────────────────────

    def close(self):
        """Close the underlying connection. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        try:
            self.connection.close()
        except self.error_types as e:
            logger.warning("Could not close connection: %s", e)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def _label(description: Sequence[Any]) -> str:
    name = description[0]
    return name if isinstance(name, str) else str(name)


def _display_size(description: Sequence[Any]) -> Optional[int]:
    size = description[2] if len(description) > 2 else None
    return size if isinstance(size, int) and size > 0 else None


def _to_text(value: Any) -> str:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    return str(value)
