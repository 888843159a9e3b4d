"""
SQLExecutor Result Renderer
===========================
Formats statement outcomes as bordered ASCII tables.

Features:
  - Width sampling: the first batch of rows is buffered to size columns,
    then the remaining rows stream through with those widths (single pass)
  - Column width from driver display size, label, and sampled values,
    with configurable cap
  - NULL displayed as the literal text NULL
  - Row count + elapsed time footer
  - Update-count summary for statements without a result set

Values are never truncated. A value longer than the cap, or a longer value
arriving after the sample, is written in full and overruns the border.
"""

import sys
from itertools import islice
from typing import List, Optional, Sequence, TextIO

from cli.config import DEFAULT_FETCH_SIZE, DEFAULT_MAX_COL_WIDTH
from cli.session import ColumnSpec, QueryOutcome, RowSet, UpdateCount

NULL_TEXT = "NULL"


class Renderer:
    """
    Writes outcomes to an output stream; failures go to the error stream.
    """

    def __init__(self, output: TextIO = None, errors: TextIO = None, *,
                 max_col_width: int = DEFAULT_MAX_COL_WIDTH,
                 sample_size: int = DEFAULT_FETCH_SIZE,
                 newline: str = "\n"):
        self.output = output or sys.stdout
        self.errors = errors or sys.stderr
        self.max_col_width = max_col_width
        self.sample_size = max(1, sample_size)
        self.newline = newline

    # ─── Public API ─────────────────────────────────────────────────

    def render(self, outcome: QueryOutcome) -> int:
        """Render an outcome. Returns the row count or update count."""
        if isinstance(outcome, UpdateCount):
            return self.render_update(outcome)
        if isinstance(outcome, RowSet):
            return self.render_rows(outcome)
        raise TypeError(f"Cannot render {type(outcome).__name__}")

    def render_update(self, outcome: UpdateCount) -> int:
        noun = "row" if outcome.count == 1 else "rows"
        self._print(f"Query OK, {outcome.count} {noun} affected ({outcome.elapsed_ms}ms)")
        self._print("")
        return outcome.count

    def render_rows(self, outcome: RowSet) -> int:
        count = 0
        rows = iter(outcome.rows)
        # Buffer first batch for width calculation
        buffer = list(islice(rows, self.sample_size))

        if buffer:
            widths = self._calculate_widths(outcome.columns, buffer)
            border = self._border(widths)

            self._print(border)
            self._print_row(widths, [c.label for c in outcome.columns])
            self._print(border)

            for row in buffer:
                self._print_row(widths, row)
                count += 1

            # Stream remaining rows
            for row in rows:
                self._print_row(widths, row)
                count += 1

            self._print(border)

        noun = "row" if count == 1 else "rows"
        self._print(f"{count} {noun} in set ({outcome.elapsed_ms}ms)")
        self._print("")
        return count

    def render_error(self, message: str, error: Optional[BaseException] = None):
        """Report a recoverable failure: status line, then the driver message."""
        self._print(message, stream=self.errors)
        if error is not None:
            detail = getattr(error, "driver_message", None) or str(error)
            self._print(f"  {type(error).__name__}: {detail}", stream=self.errors)

    # ─── Table Helpers ──────────────────────────────────────────────

    def _calculate_widths(self, columns: List[ColumnSpec],
                          buffer: List[Sequence[Optional[str]]]) -> List[int]:
        widths = []
        for i, col in enumerate(columns):
            longest = 0
            for row in buffer:
                if i < len(row):
                    value = row[i]
                    longest = max(longest, len(NULL_TEXT if value is None else str(value)))
            widths.append(col.display_width(self.max_col_width, longest))
        return widths

    def _border(self, widths: List[int]) -> str:
        """+----+------+ separator line."""
        return "+" + "".join("-" * (w + 2) + "+" for w in widths)

    def _print_row(self, widths: List[int], values):
        self.output.write("|")
        for width, value in zip(widths, values):
            self._write_field(NULL_TEXT if value is None else value, width)
        self.output.write(self.newline)

    def _write_field(self, text: str, width: int):
        """Write ' text |' left-justified to width; never truncates."""
        self.output.write(f" {text:<{width}} |")

    def _print(self, text: str, stream: TextIO = None):
        (stream or self.output).write(text + self.newline)
