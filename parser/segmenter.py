"""
SQLExecutor Statement Segmenter
===============================
Splits a line-oriented script into statement buffers.

Rules:
  - A statement ends on the first line whose trimmed text ends with ';'
  - End of input also ends a statement (missing trailing ';')
  - Lines keep their own terminators, so buffers concatenate back to the script
  - A blank buffer produced at end of input marks the script complete
  - "extend" keeps reading into a copy of an existing buffer, for statements
    whose ';' is not the real terminator (procedure bodies, etc.)
"""

import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional, TextIO, Tuple

logger = logging.getLogger(__name__)


class ScriptReadError(Exception):
    """The script file could not be read. Fatal for the session."""
    pass


def query_is_blank(text: Optional[str]) -> bool:
    """True if text is None, empty, or only whitespace code points."""
    if text is None:
        return True
    # str iteration is per code point; isspace() covers the Unicode Zs/Zl/Zp
    # categories as well as ASCII whitespace.
    return all(ch.isspace() for ch in text)


@dataclass(frozen=True)
class ScriptPosition:
    line_number: int = 1

    def __post_init__(self):
        if self.line_number < 1:
            raise ValueError(f"line number must be >= 1, got {self.line_number}")

    def advance(self, count: int = 1) -> "ScriptPosition":
        return ScriptPosition(self.line_number + count)


@dataclass(frozen=True)
class StatementBuffer:
    """
    One statement's worth of script text.

    start_line is the line number at which reading began; end_line is the
    line number after the last line consumed, so an empty buffer has
    start_line == end_line.
    """
    lines: Tuple[str, ...] = field(default_factory=tuple)
    start_line: ScriptPosition = field(default_factory=ScriptPosition)
    end_line: ScriptPosition = field(default_factory=ScriptPosition)
    complete: bool = False

    @property
    def text(self) -> str:
        return "".join(self.lines)

    @property
    def blank(self) -> bool:
        return query_is_blank(self.text)

    @property
    def last_line(self) -> int:
        """Number of the last line consumed into this buffer."""
        return self.end_line.line_number - 1

    def replaced(self, text: str) -> "StatementBuffer":
        """New buffer with the same line range holding different text."""
        return StatementBuffer(
            lines=tuple(text.splitlines(keepends=True)),
            start_line=self.start_line,
            end_line=self.end_line,
            complete=False,
        )


class Segmenter:
    """
    Reads statements from a text stream one at a time.

    Usage:
        seg = Segmenter(open("script.sql", newline=""), skip_lines=3)
        buf = seg.next()
        while not buf.complete:
            ...
            buf = seg.next()
    """

    def __init__(self, reader: TextIO, skip_lines: int = 0):
        if skip_lines < 0:
            raise ValueError("skip_lines must not be negative")
        self.reader = reader
        self.skip_lines = skip_lines
        self.position = ScriptPosition()
        self.exhausted = False
        self._skipped = False

    # ─── Public API ─────────────────────────────────────────────────

    def next(self) -> StatementBuffer:
        """Read the next statement into a fresh buffer."""
        self._skip_leading()
        start = self.position
        lines = self._read_statement_lines()
        return self._make_buffer(lines, start)

    def extend(self, buffer: StatementBuffer) -> StatementBuffer:
        """Read more lines onto a copy of buffer, up to the next terminator."""
        self._skip_leading()
        lines = buffer.lines + self._read_statement_lines()
        return self._make_buffer(lines, buffer.start_line)

    def __iter__(self) -> Iterator[StatementBuffer]:
        """Yield buffers up to and including the completing one."""
        while True:
            buf = self.next()
            yield buf
            if buf.complete:
                return

    # ─── Internal ───────────────────────────────────────────────────

    def _make_buffer(self, lines: Tuple[str, ...], start: ScriptPosition) -> StatementBuffer:
        text_blank = query_is_blank("".join(lines))
        return StatementBuffer(
            lines=lines,
            start_line=start,
            end_line=self.position,
            complete=self.exhausted and text_blank,
        )

    def _skip_leading(self):
        if self._skipped:
            return
        self._skipped = True
        for _ in range(self.skip_lines):
            if self._readline() is None:
                break
        if self.skip_lines:
            logger.debug("Skipped %d line(s); resuming at line %d",
                         self.position.line_number - 1, self.position.line_number)

    def _read_statement_lines(self) -> Tuple[str, ...]:
        lines = []
        while True:
            line = self._readline()
            if line is None:
                break
            lines.append(line)
            if line.strip().endswith(";"):
                break
        return tuple(lines)

    def _readline(self) -> Optional[str]:
        """One line including its terminator, or None at end of input."""
        if self.exhausted:
            return None
        try:
            line = self.reader.readline()
        except (OSError, UnicodeDecodeError) as e:
            raise ScriptReadError(f"Failed to read script at line "
                                  f"{self.position.line_number}: {e}") from e
        if line == "":
            self.exhausted = True
            logger.debug("End of script at line %d", self.position.line_number)
            return None
        self.position = self.position.advance()
        return line
