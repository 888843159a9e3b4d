"""
SQLExecutor Operator Commands
=============================
Parses one line of operator input into a Command.

Alphabet:
  q           quit                 s / n   skip statement
  m           read more lines      b       BEGIN
  r           ROLLBACK             c       COMMIT
  x / y       execute statement    g       execute until an error
  > [sql]     ad-hoc statement     h / ?   help
  e           edit in $EDITOR      (empty) / d / D   redisplay
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


class CommandType(Enum):
    QUIT = auto()
    SKIP = auto()
    EXTEND = auto()
    BEGIN = auto()
    ROLLBACK = auto()
    COMMIT = auto()
    EXECUTE = auto()
    RUN_UNTIL_ERROR = auto()
    AD_HOC = auto()
    HELP = auto()
    EDIT = auto()
    REDISPLAY = auto()
    UNKNOWN = auto()


@dataclass(frozen=True)
class Command:
    kind: CommandType
    raw: Optional[str] = None
    text: Optional[str] = None   # AD_HOC only, when given inline


_ALPHABET = {
    "q": CommandType.QUIT,
    "s": CommandType.SKIP,
    "n": CommandType.SKIP,
    "m": CommandType.EXTEND,
    "b": CommandType.BEGIN,
    "r": CommandType.ROLLBACK,
    "c": CommandType.COMMIT,
    "x": CommandType.EXECUTE,
    "y": CommandType.EXECUTE,
    "g": CommandType.RUN_UNTIL_ERROR,
    ">": CommandType.AD_HOC,
    "h": CommandType.HELP,
    "?": CommandType.HELP,
    "e": CommandType.EDIT,
    "": CommandType.REDISPLAY,
    "d": CommandType.REDISPLAY,
    "D": CommandType.REDISPLAY,
}


def parse_command(line: Optional[str]) -> Command:
    """
    Map a line of operator input to a Command.
    None means the command stream ended and is treated as quit.
    """
    if line is None:
        return Command(CommandType.QUIT)

    stripped = line.strip()
    kind = _ALPHABET.get(stripped)
    if kind is not None:
        return Command(kind, raw=stripped)

    # "> SELECT 1" carries the ad-hoc statement on the same line
    if stripped.startswith(">"):
        return Command(CommandType.AD_HOC, raw=stripped, text=stripped[1:].strip())

    return Command(CommandType.UNKNOWN, raw=stripped)


HELP_TEXT = """Commands:

  h or ?       Show this help screen
  d (default)  Display the current statement
  x or y       Execute the current statement and continue
  s or n       Skip the current statement
  g            Execute statements until an error is encountered
  b            BEGIN a new transaction (executes BEGIN statement)
  r            ROLLBACK the current transaction (executes a ROLLBACK statement)
  c            COMMIT the current transaction (executes COMMIT statement)
  m            Read more lines of the script into the current statement
  e            Edit the statement using a text editor
  >            Execute an arbitrary ad-hoc statement
  q            Quit
"""
