"""
SQLExecutor Configuration
=========================
Immutable settings shared by the REPL controller and the renderer.
"""

import os
from dataclasses import dataclass
from typing import Optional

# ANSI: clear the entire screen, then home the cursor to [1,1]
CLEAR_SCREEN = "\x1b[2J\x1b[H"

DEFAULT_MAX_COL_WIDTH = 4096
DEFAULT_FETCH_SIZE = 100
HISTORY_FILE = os.path.expanduser("~/.sqlexecutor_history")


@dataclass(frozen=True)
class ExecutorConfig:
    script_name: str = "<script>"
    skip_lines: int = 0
    clear_screen: bool = False
    clear_sequence: str = CLEAR_SCREEN
    max_col_width: int = DEFAULT_MAX_COL_WIDTH
    fetch_size: int = DEFAULT_FETCH_SIZE
    editor: Optional[str] = None
    history_file: Optional[str] = HISTORY_FILE
    newline: str = "\n"

    def __post_init__(self):
        if self.skip_lines < 0:
            raise ValueError("skip_lines must not be negative")
        if self.max_col_width < 1:
            raise ValueError("max_col_width must be positive")
        if self.fetch_size < 1:
            raise ValueError("fetch_size must be positive")
