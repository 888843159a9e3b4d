"""
SQLExecutor Editor Bridge
=========================
Round-trips a statement through an external text editor.

The statement is written to a temporary file, the editor runs with the
terminal's stdin/stdout/stderr, and the file is read back once the editor
exits. The editor command comes from the argument, $VISUAL, or $EDITOR.
"""

import logging
import os
import shlex
import subprocess
import tempfile
from typing import List, Sequence, Union

logger = logging.getLogger(__name__)


class EditorError(Exception):
    """Editing failed; the caller keeps the original text."""
    pass


class EditorBridge:

    def __init__(self, command: Union[str, Sequence[str], None] = None,
                 encoding: str = "utf-8"):
        self.command = command
        self.encoding = encoding

    def resolve_command(self) -> List[str]:
        command = self.command
        if command is None:
            command = os.environ.get("VISUAL") or os.environ.get("EDITOR")
        if isinstance(command, str):
            command = shlex.split(command)
        if not command:
            raise EditorError("Cannot determine editor (set $EDITOR)")
        return list(command)

    def edit_text(self, text: str) -> str:
        """Return the edited text. Raises EditorError on failure."""
        argv = self.resolve_command()

        try:
            fd, path = tempfile.mkstemp(prefix="sqlexecutor.query.", suffix=".sql")
        except OSError as e:
            raise EditorError(f"Could not create query file: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding=self.encoding, newline="") as f:
                f.write(text)

            try:
                result = subprocess.run(argv + [path])
            except (OSError, subprocess.SubprocessError) as e:
                raise EditorError(f"Could not run editor {argv[0]!r}: {e}") from e

            if result.returncode != 0:
                logger.warning("Editor exited with status %d", result.returncode)
            else:
                logger.debug("Editor exited with status 0")

            with open(path, "r", encoding=self.encoding, newline="") as f:
                return f.read()
        except (OSError, UnicodeError) as e:
            raise EditorError(f"Could not edit query: {e}") from e
        finally:
            try:
                os.remove(path)
            except OSError as e:
                logger.warning("Unable to delete query file %s: %s", path, e)
