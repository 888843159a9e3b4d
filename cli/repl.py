"""
SQLExecutor Interactive REPL
============================
Steps through a script one statement at a time under operator control.

Features:
  - Each statement is displayed with its script line range before running
  - Execute, skip, read more, edit, or run until the first error
  - BEGIN / COMMIT / ROLLBACK and ad-hoc statements at any time
  - A failed statement stays current so it can be retried, edited or skipped
  - Optional screen clear (with an ENTER gate) between statements
  - Persistent readline history (~/.sqlexecutor_history)
"""

import logging
import os
import sys
from dataclasses import dataclass
from typing import Optional, TextIO

from cli.commands import HELP_TEXT, Command, CommandType, parse_command
from cli.config import ExecutorConfig
from cli.editor import EditorBridge, EditorError
from cli.renderer import Renderer
from cli.session import ExecutionError, Session, TransactionControlError
from parser.segmenter import ScriptReadError, Segmenter, StatementBuffer, query_is_blank

logger = logging.getLogger(__name__)


# ─── History ────────────────────────────────────────────────────────
HISTORY_MAX = 1000

try:
    import readline
    _HAS_READLINE = True
except ImportError:
    try:
        import pyreadline3 as readline
        _HAS_READLINE = True
    except ImportError:
        _HAS_READLINE = False


def _load_history(path: Optional[str]):
    if _HAS_READLINE and path and os.path.exists(path):
        try:
            readline.read_history_file(path)
        except OSError as e:
            logger.debug("Could not read history file %s: %s", path, e)


def _save_history(path: Optional[str]):
    if _HAS_READLINE and path:
        try:
            readline.set_history_length(HISTORY_MAX)
            readline.write_history_file(path)
        except OSError as e:
            logger.debug("Could not write history file %s: %s", path, e)


# ─── State ──────────────────────────────────────────────────────────

@dataclass
class SessionState:
    stop: bool = False
    read_next: bool = True
    go_until_error: bool = False
    script_complete: bool = False
    first_statement_shown: bool = False


# ─── REPL ───────────────────────────────────────────────────────────

class REPL:
    """
    Supervised replay of one script.

    Usage:
        with open("migrate.sql", newline="") as f:
            repl = REPL(Segmenter(f), Session(conn), ExecutorConfig("migrate.sql"))
            status = repl.run()
    """

    EXECUTE_PROMPT = "> Execute (D/x/g/s/b/r/c/m/e/>/h/q)? "
    COMPLETE_PROMPT = "> Command (D/b/r/c/>/h/q)? "
    AD_HOC_PROMPT = "> "

    # Commands that only make sense while a statement is pending
    _STATEMENT_COMMANDS = frozenset({
        CommandType.SKIP, CommandType.EXTEND, CommandType.EXECUTE,
        CommandType.EDIT, CommandType.RUN_UNTIL_ERROR,
    })

    def __init__(self, segmenter: Segmenter, session: Session,
                 config: ExecutorConfig = None, *,
                 renderer: Renderer = None, editor: EditorBridge = None,
                 cmd_input: TextIO = None, output: TextIO = None,
                 errors: TextIO = None):
        self.segmenter = segmenter
        self.session = session
        self.config = config or ExecutorConfig()
        self.output = output or sys.stdout
        self.errors = errors or sys.stderr
        # None means the terminal: read with input() so readline applies
        self.cmd_input = cmd_input
        self.renderer = renderer or Renderer(
            self.output, self.errors,
            max_col_width=self.config.max_col_width,
            sample_size=self.config.fetch_size,
            newline=self.config.newline,
        )
        self.editor = editor or EditorBridge(self.config.editor)

        self.state = SessionState()
        self.buffer: Optional[StatementBuffer] = None
        self._extend = False

        self._handlers = {
            CommandType.QUIT: self._cmd_quit,
            CommandType.SKIP: self._cmd_skip,
            CommandType.EXTEND: self._cmd_extend,
            CommandType.BEGIN: self._cmd_begin,
            CommandType.ROLLBACK: self._cmd_rollback,
            CommandType.COMMIT: self._cmd_commit,
            CommandType.EXECUTE: self._cmd_execute,
            CommandType.RUN_UNTIL_ERROR: self._cmd_run_until_error,
            CommandType.AD_HOC: self._cmd_ad_hoc,
            CommandType.HELP: self._cmd_help,
            CommandType.EDIT: self._cmd_edit,
            CommandType.REDISPLAY: self._cmd_redisplay,
            CommandType.UNKNOWN: self._cmd_unknown,
        }

    def run(self) -> int:
        """Main loop. Returns 0, or 1 if the script could not be read."""
        if self.cmd_input is None:
            _load_history(self.config.history_file)

        self._print(f"Executing script '{self.config.script_name}'")

        try:
            while not self.state.stop:
                self.step()
        except ScriptReadError as e:
            self.renderer.render_error("Failed to read script file", e)
            return 1
        finally:
            if self.cmd_input is None:
                _save_history(self.config.history_file)
        return 0

    def step(self):
        """One pass: read if needed, display, take a command, dispatch it."""
        state = self.state
        newly_read = state.read_next

        if not state.script_complete and self.segmenter.exhausted:
            self._print("!! Reached end-of-script")

        if state.read_next:
            if self._extend:
                self.buffer = self.segmenter.extend(self.buffer)
            else:
                self.buffer = self.segmenter.next()
            self._extend = False
            state.read_next = False

        # A statement edited down to whitespace after end-of-script also completes it
        exhausted_blank = self.segmenter.exhausted and self.buffer.blank
        if (self.buffer.complete or exhausted_blank) and not state.script_complete:
            state.script_complete = True
            logger.info("Script %s complete", self.config.script_name)

        if state.script_complete:
            state.go_until_error = False
            self._print(f"Script {self.config.script_name} is complete.")
            self._print("")
            prompt = self.COMPLETE_PROMPT
        else:
            if self.config.clear_screen and newly_read:
                self._clear_screen()
            self._display_statement()
            prompt = self.EXECUTE_PROMPT

        if state.go_until_error:
            self.output.write(prompt)
            self._print("")
            command = Command(CommandType.EXECUTE)
        else:
            command = self._read_command(prompt)

        self.dispatch(command)

    def dispatch(self, command: Command):
        if self.state.script_complete and command.kind in self._STATEMENT_COMMANDS:
            logger.debug("Ignoring %s: script is complete", command.kind.name)
            return
        self._handlers[command.kind](command)

    # ─── Display ────────────────────────────────────────────────────

    def _display_statement(self):
        buf = self.buffer
        name = self.config.script_name
        start = buf.start_line.line_number
        if start >= buf.last_line:
            self._print(f"{name}: {start}:")
        else:
            self._print(f"{name}: {start} - {buf.last_line}:")
        text = buf.text
        if text and not text.endswith(("\n", "\r")):
            text += self.config.newline
        self.output.write(text)
        self._print("")

    def _clear_screen(self):
        if not self.state.first_statement_shown:
            # No ENTER gate before the first statement
            self.state.first_statement_shown = True
        else:
            self._print("Press ENTER to continue to the next query...")
            try:
                self._read_line("")
            except KeyboardInterrupt:
                self._print("")
        self.output.write(self.config.clear_sequence)
        self.output.flush()

    # ─── Commands ───────────────────────────────────────────────────

    def _cmd_quit(self, command: Command):
        if self.state.script_complete:
            self._print(f"Finished {self.config.script_name}")
        else:
            start = self.buffer.start_line.line_number if self.buffer else 1
            self._print(f"Quitting at {self.config.script_name}:{start}")
        s = self.session.stats
        self._print(f"Statements executed: {s['statements_executed']}, "
                    f"failed: {s['statements_failed']}")
        self.state.stop = True

    def _cmd_skip(self, command: Command):
        self._print(">>>> Skipping Statement <<<<")
        self.state.read_next = True

    def _cmd_extend(self, command: Command):
        self._extend = True
        self.state.read_next = True

    def _cmd_begin(self, command: Command):
        self._transaction("BEGIN", self.session.begin)

    def _cmd_rollback(self, command: Command):
        self._transaction("ROLLBACK", self.session.rollback)

    def _cmd_commit(self, command: Command):
        self._transaction("COMMIT", self.session.commit)

    def _transaction(self, verb: str, action):
        self._print(f"Executing {verb}...")
        self._flush()
        try:
            action(self.renderer)
        except TransactionControlError as e:
            self.renderer.render_error(f"Failed to {verb} transaction.", e)
        except KeyboardInterrupt:
            self._print("")
            self.renderer.render_error(f"{verb} interrupted.")
        self.state.read_next = False

    def _cmd_execute(self, command: Command):
        self._print(">>>> Executing statement <<<<")
        self._flush()
        try:
            self.session.run(self.buffer.text, self.renderer)
        except ExecutionError as e:
            self.renderer.render_error("Failed to execute statement", e)
            self._halt()
        except KeyboardInterrupt:
            self._print("")
            self.renderer.render_error("Statement interrupted.")
            self._halt()
        else:
            self.state.read_next = True

    def _halt(self):
        """Keep the current statement and hand control back to the operator."""
        self.state.go_until_error = False
        self.state.read_next = False

    def _cmd_run_until_error(self, command: Command):
        self.state.go_until_error = True
        self.state.read_next = False

    def _cmd_ad_hoc(self, command: Command):
        statement = command.text
        if not statement:
            self._print("Enter the SQL statement you'd like to execute:")
            self._print("(All on a single line: statement will be executed after a newline is entered)")
            try:
                statement = self._read_line(self.AD_HOC_PROMPT)
            except KeyboardInterrupt:
                # Ctrl+C abandons the ad-hoc statement
                self._print("")
                statement = None

        if query_is_blank(statement):
            self._print(">>>> No query entered. Ignoring <<<<")
        else:
            self._print(">>>> Executing ad-hoc statement <<<<")
            self._flush()
            try:
                self.session.run(statement, self.renderer)
            except ExecutionError as e:
                self.renderer.render_error("Failed to execute ad-hoc statement", e)
            except KeyboardInterrupt:
                self._print("")
                self.renderer.render_error("Ad-hoc statement interrupted.")
        self.state.read_next = False

    def _cmd_help(self, command: Command):
        self._print(HELP_TEXT)
        self.state.read_next = False

    def _cmd_edit(self, command: Command):
        try:
            edited = self.editor.edit_text(self.buffer.text)
        except EditorError as e:
            self.renderer.render_error("Could not edit statement", e)
        else:
            self.buffer = self.buffer.replaced(edited)
        self.state.read_next = False

    def _cmd_redisplay(self, command: Command):
        self.state.read_next = False

    def _cmd_unknown(self, command: Command):
        self._print(f"Error: unrecognized command: {command.raw}", stream=self.errors)
        self.state.read_next = False

    # ─── I/O Helpers ────────────────────────────────────────────────

    def _read_command(self, prompt: str) -> Command:
        try:
            line = self._read_line(prompt)
        except KeyboardInterrupt:
            # Ctrl+C at the prompt: just show the statement again
            self._print("")
            return Command(CommandType.REDISPLAY)
        return parse_command(line)

    def _read_line(self, prompt: str = "") -> Optional[str]:
        """One line of operator input without its terminator, None at EOF."""
        self._flush()
        if self.cmd_input is None:
            try:
                return input(prompt)
            except EOFError:
                return None
        self.output.write(prompt)
        self._flush()
        line = self.cmd_input.readline()
        if line == "":
            return None
        return line.rstrip("\r\n")

    def _flush(self):
        self.output.flush()
        self.errors.flush()

    def _print(self, text: str, stream: TextIO = None):
        (stream or self.output).write(text + self.config.newline)
