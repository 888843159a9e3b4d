"""
SQLExecutor REPL Tests
======================
Drives the controller with scripted operator input against an in-memory
SQLite database.

Covers:
  - Execute / skip / extend / edit / help / unknown / redisplay
  - Run-until-error auto advance and halt
  - BEGIN / COMMIT / ROLLBACK and ad-hoc statements
  - Completion handling and the screen-clear gate
"""

import io
import os
import sqlite3
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cli.config import CLEAR_SCREEN, ExecutorConfig
from cli.editor import EditorError
from cli.repl import REPL
from cli.session import Session
from parser.segmenter import Segmenter


class FakeEditor:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.seen = []

    def edit_text(self, text):
        self.seen.append(text)
        if self.error:
            raise EditorError(self.error)
        return self.result


class InterruptingInput:
    """Operator input where None entries raise KeyboardInterrupt (Ctrl+C)."""

    def __init__(self, *lines):
        self.lines = list(lines)

    def readline(self):
        if not self.lines:
            return ""
        line = self.lines.pop(0)
        if line is None:
            raise KeyboardInterrupt
        return line + "\n"


class REPLTestBase(unittest.TestCase):

    def setUp(self):
        self.conn = sqlite3.connect(":memory:", isolation_level=None)
        self.session = Session(self.conn)

    def tearDown(self):
        self.session.close()

    def run_script(self, script, commands, *, editor=None, **config):
        self.out = io.StringIO()
        self.err = io.StringIO()
        cfg = ExecutorConfig(script_name="test.sql", history_file=None, **config)
        self.repl = REPL(
            Segmenter(io.StringIO(script, newline=""), skip_lines=cfg.skip_lines),
            self.session,
            cfg,
            editor=editor,
            cmd_input=io.StringIO(commands) if isinstance(commands, str) else commands,
            output=self.out,
            errors=self.err,
        )
        return self.repl.run()

    def query(self, sql):
        return self.conn.execute(sql).fetchall()

    def table_names(self):
        return {r[0] for r in self.query("SELECT name FROM sqlite_master")}


# ═══════════════════════════════════════════════════════════════════════════
# Stepping
# ═══════════════════════════════════════════════════════════════════════════

class TestStepping(REPLTestBase):

    SCRIPT = (
        "CREATE TABLE t (id INTEGER, name TEXT);\n"
        "INSERT INTO t VALUES (1, 'Ann');\n"
        "SELECT id, name\n"
        "  FROM t;\n"
    )

    def test_execute_all(self):
        """x on each statement runs the whole script."""
        status = self.run_script(self.SCRIPT, "x\nx\nx\nq\n")
        out = self.out.getvalue()
        self.assertEqual(status, 0)
        self.assertIn("Executing script 'test.sql'", out)
        self.assertIn("test.sql: 1:", out)
        self.assertIn("test.sql: 3 - 4:", out)
        self.assertIn("Query OK, 1 row affected", out)
        self.assertIn("| 1  | Ann  |", out)
        self.assertIn("1 row in set", out)
        self.assertIn("Script test.sql is complete.", out)
        self.assertIn("Finished test.sql", out)
        self.assertTrue(self.repl.state.script_complete)

    def test_skip_never_executes(self):
        self.run_script(self.SCRIPT, "s\nn\ns\nq\n")
        self.assertEqual(self.session.stats["statements_executed"], 0)
        self.assertEqual(self.out.getvalue().count(">>>> Skipping Statement <<<<"), 3)
        self.assertTrue(self.repl.state.script_complete)
        self.assertNotIn("t", self.table_names())

    def test_failed_statement_is_retained(self):
        """A failure keeps the statement so it can be retried."""
        script = "INSERT INTO t VALUES (1);\n"
        self.run_script(script, "x\n> CREATE TABLE t (id INTEGER);\nx\nq\n")
        self.assertIn("Failed to execute statement", self.err.getvalue())
        self.assertEqual(self.query("SELECT id FROM t"), [(1,)])
        self.assertIn("Finished test.sql", self.out.getvalue())

    def test_quit_mid_script(self):
        self.run_script(self.SCRIPT, "x\nq\n")
        self.assertIn("Quitting at test.sql:2", self.out.getvalue())
        self.assertFalse(self.repl.state.script_complete)

    def test_end_of_command_stream_quits(self):
        status = self.run_script(self.SCRIPT, "")
        self.assertEqual(status, 0)
        self.assertIn("Quitting at test.sql:1", self.out.getvalue())

    def test_skip_lines(self):
        self.run_script(self.SCRIPT, "q\n", skip_lines=2)
        self.assertIn("test.sql: 3 - 4:", self.out.getvalue())

    def test_missing_final_semicolon(self):
        """An unterminated last statement is still offered."""
        self.run_script("CREATE TABLE t (id INTEGER)", "x\nq\n")
        out = self.out.getvalue()
        self.assertIn("!! Reached end-of-script", out)
        self.assertIn("t", self.table_names())
        self.assertIn("Finished test.sql", out)

    def test_extend_reads_trigger_body(self):
        script = (
            "CREATE TABLE t (id INTEGER);\n"
            "CREATE TABLE log (id INTEGER);\n"
            "CREATE TRIGGER trg AFTER INSERT ON t BEGIN\n"
            "  INSERT INTO log VALUES (NEW.id);\n"
            "END;\n"
        )
        self.run_script(script, "x\nx\nm\nx\nq\n")
        self.assertIn("test.sql: 3 - 5:", self.out.getvalue())
        self.assertIn("trg", self.table_names())
        self.assertEqual(self.err.getvalue(), "")


# ═══════════════════════════════════════════════════════════════════════════
# Run Until Error
# ═══════════════════════════════════════════════════════════════════════════

class TestRunUntilError(REPLTestBase):

    def test_runs_to_completion(self):
        script = "CREATE TABLE a (x);\nCREATE TABLE b (x);\nCREATE TABLE c (x);\n"
        self.run_script(script, "g\nq\n")
        self.assertTrue({"a", "b", "c"} <= self.table_names())
        self.assertFalse(self.repl.state.go_until_error)
        self.assertIn("Finished test.sql", self.out.getvalue())

    def test_halts_on_failure(self):
        script = "CREATE TABLE a (x);\nSELECT * FROM missing;\nCREATE TABLE c (x);\n"
        self.run_script(script, "g\nq\n")
        self.assertIn("a", self.table_names())
        self.assertNotIn("c", self.table_names())
        self.assertFalse(self.repl.state.go_until_error)
        self.assertIn("Failed to execute statement", self.err.getvalue())
        self.assertIn("Quitting at test.sql:2", self.out.getvalue())

    def test_resume_after_failure(self):
        script = "SELECT * FROM missing;\nCREATE TABLE c (x);\n"
        self.run_script(script, "g\ns\ng\nq\n")
        self.assertIn("c", self.table_names())
        self.assertTrue(self.repl.state.script_complete)


# ═══════════════════════════════════════════════════════════════════════════
# Transactions and Ad-hoc Statements
# ═══════════════════════════════════════════════════════════════════════════

class TestTransactionsAndAdHoc(REPLTestBase):

    def setUp(self):
        super().setUp()
        self.conn.execute("CREATE TABLE t (id INTEGER)")

    def test_begin_rollback(self):
        self.run_script("INSERT INTO t VALUES (1);\n", "b\nx\nr\nq\n")
        out = self.out.getvalue()
        self.assertIn("Executing BEGIN...", out)
        self.assertIn("Executing ROLLBACK...", out)
        self.assertEqual(self.query("SELECT COUNT(*) FROM t"), [(0,)])

    def test_begin_commit(self):
        self.run_script("INSERT INTO t VALUES (1);\n", "b\nx\nc\nq\n")
        self.assertIn("Executing COMMIT...", self.out.getvalue())
        self.assertEqual(self.query("SELECT COUNT(*) FROM t"), [(1,)])

    def test_failed_commit_keeps_statement(self):
        self.run_script("INSERT INTO t VALUES (1);\n", "c\nq\n")
        self.assertIn("Failed to COMMIT transaction.", self.err.getvalue())
        # Statement was displayed twice and never executed
        self.assertEqual(self.out.getvalue().count("test.sql: 1:"), 2)
        self.assertIn("Quitting at test.sql:1", self.out.getvalue())

    def test_ad_hoc_prompted(self):
        self.run_script("INSERT INTO t VALUES (1);\n", ">\nSELECT 42 AS answer;\nq\n")
        out = self.out.getvalue()
        self.assertIn("Enter the SQL statement you'd like to execute:", out)
        self.assertIn(">>>> Executing ad-hoc statement <<<<", out)
        self.assertIn("| answer |", out)
        # Current statement untouched
        self.assertEqual(self.query("SELECT COUNT(*) FROM t"), [(0,)])
        self.assertIn("Quitting at test.sql:1", out)

    def test_ad_hoc_inline(self):
        self.run_script("SELECT 1;\n", "> INSERT INTO t VALUES (9);\nq\n")
        self.assertEqual(self.query("SELECT id FROM t"), [(9,)])

    def test_ad_hoc_blank_ignored(self):
        self.run_script("SELECT 1;\n", ">\n   \nq\n")
        self.assertIn(">>>> No query entered. Ignoring <<<<", self.out.getvalue())
        self.assertEqual(self.session.stats["statements_executed"], 0)

    def test_ad_hoc_prompt_interrupted(self):
        """Ctrl+C at the ad-hoc prompt abandons the statement, not the session."""
        status = self.run_script("SELECT 1;\n", InterruptingInput(">", None, "q"))
        out = self.out.getvalue()
        self.assertEqual(status, 0)
        self.assertIn(">>>> No query entered. Ignoring <<<<", out)
        self.assertEqual(self.session.stats["statements_executed"], 0)
        self.assertIn("Quitting at test.sql:1", out)

    def test_ad_hoc_failure_reported(self):
        self.run_script("SELECT 1;\n", "> SELECT * FROM nope;\nq\n")
        self.assertIn("Failed to execute ad-hoc statement", self.err.getvalue())

    def test_commands_after_completion(self):
        """Once complete, only non-statement commands act."""
        self.run_script("INSERT INTO t VALUES (1);\n", "x\nx\ns\nm\ng\n> INSERT INTO t VALUES (2);\nq\n")
        self.assertEqual(self.query("SELECT id FROM t ORDER BY id"), [(1,), (2,)])
        self.assertIn("> Command (D/b/r/c/>/h/q)? ", self.out.getvalue())
        self.assertNotIn("Skipping", self.out.getvalue())


# ═══════════════════════════════════════════════════════════════════════════
# Edit, Help, Unknown, Screen Clear
# ═══════════════════════════════════════════════════════════════════════════

class TestOtherCommands(REPLTestBase):

    def test_edit_replaces_statement(self):
        editor = FakeEditor(result="SELECT 7 AS seven;\n")
        self.run_script("SELECT 1 AS one;\n", "e\nx\nq\n", editor=editor)
        self.assertEqual(editor.seen, ["SELECT 1 AS one;\n"])
        out = self.out.getvalue()
        self.assertIn("SELECT 7 AS seven;", out)
        self.assertIn("| seven |", out)
        self.assertNotIn("| one |", out)

    def test_edit_to_blank_after_end_completes(self):
        """Blanking the last statement once the script is read completes it."""
        editor = FakeEditor(result="   \n")
        self.run_script("SELECT 1", "e\nd\nq\n", editor=editor)
        out = self.out.getvalue()
        self.assertTrue(self.repl.state.script_complete)
        self.assertEqual(out.count("> Execute (D/x/g/s/b/r/c/m/e/>/h/q)? "), 1)
        self.assertIn("Script test.sql is complete.", out)
        self.assertIn("Finished test.sql", out)
        self.assertEqual(self.session.stats["statements_executed"], 0)

    def test_edit_to_blank_mid_script_not_complete(self):
        editor = FakeEditor(result="\n")
        self.run_script("SELECT 1;\nSELECT 2;\n", "e\nq\n", editor=editor)
        self.assertFalse(self.repl.state.script_complete)
        self.assertIn("Quitting at test.sql:1", self.out.getvalue())

    def test_edit_failure_keeps_statement(self):
        editor = FakeEditor(error="Cannot determine editor")
        self.run_script("SELECT 1 AS one;\n", "e\nx\nq\n", editor=editor)
        self.assertIn("Could not edit statement", self.err.getvalue())
        self.assertIn("| one |", self.out.getvalue())

    def test_help(self):
        self.run_script("SELECT 1;\n", "h\n?\nq\n")
        self.assertEqual(self.out.getvalue().count("Commands:"), 2)

    def test_unknown_command(self):
        self.run_script("SELECT 1;\n", "zz\n\nD\nq\n")
        self.assertIn("Error: unrecognized command: zz", self.err.getvalue())
        self.assertEqual(self.out.getvalue().count("test.sql: 1:"), 4)

    def test_clear_screen_gate(self):
        """No gate before the first statement; ENTER gate before later ones."""
        self.run_script("SELECT 1;\nSELECT 2;\n", "s\n\nq\n", clear_screen=True)
        out = self.out.getvalue()
        self.assertEqual(out.count(CLEAR_SCREEN), 2)
        self.assertEqual(out.count("Press ENTER to continue to the next query..."), 1)
        self.assertIn("Quitting at test.sql:2", out)

    def test_clear_screen_gate_interrupted(self):
        """Ctrl+C at the ENTER gate moves on like ENTER."""
        status = self.run_script("SELECT 1;\nSELECT 2;\n",
                                 InterruptingInput("s", None, "q"), clear_screen=True)
        out = self.out.getvalue()
        self.assertEqual(status, 0)
        self.assertEqual(out.count(CLEAR_SCREEN), 2)
        self.assertIn("test.sql: 2:", out)
        self.assertIn("Quitting at test.sql:2", out)

    def test_no_clear_on_redisplay(self):
        self.run_script("SELECT 1;\n", "d\nq\n", clear_screen=True)
        self.assertEqual(self.out.getvalue().count(CLEAR_SCREEN), 1)

    def test_script_read_error(self):
        class Broken(io.StringIO):
            def readline(self, *args):
                raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")

        out, err = io.StringIO(), io.StringIO()
        repl = REPL(Segmenter(Broken()), self.session,
                    ExecutorConfig(script_name="bad.sql", history_file=None),
                    cmd_input=io.StringIO("x\n"), output=out, errors=err)
        self.assertEqual(repl.run(), 1)
        self.assertIn("Failed to read script file", err.getvalue())


if __name__ == "__main__":
    unittest.main()
