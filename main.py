"""
SQLExecutor — Supervised SQL Script Runner
==========================================
Executes a SQL script one statement at a time under operator control.

Usage:
    python main.py --driver sqlite3 --url app.db migrate.sql
    python main.py --driver psycopg2 --url "dbname=app" --username admin --askpass \\
        --script migrate.sql --skip 40 --clear

The driver is any PEP 249 (DB-API 2.0) module; its connect() is called with
the URL and, when given, user= and password= keyword arguments.
"""

import argparse
import getpass
import importlib
import locale
import logging
import os
import sys

logger = logging.getLogger("sqlexecutor")

PASSWORD_ENV = "SQLEXECUTOR_PASSWORD"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sqlexecutor",
        description="Execute a SQL script one statement at a time.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
        epilog="Required: --driver, --url, and a script (positional or --script).",
    )
    parser.add_argument("script_arg", nargs="?", metavar="script",
                        help="The script file to execute")
    parser.add_argument("--script", dest="script", metavar="FILE",
                        help="The script file to execute")
    parser.add_argument("--driver", metavar="MODULE",
                        help="DB-API driver module, e.g. sqlite3 or psycopg2")
    parser.add_argument("--url", metavar="URL",
                        help="Connection string passed to the driver's connect()")
    parser.add_argument("--driverjar", "--driverpath", dest="driver_path", metavar="PATH",
                        help="Directory or archive containing the driver module")
    parser.add_argument("--username", metavar="USER", help="The database user")
    parser.add_argument("--password", metavar="PASSWORD", help="The database password")
    parser.add_argument("--askpass", action="store_true",
                        help="Securely request the password from the console")
    parser.add_argument("--encoding", metavar="CHARSET",
                        default=locale.getpreferredencoding(False) or "utf-8",
                        help="Character encoding of the script file (default: %(default)s)")
    parser.add_argument("--skip", type=int, default=0, metavar="N",
                        help="Skip N lines at the beginning of the script")
    parser.add_argument("--clear", action="store_true",
                        help="Clear the screen before displaying each statement")
    parser.add_argument("--max-column-width", type=int, default=None, metavar="N",
                        help="Cap on computed column width (default: 4096)")
    parser.add_argument("--editor", metavar="CMD",
                        help="Editor command for 'e' (default: $VISUAL or $EDITOR)")
    parser.add_argument("--no-autocommit", dest="autocommit", action="store_false",
                        help="Leave the driver's default transaction mode in place")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log diagnostics to stderr")
    parser.add_argument("-h", "--help", action="store_true",
                        help="Show this help text")
    return parser


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def load_driver(name: str, driver_path: str = None):
    """Import the DB-API driver module, optionally from an extra location."""
    if driver_path:
        path = os.path.abspath(driver_path)
        if path not in sys.path:
            sys.path.insert(0, path)
    module = importlib.import_module(name)
    if not callable(getattr(module, "connect", None)):
        raise ImportError(f"Module {name!r} is not a DB-API driver (no connect())")
    return module


def resolve_password(args):
    if args.password is not None:
        return args.password
    if args.askpass:
        return getpass.getpass("Enter password: ")
    return os.environ.get(PASSWORD_ENV)


def connect(driver, url: str, username: str = None, password: str = None):
    credentials = {}
    if username is not None:
        credentials["user"] = username
    if password is not None:
        credentials["password"] = password
    return driver.connect(url, **credentials)


def enable_autocommit(connection) -> bool:
    """
    Put the connection in autocommit mode so each statement stands alone
    until the operator issues BEGIN. DB-API has no standard switch for this.
    """
    autocommit = getattr(connection, "autocommit", None)
    try:
        if callable(autocommit):
            # pymysql / MySQLdb style
            autocommit(True)
        elif autocommit is not None:
            # psycopg, pyodbc, mysql-connector, sqlite3 (3.12+) style
            connection.autocommit = True
        elif hasattr(connection, "isolation_level"):
            # older sqlite3
            connection.isolation_level = None
        else:
            logger.warning("Driver offers no autocommit switch; statements run "
                           "in the driver's default transaction mode")
            return False
    except Exception as e:
        logger.warning("Could not enable autocommit: %s", e)
        return False
    return True


def main(argv=None) -> int:
    """Parse CLI arguments and run the script. Returns the exit status."""
    from cli.config import DEFAULT_MAX_COL_WIDTH, ExecutorConfig
    from cli.editor import EditorBridge
    from cli.repl import REPL
    from cli.session import Session
    from parser.segmenter import Segmenter

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.help:
        parser.print_help()
        return 0

    script = args.script or args.script_arg
    if not args.driver or not args.url or not script:
        parser.print_help()
        return 1

    configure_logging(args.verbose)

    try:
        config = ExecutorConfig(
            script_name=script,
            skip_lines=args.skip,
            clear_screen=args.clear,
            max_col_width=args.max_column_width or DEFAULT_MAX_COL_WIDTH,
            editor=args.editor,
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    password = resolve_password(args)

    try:
        driver = load_driver(args.driver, args.driver_path)
    except ImportError as e:
        print(f"Failed to load driver {args.driver}: {e}", file=sys.stderr)
        logger.debug("Driver load failure", exc_info=True)
        return 1

    try:
        connection = connect(driver, args.url, args.username, password)
    except Exception as e:
        print(f"Could not connect to database: {e}", file=sys.stderr)
        logger.debug("Connection failure", exc_info=True)
        return 1

    if args.autocommit:
        enable_autocommit(connection)

    with Session(connection, error_types=getattr(driver, "Error", None),
                 fetch_size=config.fetch_size) as session:
        try:
            script_file = open(script, "r", encoding=args.encoding, newline="")
        except (OSError, LookupError) as e:
            print(f"Failed to open script file: {e}", file=sys.stderr)
            return 1

        with script_file:
            repl = REPL(
                Segmenter(script_file, skip_lines=config.skip_lines),
                session,
                config,
                editor=EditorBridge(config.editor, encoding="utf-8"),
            )
            return repl.run()


def cli_entry():
    sys.exit(main())


if __name__ == "__main__":
    cli_entry()
