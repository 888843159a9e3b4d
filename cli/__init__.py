"""
SQLExecutor CLI
===============
REPL controller, execution session, renderer, and editor bridge.

Usage:
    from cli.repl import REPL
    from cli.session import Session

    with Session(conn) as session:
        REPL(Segmenter(script_file), session).run()
"""
