"""
SQLExecutor Script Parser
=========================
Public API for statement segmentation.

Usage:
    from parser import Segmenter, query_is_blank

    for buf in Segmenter(open("script.sql", newline="")):
        print(buf.start_line.line_number, buf.text)
"""

from parser.segmenter import (
    Segmenter, StatementBuffer, ScriptPosition, ScriptReadError, query_is_blank,
)

__all__ = [
    "Segmenter", "StatementBuffer", "ScriptPosition", "ScriptReadError",
    "query_is_blank",
]
