"""Split a migration file into individual SQL statements.

A ``;`` ends a statement only at top level: never inside a quoted string
(``'...'`` / ``"..."``, doubled quotes as escapes), a dollar-quoted block
(``$$ ... $$`` / ``$tag$ ... $tag$``) or a comment (``--`` / ``/* */``).
"""

from __future__ import annotations

import re

_DOLLAR_TAG = re.compile(r"\$(?:[A-Za-z_][A-Za-z0-9_]*)?\$")
_LEADING_COMMENTS = re.compile(r"^(?:\s+|--[^\n]*(?:\n|$)|/\*[\s\S]*?\*/)*")


def split_sql_statements(sql: str) -> list[str]:
    """Return the trimmed, non-empty top-level statements of *sql*."""
    statements: list[str] = []
    start = 0
    i = 0
    n = len(sql)

    while i < n:
        ch = sql[i]

        if ch in ("'", '"'):
            i = _skip_quoted(sql, i, ch)
            continue

        if ch == "$":
            match = _DOLLAR_TAG.match(sql, i)
            if match:
                tag = match.group(0)
                close = sql.find(tag, match.end())
                i = n if close == -1 else close + len(tag)
                continue

        if ch == "-" and sql.startswith("--", i):
            newline = sql.find("\n", i)
            i = n if newline == -1 else newline + 1
            continue

        if ch == "/" and sql.startswith("/*", i):
            close = sql.find("*/", i + 2)
            i = n if close == -1 else close + 2
            continue

        if ch == ";":
            _append(statements, sql[start:i])
            start = i + 1

        i += 1

    _append(statements, sql[start:])
    return statements


def is_executable_statement(statement: str) -> bool:
    """True when something other than whitespace and comments remains."""
    return bool(_LEADING_COMMENTS.sub("", statement, count=1).strip())


def _skip_quoted(sql: str, i: int, quote: str) -> int:
    """Return the index just past the string literal opening at *i*."""
    j = i + 1
    n = len(sql)
    while j < n:
        if sql[j] == quote:
            if j + 1 < n and sql[j + 1] == quote:
                j += 2
                continue
            return j + 1
        j += 1
    return n


def _append(statements: list[str], chunk: str) -> None:
    chunk = chunk.strip()
    if chunk:
        statements.append(chunk)
