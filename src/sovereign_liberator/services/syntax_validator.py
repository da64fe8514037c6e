"""Best-effort syntax check for cleaned files.

Not a parser: JSON is parsed for real, JS/TS sources get a bracket balance
check that skips strings and comments.  The result is advisory.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

_SCRIPT_EXTS: tuple[str, ...] = (".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs")
_PAIRS: dict[str, str] = {"(": ")", "{": "}", "[": "]"}
_CLOSERS = frozenset(_PAIRS.values())


@dataclass(frozen=True, slots=True)
class SyntaxCheck:
    valid: bool
    error: str | None = None


def validate_syntax(code: str, path: str) -> SyntaxCheck:
    """Flag invalid JSON or unbalanced brackets in *code*."""
    lower = path.lower()
    if lower.endswith(".json"):
        try:
            json.loads(code)
        except json.JSONDecodeError as exc:
            return SyntaxCheck(valid=False, error=f"Invalid JSON: {exc}")
        return SyntaxCheck(valid=True)

    if not lower.endswith(_SCRIPT_EXTS):
        return SyntaxCheck(valid=True)

    return _check_brackets(code)


def _check_brackets(code: str) -> SyntaxCheck:
    stack: list[str] = []
    quote: str | None = None
    line_comment = False
    block_comment = False
    i = 0
    n = len(code)

    while i < n:
        ch = code[i]
        nxt = code[i + 1] if i + 1 < n else ""

        if line_comment:
            if ch == "\n":
                line_comment = False
        elif block_comment:
            if ch == "*" and nxt == "/":
                block_comment = False
                i += 1
        elif quote:
            if ch == "\\":
                i += 1
            elif ch == quote:
                quote = None
        elif ch == "/" and nxt == "/":
            line_comment = True
            i += 1
        elif ch == "/" and nxt == "*":
            block_comment = True
            i += 1
        elif ch in ("'", '"', "`"):
            quote = ch
        elif ch in _PAIRS:
            stack.append(_PAIRS[ch])
        elif ch in _CLOSERS:
            if not stack or stack.pop() != ch:
                return SyntaxCheck(valid=False, error=f"Mismatched bracket '{ch}' at position {i}")
        i += 1

    if quote:
        return SyntaxCheck(valid=False, error=f"Unterminated string literal ({quote})")
    if block_comment:
        return SyntaxCheck(valid=False, error="Unterminated block comment")
    if stack:
        return SyntaxCheck(valid=False, error=f"Unclosed brackets: {''.join(reversed(stack))}")
    return SyntaxCheck(valid=True)
