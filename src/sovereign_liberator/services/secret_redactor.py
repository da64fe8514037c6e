"""Secret redactor — scrubs credentials out of text before it is reported.

Raw remote error bodies are attached to phase results verbatim for
support diagnosis; some APIs echo the request (and with it the token)
back in their error payloads.  Everything that leaves a phase as an
``error`` string or a log line goes through :func:`redact_text` first.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# ── Compiled patterns ───────────────────────────────────────────────────────

_SECRET_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    # GitHub tokens (classic, fine-grained, OAuth, app)
    ("GITHUB_TOKEN", re.compile(r"(?:gh[pousr]_[A-Za-z0-9_]{36,}|github_pat_[A-Za-z0-9_]{22,})")),
    # JWTs: Supabase anon / service-role keys
    ("JWT", re.compile(r"eyJ[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}")),
    # Supabase secret / publishable API keys
    ("SUPABASE_KEY", re.compile(r"sb_(?:secret|publishable)_[A-Za-z0-9_-]{16,}")),
    # Bearer tokens in echoed headers
    ("BEARER", re.compile(r"Bearer\s+[A-Za-z0-9_\-/.|+=]{16,}", re.IGNORECASE)),
    # Connection strings with embedded passwords
    (
        "CONN_STRING",
        re.compile(r"(?:postgres(?:ql)?|mysql|mongodb)(?:\+\w+)?://[^\s'\"]{10,}", re.IGNORECASE),
    ),
    # AWS access key
    ("AWS_KEY", re.compile(r"AKIA[0-9A-Z]{16}")),
]

_REDACTION = "[REDACTED]"


@dataclass(frozen=True, slots=True)
class RedactionResult:
    """Outcome of a redaction pass."""

    clean_text: str
    redaction_count: int


def redact(text: str) -> RedactionResult:
    """Replace every secret-looking match in *text* with ``[REDACTED]``."""
    count = 0
    result = text
    for _label, pattern in _SECRET_PATTERNS:
        result, num = pattern.subn(_REDACTION, result)
        count += num
    return RedactionResult(clean_text=result, redaction_count=count)


def redact_text(text: str) -> str:
    return redact(text).clean_text


def mask_secret(value: str | None) -> str:
    """Short form for log lines: ``***abcd`` (last four characters only)."""
    if not value:
        return "[empty]"
    if len(value) <= 4:
        return "***"
    return f"***{value[-4:]}"
