"""
Text normalization applied to every extraction result before validation.

normalize() is pure, total and idempotent:
    normalize(normalize(x)) == normalize(x)

Invisible characters are stripped before whitespace is collapsed. Stripping
them afterwards could leave two spaces side by side ("a \\u200b b"), which a
second pass would collapse again.

C0 control characters (NUL padding and friends from raw-decoded binary .doc
files) become spaces. PostgreSQL TEXT columns reject NUL outright.
"""

from __future__ import annotations

import re

# Zero-width space/joiners, word joiner, BOM
_INVISIBLE_RE   = re.compile(r"[\u200B-\u200D\u2060\uFEFF]")
# C0 controls except tab, newline, carriage return; plus DEL
_CONTROL_RE     = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_WHITESPACE_RE  = re.compile(r"\s+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def strip_control_chars(text: str) -> str:
    return _CONTROL_RE.sub(" ", text)


def normalize(raw_text: str) -> str:
    if not raw_text:
        return ""

    text = _INVISIBLE_RE.sub("", raw_text)
    text = strip_control_chars(text)
    text = _WHITESPACE_RE.sub(" ", text)
    text = _BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()
