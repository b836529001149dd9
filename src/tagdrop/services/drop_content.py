# src/tagdrop/services/drop_content.py
"""Normalization of user-submitted drop message bodies."""

from __future__ import annotations

import re

_WHITESPACE_RE = re.compile(r"\s+")

_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#39;",
}
_HTML_ESCAPE_RE = re.compile("[&<>\"']")


def escape_html(value: str) -> str:
    """Escape the five HTML-reserved characters."""
    return _HTML_ESCAPE_RE.sub(lambda match: _HTML_ESCAPES[match.group(0)], value)


def measure(raw: str) -> tuple[str, int]:
    """Return the trimmed text and its length in Unicode codepoints."""
    trimmed = raw.strip()
    # str length already counts codepoints, not UTF-16 units or bytes.
    return trimmed, len(trimmed)


def codepoint_length(value: str) -> int:
    """Return the trimmed length of ``value`` in Unicode codepoints."""
    return measure(value)[1]


def is_valid_length(value: str, max_chars: int) -> bool:
    """Return True if the trimmed text holds between 1 and ``max_chars`` codepoints."""
    return 1 <= codepoint_length(value) <= max_chars


def sanitize(raw: str) -> str:
    """Collapse whitespace runs, trim, then HTML-escape the result."""
    normalized = raw.replace("\r\n", "\n").replace("\r", "\n")
    collapsed = _WHITESPACE_RE.sub(" ", normalized).strip()
    return escape_html(collapsed)
