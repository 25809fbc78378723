"""Filter-graph escaping and title wrapping.

WHY: ffmpeg filter graphs are a small language: ``,`` chains filters, ``;``
separates chains, ``:`` separates options, ``'`` quotes, ``\\`` escapes, and
drawtext additionally expands ``%{...}`` sequences. A caption path or a title
containing any of these silently breaks the graph or changes its meaning.
Escaping is applied unconditionally at construction so an unescaped delimiter
can never reach the engine.

HOW: escape_filter_path() normalizes a filesystem path for the subtitles
filter. escape_drawtext_text() applies the drawtext substitutions in a fixed
order. wrap_title() line-wraps a title on word boundaries.

RULES:
- drawtext order is fixed: backslash, quote, colon, percent, semicolon;
  later substitutions must never re-escape the output of earlier ones
- Quotes are escaped by closing the quoted string, emitting ``\\'`` and
  reopening it (``'`` → ``'\\''``)
- Paths use forward slashes; Windows drive colons are escaped like any colon
- wrap_title never splits a word; a word longer than the budget gets a line
"""

from __future__ import annotations

from typing import List


def escape_filter_path(path: str) -> str:
    """Escape a file path for use as a quoted filter option value.

    Returns the path wrapped in single quotes, ready to follow ``filename=``.
    """
    escaped = str(path).replace("\\", "/")
    escaped = escaped.replace("'", "'\\''")
    escaped = escaped.replace(":", "\\:")
    return "'{}'".format(escaped)


def escape_drawtext_text(text: str) -> str:
    """Escape text for drawtext's ``text='...'`` option.

    The returned value is meant to sit between single quotes.
    """
    escaped = text.replace("\\", "\\\\")
    escaped = escaped.replace("'", "'\\''")
    escaped = escaped.replace(":", "\\:")
    escaped = escaped.replace("%", "%%")
    escaped = escaped.replace(";", "\\;")
    return escaped


def wrap_title(text: str, max_chars: int = 18) -> List[str]:
    """Wrap text into lines of at most max_chars on word boundaries.

    Whitespace runs collapse to single spaces. Returns an empty list for
    blank input.
    """
    lines: List[str] = []
    current = ""
    for word in text.split():
        if not current:
            current = word
        elif len(current) + 1 + len(word) <= max_chars:
            current = current + " " + word
        else:
            lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines
