"""Highlighting of query terms in titles and snippets.

Matches are located on the raw text first; each segment is then escaped on
its own and matched segments are wrapped in the highlight marker. Escaping
before matching would let a term like ``amp`` match inside ``&amp;``, and
escaping after would destroy the marker, so neither order is used.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
import html
import re


HIGHLIGHT_STYLE_HTML = "html"
HIGHLIGHT_STYLE_PLAIN = "plain"

_HTML_MARK_OPEN = "<mark>"
_HTML_MARK_CLOSE = "</mark>"
_PLAIN_MARK_OPEN = "[["
_PLAIN_MARK_CLOSE = "]]"


def escape_html(text: str) -> str:
    """Escape ``& < > " '`` so ``text`` is inert inside markup and attributes."""
    return html.escape(text, quote=True)


def normalize_highlight_terms(terms: Iterable[str]) -> list[str]:
    """Drop blanks and case-insensitive duplicates, longest terms first."""
    seen: set[str] = set()
    normalized: list[str] = []
    for term in terms:
        cleaned = term.strip() if term else ""
        key = cleaned.lower()
        if not cleaned or key in seen:
            continue
        seen.add(key)
        normalized.append(cleaned)
    normalized.sort(key=lambda item: (-len(item), item.lower()))
    return normalized


def find_highlight_spans(text: str, terms: Sequence[str]) -> list[tuple[int, int]]:
    """Return sorted, non-overlapping ``(start, end)`` spans of case-insensitive matches.

    Overlapping candidates prefer the earliest start, then the longest match.
    """

    if not text or not terms:
        return []

    candidates: list[tuple[int, int]] = []
    for term in normalize_highlight_terms(terms):
        pattern = re.compile(re.escape(term), re.IGNORECASE)
        candidates.extend((match.start(), match.end()) for match in pattern.finditer(text))

    candidates.sort(key=lambda span: (span[0], -(span[1] - span[0])))

    selected: list[tuple[int, int]] = []
    last_end = -1
    for start, end in candidates:
        if end <= start or start < last_end:
            continue
        selected.append((start, end))
        last_end = end
    return selected


def highlight_terms(text: str, terms: Sequence[str], style: str = HIGHLIGHT_STYLE_HTML) -> str:
    """Highlight every occurrence of ``terms`` in ``text``.

    Args:
        text: Raw, untrusted text.
        terms: Terms to highlight (matched case-insensitively).
        style: ``"html"`` escapes the text and wraps matches in ``<mark>``;
            ``"plain"`` leaves text unescaped and wraps matches in ``[[ ]]``.

    Returns:
        The highlighted text, safe for insertion into HTML when ``style`` is ``"html"``.
    """
    if style == HIGHLIGHT_STYLE_HTML:
        escape, mark_open, mark_close = escape_html, _HTML_MARK_OPEN, _HTML_MARK_CLOSE
    elif style == HIGHLIGHT_STYLE_PLAIN:
        escape, mark_open, mark_close = str, _PLAIN_MARK_OPEN, _PLAIN_MARK_CLOSE
    else:
        raise ValueError(f"Unknown highlight style: {style!r}")

    if not text:
        return ""

    parts: list[str] = []
    cursor = 0
    for start, end in find_highlight_spans(text, terms):
        parts.append(escape(text[cursor:start]))
        parts.append(f"{mark_open}{escape(text[start:end])}{mark_close}")
        cursor = end
    parts.append(escape(text[cursor:]))
    return "".join(parts)
