"""HTML page extraction: ``<title>`` text plus visible main-content text."""

from __future__ import annotations

from dataclasses import dataclass

from bs4 import BeautifulSoup

from site_search.domain.model import normalize_whitespace


# Elements whose text never renders
_INVISIBLE_TAGS = ("script", "style", "noscript", "template")


class DocumentLoadError(RuntimeError):
    """Raised when a page cannot be read or converted into a Document."""


@dataclass(frozen=True)
class ExtractedPage:
    """Title and visible body text of one HTML page, whitespace-normalized."""

    title: str
    body: str


def extract_page(markup: str) -> ExtractedPage:
    """Extract the title and the visible text of ``<main>`` (or ``<body>``).

    A missing ``<title>`` yields an empty title; callers decide whether that
    excludes the page.
    """

    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup(list(_INVISIBLE_TAGS)):
        tag.decompose()

    title = ""
    title_tag = soup.find("title")
    if title_tag is not None:
        title = normalize_whitespace(title_tag.get_text(" "))
        title_tag.decompose()

    container = soup.find("main") or soup.find("body") or soup
    body = normalize_whitespace(container.get_text(" "))
    return ExtractedPage(title=title, body=body)
