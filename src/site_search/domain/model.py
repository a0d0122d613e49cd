"""Domain model - pages and their display records.

Value objects are immutable Pydantic dataclasses so every Document is
validated and normalized once, at construction:
- ``id`` must be non-empty (it is the URL path results link to)
- ``title`` and ``body`` are whitespace-normalized (runs collapsed, trimmed)
"""

import re
from typing import Self

from pydantic import Field, field_validator
from pydantic.dataclasses import dataclass


_WHITESPACE_PATTERN = re.compile(r"\s+")

DEFAULT_SNIPPET_LENGTH = 150
DEFAULT_SNIPPET_MARKER = "..."


def normalize_whitespace(value: str | None) -> str:
    """Collapse runs of whitespace to a single space and trim the ends."""
    if not value:
        return ""
    return _WHITESPACE_PATTERN.sub(" ", value).strip()


@dataclass(frozen=True)
class DocumentStoreEntry:
    """Compact display record for one page: title plus body snippet."""

    title: str
    snippet: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "snippet": self.snippet}

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> Self:
        return cls(title=str(data.get("title", "")), snippet=str(data.get("snippet", "")))


@dataclass(frozen=True)
class Document:
    """One indexed page.

    ``title`` may be empty here; the index builder rejects untitled pages so
    the exclusion is logged with the page id rather than failing validation.
    """

    id: str = Field(min_length=1)
    title: str = ""
    body: str = ""

    @field_validator("title", "body", mode="before")
    @classmethod
    def _normalize_text(cls, value: str | None) -> str:
        return normalize_whitespace(value)

    @property
    def has_title(self) -> bool:
        return bool(self.title)

    def snippet(self, length: int = DEFAULT_SNIPPET_LENGTH, marker: str = DEFAULT_SNIPPET_MARKER) -> str:
        """Return the first ``length`` characters of the body plus ``marker`` when truncated."""
        if len(self.body) <= length:
            return self.body
        return self.body[:length].rstrip() + marker

    def to_store_entry(
        self,
        snippet_length: int = DEFAULT_SNIPPET_LENGTH,
        snippet_marker: str = DEFAULT_SNIPPET_MARKER,
    ) -> DocumentStoreEntry:
        return DocumentStoreEntry(title=self.title, snippet=self.snippet(snippet_length, snippet_marker))
