"""Shared test fixtures and configuration."""

from collections.abc import Iterator
import os
from pathlib import Path

import pytest

from site_search.domain.model import Document
from site_search.search.analyzers import SiteAnalyzer
from site_search.search.indexer import SiteIndexBuilder
from site_search.search.query import QueryEngine
from site_search.search.storage import DocumentStore, InvertedIndex


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Drop SITE_SEARCH_* and SOURCE_DATE_EPOCH and run from an empty directory so no .env leaks in."""
    for key in list(os.environ):
        if key.upper().startswith("SITE_SEARCH_") or key.upper() == "SOURCE_DATE_EPOCH":
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


class CharSegmenter:
    """Deterministic stand-in for a dictionary segmenter: one token per character."""

    def tokenize(self, text: str) -> Iterator[tuple[str, int, int]]:
        for index, char in enumerate(text):
            yield char, index, index + 1


@pytest.fixture
def char_segmenter() -> CharSegmenter:
    return CharSegmenter()


@pytest.fixture
def standard_analyzer() -> SiteAnalyzer:
    return SiteAnalyzer("standard")


@pytest.fixture
def guide_documents() -> list[Document]:
    """Two pages sharing vocabulary between title and body."""
    return [
        Document(id="/a/", title="Getting Started", body="This guide explains installation steps."),
        Document(id="/b/", title="Installation Notes", body="Getting started is easy."),
    ]


@pytest.fixture
def built_guide(standard_analyzer, guide_documents) -> tuple[InvertedIndex, DocumentStore]:
    return SiteIndexBuilder(standard_analyzer).build(guide_documents)


@pytest.fixture
def guide_engine(built_guide) -> QueryEngine:
    index, _store = built_guide
    return QueryEngine.from_index(index)


def write_page(root: Path, relative: str, title: str | None, body: str) -> Path:
    """Write a minimal HTML page under ``root``."""
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    head = f"<head><title>{title}</title></head>" if title is not None else "<head></head>"
    path.write_text(f"<!DOCTYPE html><html>{head}<body><main>{body}</main></body></html>", encoding="utf-8")
    return path


@pytest.fixture
def site_root(tmp_path) -> Path:
    """A generated site with two articles, a home page and an untitled page."""
    root = tmp_path / "site"
    write_page(root, "index.html", "Home", "<p>Welcome home, every article is listed here.</p>")
    write_page(root, "getting-started/index.html", "Getting Started", "<p>This guide explains installation steps.</p>")
    write_page(root, "notes/index.html", "Installation Notes", "<p>Getting started is <b>easy</b>.</p>")
    write_page(root, "drafts/untitled/index.html", None, "<p>Installation draft without a title.</p>")
    return root


@pytest.fixture
def page_writer():
    return write_page
