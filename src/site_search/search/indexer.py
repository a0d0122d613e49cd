"""Index building for static sites.

``SiteIndexBuilder`` turns Documents into an ``InvertedIndex`` plus a
``DocumentStore``. ``SiteIndexer`` drives it from the filesystem: it
discovers HTML pages under the site root, extracts them, builds and persists
the two JSON artifacts.

Per-document problems (unreadable file, missing title, duplicate id) exclude
that document with a warning and the build carries on. Failing to write the
artifacts is fatal and propagates.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
import logging
from pathlib import Path

from site_search.config import Settings
from site_search.domain.model import DEFAULT_SNIPPET_LENGTH, DEFAULT_SNIPPET_MARKER, Document, DocumentStoreEntry
from site_search.observability.tracing import create_span
from site_search.search.analyzers import Analyzer, get_analyzer, resolve_analyzer_name
from site_search.search.extraction import DocumentLoadError, extract_page
from site_search.search.schema import Schema, create_default_schema
from site_search.search.storage import (
    DEFAULT_INDEX_FILENAME,
    DEFAULT_STORE_FILENAME,
    DocumentStore,
    IndexWriter,
    InvertedIndex,
    JsonArtifactStore,
)


logger = logging.getLogger(__name__)

_INDEX_PAGE_NAME = "index.html"

# (field -> terms, word form -> term)
AnalyzedDocument = tuple[dict[str, list[str]], dict[str, str]]


def resolve_analyzer(name: str | None, documents: Sequence[Document]) -> Analyzer:
    """Instantiate the analyzer for ``name``, resolving ``auto`` against the corpus."""
    resolved = resolve_analyzer_name(name, (f"{doc.title} {doc.body}" for doc in documents))
    return get_analyzer(resolved)


class SiteIndexBuilder:
    """Build an inverted index and document store from Documents.

    The analyzer instance is reused for every document; hand the same
    configuration to the ``QueryEngine``.
    """

    def __init__(
        self,
        analyzer: Analyzer,
        *,
        schema: Schema | None = None,
        snippet_length: int = DEFAULT_SNIPPET_LENGTH,
        snippet_marker: str = DEFAULT_SNIPPET_MARKER,
        max_workers: int = 1,
        created_at: datetime | None = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.analyzer = analyzer
        self.schema = schema or create_default_schema()
        self.snippet_length = snippet_length
        self.snippet_marker = snippet_marker
        self.max_workers = max_workers
        self.created_at = created_at

    def build(
        self,
        documents: Iterable[Document],
        *,
        errors: list[str] | None = None,
    ) -> tuple[InvertedIndex, DocumentStore]:
        """Return ``(index, store)`` for ``documents``.

        Excluded documents are logged and, when ``errors`` is given, described
        there. An empty input produces an empty but loadable index.
        """

        accepted = self._accept_documents(documents, errors)
        with create_span("index.build", attributes={"index.documents": len(accepted)}):
            analyzed = self._analyze_all(accepted)

            writer = IndexWriter(self.schema, self.analyzer.name, created_at=self.created_at)
            entries: dict[str, DocumentStoreEntry] = {}
            for document, (field_terms, forms) in zip(accepted, analyzed, strict=True):
                writer.add_document(document.id, field_terms, forms=forms)
                entries[document.id] = document.to_store_entry(self.snippet_length, self.snippet_marker)

            index = writer.build()
        logger.info("Indexed %d document(s), %d unique terms", index.doc_count, len(index.vocabulary))
        return index, DocumentStore(entries)

    def analyze_document(self, document: Document) -> AnalyzedDocument:
        """Return the terms of every text field plus the word forms the analyzer changed."""
        field_terms: dict[str, list[str]] = {}
        forms: dict[str, str] = {}
        for schema_field in self.schema.text_fields:
            text = getattr(document, schema_field.name, "") or ""
            terms: list[str] = []
            for token in self.analyzer(text):
                terms.append(token.text)
                form = text[token.start_char : token.end_char].lower()
                if form != token.text:
                    forms[form] = token.text
            field_terms[schema_field.name] = terms
        return field_terms, forms

    def _accept_documents(self, documents: Iterable[Document], errors: list[str] | None) -> list[Document]:
        accepted: list[Document] = []
        seen: set[str] = set()
        for document in documents:
            if not document.has_title:
                reason = f"{document.id}: no extractable title; excluded from index"
            elif document.id in seen:
                reason = f"{document.id}: duplicate document id; excluded from index"
            else:
                seen.add(document.id)
                accepted.append(document)
                continue
            logger.warning("Skipping document %s", reason, extra={"doc_id": document.id})
            if errors is not None:
                errors.append(reason)
        return accepted

    def _analyze_all(self, documents: Sequence[Document]) -> list[AnalyzedDocument]:
        if self.max_workers == 1 or len(documents) < 2:
            return [self.analyze_document(document) for document in documents]
        # map() preserves input order
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="site-search-analyze") as pool:
            return list(pool.map(self.analyze_document, documents))


@dataclass(frozen=True)
class SiteIndexingContext:
    """Immutable description of how to index one site."""

    site_root: Path
    output_dir: Path
    include_glob: str = "**/index.html"
    exclude_paths: tuple[str, ...] = (_INDEX_PAGE_NAME,)
    url_prefix: str = "/"
    analyzer_name: str = "auto"
    schema: Schema = field(default_factory=create_default_schema)
    snippet_length: int = DEFAULT_SNIPPET_LENGTH
    snippet_marker: str = DEFAULT_SNIPPET_MARKER
    max_workers: int = 1
    index_filename: str = DEFAULT_INDEX_FILENAME
    store_filename: str = DEFAULT_STORE_FILENAME
    created_at: datetime | None = None


def build_indexing_context(settings: Settings, **overrides: object) -> SiteIndexingContext:
    """Translate ``Settings`` (plus CLI overrides) into an indexing context."""

    values: dict[str, object] = {
        "site_root": settings.site_root,
        "output_dir": settings.output_dir,
        "include_glob": settings.include_glob,
        "exclude_paths": tuple(settings.get_exclude_paths()),
        "url_prefix": settings.url_prefix,
        "analyzer_name": settings.analyzer,
        "schema": create_default_schema(title_boost=settings.title_boost, body_boost=settings.body_boost),
        "snippet_length": settings.snippet_length,
        "snippet_marker": settings.snippet_marker,
        "max_workers": settings.max_workers,
        "index_filename": settings.index_filename,
        "store_filename": settings.store_filename,
        "created_at": settings.build_timestamp(),
    }
    values.update({key: value for key, value in overrides.items() if value is not None})
    return SiteIndexingContext(**values)  # type: ignore[arg-type]


@dataclass(frozen=True)
class IndexBuildResult:
    """Outcome of a site indexing run."""

    documents_indexed: int
    documents_skipped: int
    errors: tuple[str, ...]
    analyzer_name: str
    index_path: Path | None = None
    store_path: Path | None = None


class SiteIndexer:
    """Coordinate discovery, extraction, indexing and persistence for one site."""

    def __init__(self, context: SiteIndexingContext) -> None:
        self.context = context
        self._store = JsonArtifactStore(
            context.output_dir,
            index_filename=context.index_filename,
            store_filename=context.store_filename,
        )

    def build(self, *, persist: bool = True) -> IndexBuildResult:
        """Build the index; with ``persist=False`` nothing is written (dry run)."""

        errors: list[str] = []
        documents = self.collect_documents(errors)
        skipped_on_load = len(errors)

        analyzer = resolve_analyzer(self.context.analyzer_name, documents)
        logger.info("Using analyzer '%s' for %d page(s)", analyzer.name, len(documents))
        builder = SiteIndexBuilder(
            analyzer,
            schema=self.context.schema,
            snippet_length=self.context.snippet_length,
            snippet_marker=self.context.snippet_marker,
            max_workers=self.context.max_workers,
            created_at=self.context.created_at,
        )
        index, store = builder.build(documents, errors=errors)

        index_path: Path | None = None
        store_path: Path | None = None
        if persist:
            with create_span("index.persist", attributes={"index.output_dir": str(self.context.output_dir)}):
                index_path, store_path = self._store.save(index, store)

        return IndexBuildResult(
            documents_indexed=index.doc_count,
            documents_skipped=skipped_on_load + (len(documents) - index.doc_count),
            errors=tuple(errors),
            analyzer_name=analyzer.name,
            index_path=index_path,
            store_path=store_path,
        )

    def collect_documents(self, errors: list[str] | None = None) -> list[Document]:
        """Load every discovered page; unreadable pages are logged and skipped."""

        documents: list[Document] = []
        for page_path in self.discover_pages():
            try:
                documents.append(self.load_document(page_path))
            except DocumentLoadError as exc:
                logger.warning("Skipping %s: %s", page_path, exc, extra={"page_path": str(page_path)})
                if errors is not None:
                    errors.append(str(exc))
        return documents

    def discover_pages(self) -> Iterator[Path]:
        root = self.context.site_root
        if not root.is_dir():
            logger.warning("Site root does not exist or is not a directory: %s", root)
            return iter(())

        excluded = set(self.context.exclude_paths)
        output_files = {self._store.index_path.resolve(), self._store.store_path.resolve()}
        candidates = (
            path
            for path in root.glob(self.context.include_glob)
            if path.is_file()
            and path.relative_to(root).as_posix() not in excluded
            and path.resolve() not in output_files
        )
        return iter(sorted(candidates, key=lambda path: path.relative_to(root).as_posix()))

    def page_url(self, page_path: Path) -> str:
        """Map ``article/index.html`` to ``<url_prefix>article/``."""
        relative = page_path.relative_to(self.context.site_root).as_posix()
        if relative == _INDEX_PAGE_NAME or relative.endswith(f"/{_INDEX_PAGE_NAME}"):
            relative = relative[: -len(_INDEX_PAGE_NAME)]
        return f"{self.context.url_prefix}{relative}"

    def load_document(self, page_path: Path) -> Document:
        try:
            markup = page_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise DocumentLoadError(f"{page_path}: unreadable page ({exc})") from exc

        page = extract_page(markup)
        return Document(id=self.page_url(page_path), title=page.title, body=page.body)
