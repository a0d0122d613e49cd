"""Inverted index and document store data structures plus JSON persistence.

The module provides:

* ``IndexWriter`` - accepts analyzed documents and produces an immutable
  ``InvertedIndex`` (token -> field -> document id -> occurrence count).
* ``InvertedIndex`` - read-only lookups (exact terms, prefix expansion via the
  sorted vocabulary, document order) and a versioned dict form.
* ``DocumentStore`` - read-only mapping of document id -> ``DocumentStoreEntry``.
* ``JsonArtifactStore`` - writes and reads both artifacts as minified JSON.

Serialization is deterministic: terms, word forms, fields and postings are
emitted in sorted order and documents keep their build order, so rebuilding
the same corpus yields byte-identical artifacts. ``created_at`` is only
written when the caller supplies a build time (for example from
``SOURCE_DATE_EPOCH``).
"""

from __future__ import annotations

from bisect import bisect_left
from collections import defaultdict
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
import logging
from pathlib import Path
from typing import Any

import orjson

from site_search.domain.model import DocumentStoreEntry
from site_search.search.schema import Schema


logger = logging.getLogger(__name__)

INDEX_FORMAT = "site-search-index"
INDEX_VERSION = 1
DEFAULT_INDEX_FILENAME = "search-index.json"
DEFAULT_STORE_FILENAME = "document-store.json"

# term -> field -> doc_id -> occurrence count
PostingsMap = dict[str, dict[str, dict[str, int]]]


class StorageError(ValueError):
    """Raised when invalid documents or operations are encountered."""


class IndexFormatError(StorageError):
    """Raised when a serialized artifact cannot be interpreted."""


def _load_json_payload(data: bytes) -> Any:
    try:
        return orjson.loads(data)
    except orjson.JSONDecodeError as exc:
        raise IndexFormatError(f"Malformed JSON artifact: {exc}") from exc


def _serialize_json_payload(payload: Any) -> bytes:
    return orjson.dumps(payload)


@dataclass(frozen=True, slots=True)
class InvertedIndex:
    """Immutable inverted index over the ``schema`` text fields.

    ``doc_ids`` lists every indexed document in build order; that order breaks
    score ties. ``forms`` maps lowercased word forms seen in the documents to
    the term they were analyzed into, for words the analyzer changed (stemmed
    words); it lets a partially typed word find its stem. Field lengths and the
    sorted vocabularies are derived at construction.
    """

    schema: Schema
    analyzer_name: str
    doc_ids: tuple[str, ...]
    postings: PostingsMap
    forms: dict[str, str] = field(default_factory=dict, repr=False)
    created_at: datetime | None = None
    vocabulary: tuple[str, ...] = field(init=False, repr=False)
    form_vocabulary: tuple[str, ...] = field(init=False, repr=False)
    field_lengths: dict[str, dict[str, int]] = field(init=False, repr=False)
    _doc_rank: dict[str, int] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "vocabulary", tuple(sorted(self.postings)))
        object.__setattr__(self, "form_vocabulary", tuple(sorted(self.forms)))
        object.__setattr__(self, "field_lengths", _derive_field_lengths(self.postings))
        object.__setattr__(self, "_doc_rank", {doc_id: rank for rank, doc_id in enumerate(self.doc_ids)})

    @property
    def doc_count(self) -> int:
        return len(self.doc_ids)

    @property
    def is_empty(self) -> bool:
        return not self.doc_ids

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._doc_rank

    def doc_rank(self, doc_id: str) -> int:
        """Position of ``doc_id`` in build order (unknown ids sort last)."""
        return self._doc_rank.get(doc_id, len(self._doc_rank))

    def get_postings(self, term: str) -> Mapping[str, Mapping[str, int]]:
        """Return ``field -> doc_id -> count`` for an exact term."""
        return self.postings.get(term, {})

    def terms_with_prefix(self, prefix: str, *, limit: int | None = None) -> list[str]:
        """Return indexed terms starting with ``prefix`` in sorted order."""
        return _sorted_prefix_matches(self.vocabulary, prefix, limit)

    def terms_for_form_prefix(self, prefix: str, *, limit: int | None = None) -> list[str]:
        """Return the indexed terms of word forms starting with ``prefix``, without duplicates."""
        terms: list[str] = []
        for form in _sorted_prefix_matches(self.form_vocabulary, prefix, None):
            term = self.forms[form]
            if term not in terms:
                terms.append(term)
                if limit is not None and len(terms) >= limit:
                    break
        return terms

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"format": INDEX_FORMAT, "version": INDEX_VERSION}
        if self.created_at is not None:
            payload["created_at"] = self.created_at.isoformat()
        payload.update(
            schema=self.schema.to_dict(),
            analyzer={"name": self.analyzer_name},
            documents=list(self.doc_ids),
            postings=self.postings,
            forms={form: self.forms[form] for form in self.form_vocabulary},
        )
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> InvertedIndex:
        if not isinstance(data, Mapping):
            raise IndexFormatError("Index payload must be a JSON object")
        if data.get("format") != INDEX_FORMAT:
            raise IndexFormatError(f"Unsupported index format: {data.get('format')!r}")
        if data.get("version") != INDEX_VERSION:
            raise IndexFormatError(f"Unsupported index version: {data.get('version')!r}")

        try:
            schema = Schema.from_dict(data["schema"])
            analyzer_name = str(data["analyzer"]["name"])
            doc_ids = tuple(str(doc_id) for doc_id in data["documents"])
            postings: PostingsMap = {
                str(term): {
                    str(field_name): {str(doc_id): int(count) for doc_id, count in doc_counts.items()}
                    for field_name, doc_counts in fields.items()
                }
                for term, fields in data["postings"].items()
            }
            forms = {str(form): str(term) for form, term in data.get("forms", {}).items()}
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise IndexFormatError(f"Malformed index payload: {exc}") from exc

        created_raw = data.get("created_at")
        try:
            created = datetime.fromisoformat(created_raw) if isinstance(created_raw, str) else None
        except ValueError:
            created = None

        known = set(doc_ids)
        for term, fields in postings.items():
            for doc_counts in fields.values():
                unknown = set(doc_counts) - known
                if unknown:
                    raise IndexFormatError(f"Term {term!r} references unknown documents: {sorted(unknown)[:3]}")
        dangling = sorted(form for form, term in forms.items() if term not in postings)
        if dangling:
            raise IndexFormatError(f"Word forms reference unknown terms: {dangling[:3]}")

        return cls(
            schema=schema,
            analyzer_name=analyzer_name,
            doc_ids=doc_ids,
            postings=postings,
            forms=forms,
            created_at=created,
        )


def _sorted_prefix_matches(sorted_terms: Sequence[str], prefix: str, limit: int | None) -> list[str]:
    if not prefix:
        return []
    matches: list[str] = []
    for term in sorted_terms[bisect_left(sorted_terms, prefix) :]:
        if not term.startswith(prefix):
            break
        matches.append(term)
        if limit is not None and len(matches) >= limit:
            break
    return matches


def _derive_field_lengths(postings: PostingsMap) -> dict[str, dict[str, int]]:
    """Reconstruct per-field document lengths by summing term counts."""
    field_lengths: dict[str, dict[str, int]] = defaultdict(dict)
    for fields in postings.values():
        for field_name, doc_counts in fields.items():
            lengths = field_lengths[field_name]
            for doc_id, count in doc_counts.items():
                lengths[doc_id] = lengths.get(doc_id, 0) + count
    return dict(field_lengths)


class DocumentStore(Mapping[str, DocumentStoreEntry]):
    """Read-only mapping of document id to its display record."""

    def __init__(self, entries: Mapping[str, DocumentStoreEntry] | None = None) -> None:
        self._entries: dict[str, DocumentStoreEntry] = dict(entries or {})

    def __getitem__(self, doc_id: str) -> DocumentStoreEntry:
        return self._entries[doc_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"DocumentStore({len(self._entries)} entries)"

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {doc_id: entry.to_dict() for doc_id, entry in self._entries.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DocumentStore:
        if not isinstance(data, Mapping):
            raise IndexFormatError("Document store payload must be a JSON object")
        entries: dict[str, DocumentStoreEntry] = {}
        for doc_id, raw in data.items():
            if not isinstance(raw, Mapping) or "title" not in raw:
                raise IndexFormatError(f"Malformed document store entry for {doc_id!r}")
            entries[str(doc_id)] = DocumentStoreEntry.from_dict(dict(raw))
        return cls(entries)


class IndexWriter:
    """Accumulates analyzed documents and builds an ``InvertedIndex``.

    ``created_at`` is recorded in the index only when given, so two builds of
    the same documents serialize to the same bytes.
    """

    def __init__(self, schema: Schema, analyzer_name: str, *, created_at: datetime | None = None) -> None:
        self.schema = schema
        self.analyzer_name = analyzer_name
        self.created_at = created_at
        self._forms: dict[str, str] = {}
        self._postings: defaultdict[str, defaultdict[str, dict[str, int]]] = defaultdict(lambda: defaultdict(dict))
        self._doc_ids: list[str] = []
        self._seen: set[str] = set()

    def add_document(
        self,
        doc_id: str,
        field_terms: Mapping[str, Sequence[str]],
        *,
        forms: Mapping[str, str] | None = None,
    ) -> None:
        """Record term counts for ``doc_id``; fields absent from the schema are ignored.

        ``forms`` maps word forms of the document to the terms they became.
        """
        if not doc_id:
            raise StorageError("Document id cannot be empty")
        if doc_id in self._seen:
            raise StorageError(f"Duplicate document id: {doc_id}")

        self._seen.add(doc_id)
        self._doc_ids.append(doc_id)
        for schema_field in self.schema.text_fields:
            for term in field_terms.get(schema_field.name, ()):
                doc_counts = self._postings[term][schema_field.name]
                doc_counts[doc_id] = doc_counts.get(doc_id, 0) + 1
        if forms:
            self._forms.update(forms)

    def build(self) -> InvertedIndex:
        rank = {doc_id: idx for idx, doc_id in enumerate(self._doc_ids)}
        postings: PostingsMap = {}
        for term in sorted(self._postings):
            fields = self._postings[term]
            postings[term] = {
                field_name: dict(sorted(fields[field_name].items(), key=lambda item: rank[item[0]]))
                for field_name in sorted(fields)
            }
        return InvertedIndex(
            schema=self.schema,
            analyzer_name=self.analyzer_name,
            doc_ids=tuple(self._doc_ids),
            postings=postings,
            forms={form: term for form, term in self._forms.items() if term in postings},
            created_at=self.created_at,
        )


class JsonArtifactStore:
    """Persist the index and the document store as two JSON files in ``directory``."""

    def __init__(
        self,
        directory: str | Path,
        *,
        index_filename: str = DEFAULT_INDEX_FILENAME,
        store_filename: str = DEFAULT_STORE_FILENAME,
    ) -> None:
        self.directory = Path(directory)
        self.index_path = self.directory / index_filename
        self.store_path = self.directory / store_filename

    def save(self, index: InvertedIndex, store: DocumentStore) -> tuple[Path, Path]:
        """Write both artifacts atomically; ``OSError`` propagates to the caller."""
        missing = [doc_id for doc_id in index.doc_ids if doc_id not in store]
        if missing:
            raise StorageError(f"Document store is missing entries for: {missing[:5]}")

        self.directory.mkdir(parents=True, exist_ok=True)
        self._atomic_write(self.index_path, _serialize_json_payload(index.to_dict()))
        self._atomic_write(self.store_path, _serialize_json_payload(store.to_dict()))
        logger.info(
            "Wrote search artifacts to %s (%d documents, %d terms)",
            self.directory,
            index.doc_count,
            len(index.vocabulary),
        )
        return self.index_path, self.store_path

    def load_index(self) -> InvertedIndex:
        return parse_index(self.index_path.read_bytes())

    def load_store(self) -> DocumentStore:
        return parse_document_store(self.store_path.read_bytes())

    def _atomic_write(self, path: Path, payload: bytes) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_bytes(payload)
        tmp_path.replace(path)


def parse_index(data: bytes) -> InvertedIndex:
    """Decode a serialized index, raising ``IndexFormatError`` when unusable."""
    return InvertedIndex.from_dict(_load_json_payload(data))


def parse_document_store(data: bytes) -> DocumentStore:
    """Decode a serialized document store, raising ``IndexFormatError`` when unusable."""
    return DocumentStore.from_dict(_load_json_payload(data))
