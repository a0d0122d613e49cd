"""BM25 building blocks used by the query engine.

Each field is scored on its own: a saturating term-frequency weight,
normalized by how long the field is relative to the corpus average, times an
inverse document frequency. Everything here works on plain numbers and
mappings so it can be tested without a built index.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import math


# Fields longer than this multiple of the average are scored as if they were exactly this long
MAX_LENGTH_RATIO = 4.0


@dataclass(frozen=True)
class FieldLengthStats:
    """Token totals for one field across the corpus."""

    field: str
    total_terms: int
    document_count: int

    @property
    def average_length(self) -> float:
        return self.total_terms / self.document_count if self.document_count else 0.0


def compute_field_length_stats(field_lengths: Mapping[str, Mapping[str, int]]) -> dict[str, FieldLengthStats]:
    """Summarize ``{field: {doc_id: length}}`` into per-field totals."""

    return {
        name: FieldLengthStats(name, sum(max(length, 0) for length in lengths.values()), len(lengths))
        for name, lengths in field_lengths.items()
    }


def calculate_idf(doc_freq: int, total_docs: int, *, floor: float = 1e-6) -> float:
    """Inverse document frequency, ``log(1 + (N - df + 0.5) / (df + 0.5))``.

    Unlike raw BM25 IDF this never goes negative: on a small site a term can
    appear on every page and should still count a little.
    """

    if total_docs <= 0:
        return 0.0
    matching = min(max(doc_freq, 0), total_docs)
    return max(math.log1p((total_docs - matching + 0.5) / (matching + 0.5)), floor)


def bm25(tf: int, doc_length: int, avg_doc_length: float, *, k1: float = 1.2, b: float = 0.75) -> float:
    """Term weight for ``tf`` occurrences in a field of ``doc_length`` tokens, before IDF.

    The length ratio is capped at ``MAX_LENGTH_RATIO`` so one very long page
    does not bury its matches.
    """

    if tf <= 0:
        return 0.0
    length_ratio = min(doc_length / avg_doc_length, MAX_LENGTH_RATIO) if avg_doc_length > 0 else 1.0
    return tf * (k1 + 1) / (tf + k1 * (1 - b + b * length_ratio))
