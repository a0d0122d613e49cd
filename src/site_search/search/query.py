"""Query engine: tokenize, expand, score and rank against an ``InvertedIndex``.

Every query token is matched exactly and as a prefix of longer indexed terms
(trailing wildcard) in each text field. Contributions are summed across
fields and tokens, so pages matching more of the query rank higher while
pages matching only some of it are still returned.

The query string is never parsed as a query language: the analyzer keeps only
word tokens, so characters such as ``" * : ~ ^ + -`` cannot change the meaning
of a query or raise.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass
import logging

from site_search.domain.search import QueryResult
from site_search.observability.tracing import create_span
from site_search.search.analyzers import Analyzer, get_analyzer
from site_search.search.stats import bm25, calculate_idf, compute_field_length_stats
from site_search.search.storage import InvertedIndex


logger = logging.getLogger(__name__)

DEFAULT_PREFIX_DISCOUNT = 0.5
DEFAULT_MAX_EXPANSIONS = 50
EXACT_MATCH_WEIGHT = 1.0


@dataclass(frozen=True)
class QueryTokens:
    """Analyzed query: unique terms in query order plus their surface text.

    ``forms`` runs parallel to ``terms``: the lowercased surface word each
    term was first produced from, before stemming.
    """

    terms: tuple[str, ...]
    surfaces: tuple[str, ...]
    seed_text: str
    forms: tuple[str, ...] = ()

    @classmethod
    def empty(cls) -> QueryTokens:
        return cls((), (), "")

    def term_forms(self) -> list[tuple[str, str]]:
        if len(self.forms) != len(self.terms):
            return [(term, term) for term in self.terms]
        return list(zip(self.terms, self.forms))

    def is_empty(self) -> bool:
        return not self.terms


class QueryEngine:
    """Ranks indexed documents for free-text queries.

    The engine must be constructed with the analyzer configuration the index
    was built with; ``from_index`` does that from the name recorded in the
    index file.
    """

    def __init__(
        self,
        index: InvertedIndex,
        analyzer: Analyzer,
        *,
        field_boosts: Mapping[str, float] | None = None,
        prefix_discount: float = DEFAULT_PREFIX_DISCOUNT,
        max_expansions: int = DEFAULT_MAX_EXPANSIONS,
        k1: float = 1.2,
        b: float = 0.75,
    ) -> None:
        if not 0.0 <= prefix_discount <= EXACT_MATCH_WEIGHT:
            raise ValueError(f"prefix_discount must be within [0, 1], got {prefix_discount}")
        if max_expansions < 0:
            raise ValueError(f"max_expansions must be >= 0, got {max_expansions}")

        analyzer_name = getattr(analyzer, "name", None)
        if analyzer_name != index.analyzer_name:
            logger.warning(
                "Query analyzer %r differs from index analyzer %r; matches may be missed",
                analyzer_name,
                index.analyzer_name,
            )

        self.index = index
        self.analyzer = analyzer
        self.field_boosts = {**index.schema.field_boosts(), **dict(field_boosts or {})}
        self.prefix_discount = prefix_discount
        self.max_expansions = max_expansions
        self.k1 = k1
        self.b = b
        self._field_stats = compute_field_length_stats(index.field_lengths)

    @classmethod
    def from_index(cls, index: InvertedIndex, **kwargs: object) -> QueryEngine:
        """Build an engine with a fresh analyzer matching ``index.analyzer_name``."""
        return cls(index, get_analyzer(index.analyzer_name), **kwargs)  # type: ignore[arg-type]

    def tokenize_query(self, query: str | None) -> QueryTokens:
        """Return unique analyzed terms plus the raw substrings that produced them."""

        seed = (query or "").strip()
        if not seed:
            return QueryTokens.empty()

        terms: list[str] = []
        forms: list[str] = []
        surfaces: list[str] = []
        seen_terms: set[str] = set()
        seen_surfaces: set[str] = set()
        for token in self.analyzer(seed):
            if not token.text:
                continue
            surface = seed[token.start_char : token.end_char]
            if token.text not in seen_terms:
                seen_terms.add(token.text)
                terms.append(token.text)
                forms.append(surface.lower() or token.text)
            if surface and surface.lower() not in seen_surfaces:
                seen_surfaces.add(surface.lower())
                surfaces.append(surface)

        return QueryTokens(tuple(terms), tuple(surfaces), seed, tuple(forms))

    def search(self, query: str | None, *, limit: int | None = None) -> list[QueryResult]:
        """Return ranked results; never raises for any query string."""

        try:
            tokens = self.tokenize_query(query)
            if tokens.is_empty():
                return []
            with create_span("search.query", attributes={"search.terms": len(tokens.terms)}):
                doc_scores = self.score(tokens)
        except Exception:
            logger.warning("Search failed for query %r; returning no results", query, exc_info=True)
            return []

        ranked = sorted(doc_scores.items(), key=lambda item: (-item[1], self.index.doc_rank(item[0])))
        if limit is not None:
            ranked = ranked[: max(limit, 0)]
        return [QueryResult(ref=doc_id, score=score) for doc_id, score in ranked]

    def expand_term(self, term: str, form: str | None = None) -> list[tuple[str, float]]:
        """Return ``(indexed_term, weight)`` pairs: the exact term, then prefix matches.

        Prefix matches come from the analyzed ``term`` and, when given, from
        the unstemmed ``form`` the user typed. A partly typed word is usually
        not a prefix of its own stem (``runn`` vs ``run``), so ``form`` is also
        looked up among the word forms recorded at index time.
        """

        expansions: list[tuple[str, float]] = []
        if term in self.index.postings:
            expansions.append((term, EXACT_MATCH_WEIGHT))
        if self.max_expansions == 0 or self.prefix_discount == 0.0:
            return expansions

        limit = self.max_expansions + 1
        candidates = self.index.terms_with_prefix(term, limit=limit)
        if form:
            candidates += self.index.terms_for_form_prefix(form, limit=limit)
            if form != term:
                candidates += self.index.terms_with_prefix(form, limit=limit)

        prefix_terms: list[str] = []
        for candidate in candidates:
            if candidate != term and candidate not in prefix_terms:
                prefix_terms.append(candidate)
        expansions.extend((candidate, self.prefix_discount) for candidate in prefix_terms[: self.max_expansions])
        return expansions

    def score(self, tokens: QueryTokens) -> dict[str, float]:
        """Sum per-token scores for every matching document.

        For one query token and one field, a document keeps only its best
        contribution among the exact term and its prefix expansions, so a
        short prefix matching many variants does not inflate the score. All
        expansions of a token share the token's IDF (documents matching any
        expansion), which keeps an exact match at or above a prefix match
        with the same term frequency.
        """

        doc_scores: dict[str, float] = defaultdict(float)
        total_docs = self.index.doc_count
        if total_docs == 0:
            return {}

        for term, form in tokens.term_forms():
            expansions = self.expand_term(term, form)
            if not expansions:
                continue

            matched_docs: set[str] = set()
            for candidate, _weight in expansions:
                for doc_counts in self.index.get_postings(candidate).values():
                    matched_docs.update(doc_counts)
            idf = calculate_idf(len(matched_docs), total_docs)

            best: dict[tuple[str, str], float] = {}
            for candidate, weight in expansions:
                for field_name, doc_counts in self.index.get_postings(candidate).items():
                    field_boost = self.field_boosts.get(field_name, 1.0)
                    if field_boost <= 0:
                        continue
                    stats = self._field_stats.get(field_name)
                    avg_length = stats.average_length if stats else 1.0
                    doc_lengths = self.index.field_lengths.get(field_name, {})
                    for doc_id, tf in doc_counts.items():
                        contribution = (
                            idf
                            * bm25(tf, doc_lengths.get(doc_id, tf), avg_length, k1=self.k1, b=self.b)
                            * field_boost
                            * weight
                        )
                        key = (doc_id, field_name)
                        if contribution > best.get(key, 0.0):
                            best[key] = contribution

            for (doc_id, _field_name), contribution in best.items():
                doc_scores[doc_id] += contribution

        return dict(doc_scores)
