"""Turn ranked ``QueryResult`` lists into display-ready responses."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging

from site_search.domain.model import DocumentStoreEntry
from site_search.domain.search import QueryResult, RenderedResponse, RenderedResult, SearchStatus
from site_search.search.snippet import HIGHLIGHT_STYLE_HTML, HIGHLIGHT_STYLE_PLAIN, escape_html, highlight_terms


logger = logging.getLogger(__name__)

EMPTY_QUERY_MESSAGE = "Type to search"
UNAVAILABLE_MESSAGE = "Search is unavailable: the search index could not be loaded."


class ResultRenderer:
    """Look results up in the document store, then escape and highlight them."""

    def __init__(self, *, style: str = HIGHLIGHT_STYLE_HTML, max_results: int | None = None) -> None:
        if style not in (HIGHLIGHT_STYLE_HTML, HIGHLIGHT_STYLE_PLAIN):
            raise ValueError(f"Unknown render style: {style!r}")
        self.style = style
        self.max_results = max_results

    def render(
        self,
        results: Sequence[QueryResult],
        store: Mapping[str, DocumentStoreEntry],
        query: str | None,
        *,
        terms: Sequence[str] | None = None,
    ) -> RenderedResponse:
        """Render ``results`` for ``query``.

        ``terms`` are the strings to highlight; when omitted the query is
        split on whitespace. References missing from ``store`` are skipped.
        """

        seed = (query or "").strip()
        if not seed:
            return RenderedResponse(status=SearchStatus.EMPTY_QUERY, message=EMPTY_QUERY_MESSAGE)

        highlight = list(terms) if terms is not None else seed.split()
        rendered: list[RenderedResult] = []
        for result in results:
            entry = store.get(result.ref)
            if entry is None:
                logger.debug("Result %s missing from document store; skipped", result.ref)
                continue
            rendered.append(
                RenderedResult(
                    ref=self._escape(result.ref),
                    title=highlight_terms(entry.title, highlight, style=self.style),
                    snippet=highlight_terms(entry.snippet, highlight, style=self.style),
                    score=result.score,
                )
            )
            if self.max_results is not None and len(rendered) >= self.max_results:
                break

        if not rendered:
            return RenderedResponse(
                status=SearchStatus.NO_MATCHES,
                query=seed,
                message=f"No results for “{self._escape(seed)}”",
            )

        noun = "result" if len(rendered) == 1 else "results"
        return RenderedResponse(
            status=SearchStatus.MATCHES,
            query=seed,
            message=f"{len(rendered)} {noun} for “{self._escape(seed)}”",
            results=rendered,
        )

    def render_unavailable(self, query: str | None = None, *, message: str = UNAVAILABLE_MESSAGE) -> RenderedResponse:
        """Response used when no index is loaded; distinct from no matches."""
        return RenderedResponse(
            status=SearchStatus.UNAVAILABLE,
            query=(query or "").strip(),
            message=message,
        )

    def _escape(self, text: str) -> str:
        return escape_html(text) if self.style == HIGHLIGHT_STYLE_HTML else text
