"""Domain layer - pages, display records and search outcomes.

Nothing here touches the filesystem, HTTP or the index format; the search
package and the session layer build on these types.
"""

from site_search.domain.model import Document, DocumentStoreEntry, normalize_whitespace
from site_search.domain.search import QueryResult, RenderedResponse, RenderedResult, SearchStatus


__all__ = [
    "Document",
    "DocumentStoreEntry",
    "QueryResult",
    "RenderedResponse",
    "RenderedResult",
    "SearchStatus",
    "normalize_whitespace",
]
