"""Query-time session: load the two artifacts, then answer searches.

``SearchSession`` is the small state machine behind a search box::

    IDLE -> LOADING -> READY        (both artifacts fetched and parsed)
    IDLE -> LOADING -> FAILED       (either fetch or parse failed)
    READY -> SEARCHING -> READY     (each query)

``FAILED`` is terminal: searches report the unavailable state until a new
session is created.
"""

from __future__ import annotations

import asyncio
from enum import Enum
import logging
from pathlib import Path
from typing import Protocol

import anyio
import anyio.to_thread
import httpx

from site_search.config import Settings
from site_search.domain.search import RenderedResponse
from site_search.search.query import DEFAULT_MAX_EXPANSIONS, DEFAULT_PREFIX_DISCOUNT, QueryEngine
from site_search.search.render import UNAVAILABLE_MESSAGE, ResultRenderer
from site_search.search.storage import (
    DEFAULT_INDEX_FILENAME,
    DEFAULT_STORE_FILENAME,
    DocumentStore,
    InvertedIndex,
    parse_document_store,
    parse_index,
)


logger = logging.getLogger(__name__)

LOADING_MESSAGE = "Search index is still loading."


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    SEARCHING = "searching"
    FAILED = "failed"


class IndexSource(Protocol):
    """Where a session reads the serialized index and document store from."""

    async def fetch_index(self) -> bytes:  # pragma: no cover - interface definition
        ...

    async def fetch_store(self) -> bytes:  # pragma: no cover - interface definition
        ...


class FileIndexSource:
    """Read artifacts from a local directory."""

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

    async def fetch_index(self) -> bytes:
        return await self._read(self.index_path)

    async def fetch_store(self) -> bytes:
        return await self._read(self.store_path)

    async def _read(self, path: Path) -> bytes:
        async with await anyio.open_file(path, "rb") as fp:
            return await fp.read()

    def __repr__(self) -> str:
        return f"FileIndexSource({str(self.directory)!r})"


class HttpIndexSource:
    """Fetch artifacts with HTTP GET relative to ``base_url``.

    A caller-supplied ``client`` is used as-is and left open; otherwise a
    short-lived client is created per request.
    """

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        index_filename: str = DEFAULT_INDEX_FILENAME,
        store_filename: str = DEFAULT_STORE_FILENAME,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.index_url = self.base_url + index_filename
        self.store_url = self.base_url + store_filename
        self._client = client
        self._timeout = httpx.Timeout(timeout, connect=min(timeout, 10.0))

    async def fetch_index(self) -> bytes:
        return await self._get(self.index_url)

    async def fetch_store(self) -> bytes:
        return await self._get(self.store_url)

    async def _get(self, url: str) -> bytes:
        if self._client is not None:
            response = await self._client.get(url)
            response.raise_for_status()
            return response.content

        async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.content

    def __repr__(self) -> str:
        return f"HttpIndexSource({self.base_url!r})"


def build_search_engine(
    index: InvertedIndex,
    *,
    prefix_discount: float = DEFAULT_PREFIX_DISCOUNT,
    max_expansions: int = DEFAULT_MAX_EXPANSIONS,
) -> QueryEngine:
    """Create a ``QueryEngine`` whose analyzer matches the one recorded in ``index``."""
    return QueryEngine.from_index(index, prefix_discount=prefix_discount, max_expansions=max_expansions)


class SearchSession:
    """Load artifacts once and answer searches from memory."""

    def __init__(
        self,
        source: IndexSource,
        *,
        renderer: ResultRenderer | None = None,
        settings: Settings | None = None,
        prefix_discount: float = DEFAULT_PREFIX_DISCOUNT,
        max_expansions: int = DEFAULT_MAX_EXPANSIONS,
        limit: int | None = None,
    ) -> None:
        self.source = source
        self.renderer = renderer or ResultRenderer()
        self.settings = settings
        self.prefix_discount = settings.prefix_discount if settings else prefix_discount
        self.max_expansions = settings.max_expansions if settings else max_expansions
        self.limit = limit if limit is not None else (settings.max_results if settings else None)

        self._state = SessionState.IDLE
        self._engine: QueryEngine | None = None
        self._store: DocumentStore | None = None
        self._failure: str | None = None
        self._generation = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def failure(self) -> str | None:
        """Description of the load error when the session is ``FAILED``."""
        return self._failure

    @property
    def is_ready(self) -> bool:
        return self._state in (SessionState.READY, SessionState.SEARCHING)

    @property
    def engine(self) -> QueryEngine | None:
        return self._engine

    @property
    def store(self) -> DocumentStore | None:
        return self._store

    async def load(self) -> SessionState:
        """Fetch and parse both artifacts; only the first call does any work."""

        if self._state is not SessionState.IDLE:
            logger.debug("Session load ignored in state %s", self._state.value)
            return self._state

        self._state = SessionState.LOADING
        logger.info("Loading search artifacts from %r", self.source)
        try:
            index_bytes, store_bytes = await asyncio.gather(self.source.fetch_index(), self.source.fetch_store())
            index = parse_index(index_bytes)
            store = parse_document_store(store_bytes)
            engine = build_search_engine(
                index,
                prefix_discount=self.prefix_discount,
                max_expansions=self.max_expansions,
            )
        except Exception as exc:
            self._failure = f"{type(exc).__name__}: {exc}"
            self._state = SessionState.FAILED
            logger.warning("Search unavailable; failed to load artifacts from %r: %s", self.source, exc)
            return self._state

        missing = sum(1 for doc_id in index.doc_ids if doc_id not in store)
        if missing:
            logger.warning("Document store lacks %d indexed document(s); they will not be shown", missing)

        self._engine = engine
        self._store = store
        self._state = SessionState.READY
        logger.info("Search ready: %d documents, analyzer %s", index.doc_count, index.analyzer_name)
        return self._state

    def search(self, query: str | None) -> RenderedResponse:
        """Run one query synchronously: ``READY -> SEARCHING -> READY``."""

        unavailable = self._unavailable_response(query)
        if unavailable is not None:
            return unavailable

        self._state = SessionState.SEARCHING
        try:
            return self._run_search(query)
        finally:
            self._state = SessionState.READY

    async def asearch(self, query: str | None) -> RenderedResponse | None:
        """Search off the event loop; returns ``None`` when a newer query superseded this one."""

        self._generation += 1
        generation = self._generation

        unavailable = self._unavailable_response(query)
        if unavailable is not None:
            return unavailable

        self._state = SessionState.SEARCHING
        try:
            response = await anyio.to_thread.run_sync(self._run_search, query)
        finally:
            # the newest query owns the state
            if generation == self._generation:
                self._state = SessionState.READY
        if generation != self._generation:
            logger.debug("Discarding stale results for %r", query)
            return None
        return response

    def _unavailable_response(self, query: str | None) -> RenderedResponse | None:
        if self._state is SessionState.FAILED:
            return self.renderer.render_unavailable(query, message=UNAVAILABLE_MESSAGE)
        if self._state in (SessionState.IDLE, SessionState.LOADING):
            return self.renderer.render_unavailable(query, message=LOADING_MESSAGE)
        return None

    def _run_search(self, query: str | None) -> RenderedResponse:
        if self._engine is None or self._store is None:
            raise RuntimeError("Search session has no loaded index")
        tokens = self._engine.tokenize_query(query)
        results = self._engine.search(query, limit=self.limit)
        return self.renderer.render(results, self._store, query, terms=[*tokens.surfaces, *tokens.terms])
