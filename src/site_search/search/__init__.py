"""
Search indexing and query package.

This package provides the build-time and query-time search stack:
- analyzers: Tokenizers and filters (script-aware segmentation, lowercase, stop, stemming)
- schema: Field definitions and boosts
- extraction: HTML page to title/body text
- indexer: Document indexing and site discovery
- storage: Inverted index, document store and JSON artifacts
- stats: BM25 scoring statistics
- query: Query scoring engine
- snippet / render: Escaping, highlighting and result rendering
"""
