"""``site-search`` command line: build artifacts for a site, or query them.

Exit codes for ``query``: 0 when results were found, 2 for no matches, 1 when
search is unavailable. ``build`` exits 1 when the artifacts cannot be written.
"""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
import logging
from pathlib import Path
import sys

from pydantic import ValidationError

from site_search.config import Settings, normalize_url_prefix
from site_search.domain.search import RenderedResponse, SearchStatus
from site_search.observability.logging import configure_logging
from site_search.observability.tracing import enable_tracing
from site_search.search.analyzers import available_analyzers
from site_search.search.indexer import SiteIndexer, build_indexing_context
from site_search.search.render import ResultRenderer
from site_search.search.snippet import HIGHLIGHT_STYLE_HTML, HIGHLIGHT_STYLE_PLAIN
from site_search.search.storage import StorageError
from site_search.session import FileIndexSource, HttpIndexSource, IndexSource, SearchSession


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NO_MATCHES = 2


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="site-search",
        description="Build and query a static full-text search index for a generated site",
    )
    parser.add_argument("--log-level", help="Logging level (default: SITE_SEARCH_LOG_LEVEL or info)")
    parser.add_argument("--log-json", action="store_true", help="Emit structured JSON logs")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser("build", help="Index the site and write the JSON artifacts")
    build.add_argument("--site-root", type=Path, help="Root directory of the generated site")
    build.add_argument("--output-dir", type=Path, help="Directory receiving the JSON artifacts")
    build.add_argument("--url-prefix", help="URL prefix prepended to page paths, e.g. /blog/")
    build.add_argument(
        "--analyzer",
        choices=available_analyzers(),
        help="Analyzer used for documents and queries (default: auto)",
    )
    build.add_argument("--max-workers", type=int, help="Threads used for per-document tokenization")
    build.add_argument("--dry-run", action="store_true", help="Build the index without writing artifacts")

    query = subparsers.add_parser("query", help="Search previously built artifacts")
    query.add_argument("query", help="Free-text query")
    source = query.add_mutually_exclusive_group()
    source.add_argument("--index-dir", type=Path, help="Directory holding the artifacts (default: output dir)")
    source.add_argument("--index-url", help="Base URL serving the artifacts")
    query.add_argument(
        "--format",
        choices=("text", "html"),
        default="text",
        help="Render results as plain text or HTML fragments",
    )
    query.add_argument("--limit", type=int, help="Maximum number of results")
    return parser


def _validate_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    if getattr(args, "max_workers", None) is not None and args.max_workers < 1:
        parser.error("--max-workers must be >= 1")
    if getattr(args, "limit", None) is not None and args.limit < 1:
        parser.error("--limit must be >= 1")


def run_build(args: argparse.Namespace, settings: Settings) -> int:
    overrides: dict[str, object] = {
        "site_root": args.site_root,
        "output_dir": args.output_dir,
        "analyzer_name": args.analyzer,
        "max_workers": args.max_workers,
    }
    if args.url_prefix is not None:
        overrides["url_prefix"] = normalize_url_prefix(args.url_prefix)
    context = build_indexing_context(settings, **overrides)

    try:
        result = SiteIndexer(context).build(persist=not args.dry_run)
    except (OSError, StorageError) as exc:
        logger.error("Index build failed: %s", exc)
        return EXIT_ERROR

    print(
        f"Indexed {result.documents_indexed} page(s), skipped {result.documents_skipped} "
        f"(analyzer: {result.analyzer_name})"
    )
    for error in result.errors:
        print(f"  skipped: {error}")
    if result.index_path is not None and result.store_path is not None:
        print(f"Wrote {result.index_path}")
        print(f"Wrote {result.store_path}")
    return EXIT_OK


def run_query(args: argparse.Namespace, settings: Settings) -> int:
    style = HIGHLIGHT_STYLE_HTML if args.format == "html" else HIGHLIGHT_STYLE_PLAIN
    source: IndexSource
    if args.index_url:
        source = HttpIndexSource(
            args.index_url,
            index_filename=settings.index_filename,
            store_filename=settings.store_filename,
        )
    else:
        source = FileIndexSource(
            args.index_dir or settings.output_dir,
            index_filename=settings.index_filename,
            store_filename=settings.store_filename,
        )

    session = SearchSession(
        source,
        renderer=ResultRenderer(style=style),
        settings=settings,
        limit=args.limit,
    )
    asyncio.run(session.load())
    response = session.search(args.query)
    _print_response(response)

    if response.status is SearchStatus.MATCHES:
        return EXIT_OK
    if response.status is SearchStatus.UNAVAILABLE:
        return EXIT_ERROR
    return EXIT_NO_MATCHES


def _print_response(response: RenderedResponse) -> None:
    print(response.message)
    for position, result in enumerate(response.results, start=1):
        print(f"{position:>3}. {result.title}  ({result.ref}, score {result.score:.3f})")
        if result.snippet:
            print(f"     {result.snippet}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_argument_parser()
    args = parser.parse_args(argv)
    _validate_args(parser, args)

    try:
        settings = Settings()
    except ValidationError as exc:
        configure_logging(level=args.log_level or "info", json_output=args.log_json)
        logger.error("Invalid configuration: %s", exc)
        return EXIT_ERROR

    json_logs = args.log_json or settings.log_json
    configure_logging(level=args.log_level or settings.log_level, json_output=json_logs)
    if json_logs:
        enable_tracing()

    if args.command == "build":
        return run_build(args, settings)
    return run_query(args, settings)


if __name__ == "__main__":
    sys.exit(main())
