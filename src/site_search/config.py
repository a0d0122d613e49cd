"""Centralized configuration for site-search using Pydantic Settings."""

from datetime import datetime, timezone
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from site_search.search.analyzers import available_analyzers


def normalize_url_prefix(value: str) -> str:
    """Return ``value`` with exactly one leading and one trailing slash."""
    stripped = value.strip().strip("/")
    return f"/{stripped}/" if stripped else "/"


class Settings(BaseSettings):
    """Strictly typed configuration loaded from ``SITE_SEARCH_*`` environment variables.

    Command line flags override individual values; everything else falls back
    to the environment, then to an optional ``.env`` file, then to defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="SITE_SEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Build inputs
    site_root: Path = Field(default=Path(".."), description="Root directory of the generated site")
    include_glob: str = Field(default="**/index.html", description="Glob (relative to site_root) selecting pages")
    exclude_paths: str = Field(
        default="index.html",
        description="Comma-separated page paths (relative to site_root, POSIX style) left out of the index",
    )
    url_prefix: str = Field(default="/", description="URL prefix prepended to page paths, e.g. '/SideNote/'")

    # Build outputs
    output_dir: Path = Field(default=Path("."), description="Directory receiving the JSON artifacts")
    index_filename: str = Field(default="search-index.json", min_length=1, description="Serialized index file name")
    store_filename: str = Field(
        default="document-store.json", min_length=1, description="Serialized document store file name"
    )

    # Indexing
    analyzer: str = Field(default="auto", description="Analyzer name: auto, standard, standard-nostem or cjk")
    snippet_length: int = Field(default=150, ge=10, description="Characters of body text kept as snippet")
    snippet_marker: str = Field(default="...", description="Marker appended to truncated snippets")
    max_workers: int = Field(default=1, ge=1, description="Threads used for per-document tokenization")
    source_date_epoch: int | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("source_date_epoch", "SOURCE_DATE_EPOCH"),
        description="Unix time recorded as the index build time (reproducible builds); unset records none",
    )

    # Scoring
    title_boost: float = Field(default=10.0, gt=0.0, description="Weight of title matches")
    body_boost: float = Field(default=1.0, gt=0.0, description="Weight of body matches")
    prefix_discount: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Weight of prefix matches relative to exact matches"
    )
    max_expansions: int = Field(default=50, ge=0, description="Maximum prefix expansions per query token")
    max_results: int = Field(default=50, ge=1, description="Maximum results rendered per query")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=False, description="Emit structured JSON logs")

    @field_validator("analyzer")
    @classmethod
    def _check_analyzer(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in available_analyzers():
            raise ValueError(f"Unknown analyzer '{value}'. Available: {available_analyzers()}")
        return normalized

    @field_validator("url_prefix")
    @classmethod
    def _normalize_url_prefix(cls, value: str) -> str:
        return normalize_url_prefix(value)

    @model_validator(mode="after")
    def _check_boosts(self) -> "Settings":
        if self.body_boost > self.title_boost:
            raise ValueError(
                "SITE_SEARCH_BODY_BOOST must not exceed SITE_SEARCH_TITLE_BOOST; "
                "a title match has to count at least as much as a body match"
            )
        return self

    def build_timestamp(self) -> datetime | None:
        """Index build time taken from SOURCE_DATE_EPOCH, if set."""
        if self.source_date_epoch is None:
            return None
        return datetime.fromtimestamp(self.source_date_epoch, tz=timezone.utc)

    def get_exclude_paths(self) -> list[str]:
        """Get the list of excluded page paths."""
        if not self.exclude_paths:
            return []
        return [path.strip().strip("/") for path in self.exclude_paths.split(",") if path.strip().strip("/")]
