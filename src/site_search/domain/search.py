"""Domain models for query results and rendered output.

Value objects are frozen so a rendered response cannot drift from the
ranking that produced it.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class QueryResult(BaseModel):
    """A ranked reference to an indexed page."""

    model_config = ConfigDict(frozen=True)

    ref: str
    score: float


class SearchStatus(str, Enum):
    """Outcome of a search as seen by the UI."""

    EMPTY_QUERY = "empty_query"
    MATCHES = "matches"
    NO_MATCHES = "no_matches"
    UNAVAILABLE = "unavailable"


class RenderedResult(BaseModel):
    """One display-ready result.

    ``title`` and ``snippet`` are already escaped and highlighted for the
    requested output style; they may be inserted into markup as-is.
    """

    model_config = ConfigDict(frozen=True)

    ref: str
    title: str
    snippet: str
    score: float


class RenderedResponse(BaseModel):
    """Complete renderer output including the status message to display."""

    model_config = ConfigDict(frozen=True)

    status: SearchStatus
    query: str = ""
    message: str = ""
    results: list[RenderedResult] = Field(default_factory=list)

    @property
    def has_results(self) -> bool:
        return bool(self.results)
