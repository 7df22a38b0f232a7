"""Watchlist records and the Plex search payload models."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils import parse_year


class WatchlistSource(str, Enum):
    """Service a watchlist record was read from."""

    LETTERBOXD = "letterboxd"
    PLEX = "plex"
    UNKNOWN = "unknown"


@dataclass(slots=True, frozen=True)
class WatchlistRecord:
    """A single watchlist entry, independent of the service it came from.

    ``year`` is ``0`` when the source did not report a usable year.
    ``external_id`` holds the Plex rating key and is only set once the title
    has been matched against Plex.
    """

    title: str
    year: int = 0
    source: WatchlistSource = WatchlistSource.UNKNOWN
    external_id: str | None = None

    @classmethod
    def empty(cls, source: WatchlistSource) -> "WatchlistRecord":
        return cls(title="", year=0, source=source, external_id=None)

    def is_empty(self) -> bool:
        return self == WatchlistRecord.empty(self.source)

    def resolved(self, rating_key: str) -> "WatchlistRecord":
        """Return a Plex-side copy of this record keyed by ``rating_key``."""

        return replace(self, source=WatchlistSource.PLEX, external_id=rating_key)

    def label(self) -> str:
        return f"{self.title} ({self.year})"


@dataclass(slots=True, frozen=True)
class SearchCandidate:
    """Normalized view of one Plex search hit."""

    rating_key: str
    title: str
    media_type: str
    year: int
    score: float

    def matches(self, title: str, year: int) -> bool:
        return self.title == title and self.year == year


class SearchMetadata(BaseModel):
    """``Metadata`` block of a Plex search hit."""

    model_config = ConfigDict(populate_by_name=True)

    rating_key: str = Field(alias="ratingKey")
    title: str = ""
    type: str = ""
    year: int = 0

    @field_validator("rating_key", mode="before")
    @classmethod
    def _coerce_rating_key(cls, value: object) -> object:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("year", mode="before")
    @classmethod
    def _coerce_year(cls, value: object) -> int:
        return parse_year(value)


class SearchResultEntry(BaseModel):
    """A scored hit inside a search result group."""

    model_config = ConfigDict(populate_by_name=True)

    metadata: SearchMetadata = Field(alias="Metadata")
    score: float = 0.0

    def to_candidate(self) -> SearchCandidate:
        return SearchCandidate(
            rating_key=self.metadata.rating_key,
            title=self.metadata.title,
            media_type=self.metadata.type,
            year=self.metadata.year,
            score=self.score,
        )


class SearchResultGroup(BaseModel):
    """Results contributed by one search provider."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = ""
    size: int = 0
    results: list[SearchResultEntry] = Field(default_factory=list, alias="SearchResult")


class MediaContainer(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    size: int = 0
    search_results: list[SearchResultGroup] = Field(
        default_factory=list, alias="SearchResults"
    )


class SearchResponse(BaseModel):
    """Envelope returned by the Plex discover search endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    media_container: MediaContainer = Field(alias="MediaContainer")

    def group(self, group_id: str) -> SearchResultGroup | None:
        """Return the result group with ``group_id`` if Plex sent one."""

        for group in self.media_container.search_results:
            if group.id == group_id:
                return group
        return None
