"""Error types raised by the Letterboxd and Plex clients."""

from __future__ import annotations


class LetterplexError(Exception):
    """Base class for every error raised by letterplex."""


class ConfigurationError(LetterplexError):
    """Required configuration is missing or invalid."""


class AuthenticationError(LetterplexError):
    """The Letterboxd login handshake did not complete."""


class FetchError(LetterplexError):
    """A watchlist could not be downloaded or decoded."""


class PlexError(LetterplexError):
    """Base class for per-title Plex failures."""


class SearchError(PlexError):
    """A Plex search request failed or returned an unreadable payload."""

    def __init__(self, title: str, year: int, message: str):
        self.title = title
        self.year = year
        super().__init__(f"Search for {title} ({year}) failed: {message}")


class SearchGroupNotFoundError(SearchError):
    """The search response carried no result group with the requested id."""

    def __init__(self, title: str, year: int, group_id: str):
        self.group_id = group_id
        super().__init__(title, year, f"no '{group_id}' result group")


class WatchlistWriteError(PlexError):
    """Adding a title to the Plex watchlist failed before a response arrived."""

    def __init__(self, rating_key: str, message: str):
        self.rating_key = rating_key
        super().__init__(f"Adding ratingKey={rating_key} failed: {message}")
