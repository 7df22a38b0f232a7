"""Utilities for communicating with the Plex metadata and discover APIs."""

from __future__ import annotations

import logging
from xml.etree import ElementTree

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..exceptions import (
    ConfigurationError,
    FetchError,
    SearchError,
    SearchGroupNotFoundError,
    WatchlistWriteError,
)
from ..models import SearchCandidate, SearchResponse, WatchlistRecord, WatchlistSource
from ..utils import parse_year

logger = logging.getLogger(__name__)

EXTERNAL_GROUP_ID = "external"


class PlexClient:
    """Thin wrapper around the Plex watchlist endpoints.

    Watchlist listings live on the metadata host while search and watchlist
    writes go through the discover host, so URLs are built per call.
    """

    _WATCHLIST_PATH = "/library/sections/watchlist/all"
    _SEARCH_PATH = "/library/search"
    _ADD_PATH = "/actions/addToWatchlist"

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        *,
        token: str | None = None,
    ):
        resolved_token = token or settings.plex_token
        if not resolved_token:
            raise ConfigurationError("A Plex token is required when initialising PlexClient")
        self._settings = settings
        self._client = http_client
        self._token = resolved_token
        self._metadata_url = self._normalize_base_url(str(settings.plex_metadata_url))
        self._discover_url = self._normalize_base_url(str(settings.plex_discover_url))

    def _headers(self, *, accept: str | None = None) -> dict[str, str]:
        headers = {
            "X-Plex-Token": self._token,
            "User-Agent": f"{self._settings.app_name} (letterplex)",
        }
        if accept:
            headers["Accept"] = accept
        return headers

    async def fetch_watchlist(self) -> list[WatchlistRecord]:
        """Fetch the titles already on the user's Plex watchlist."""

        params = {
            "includeFields": "title,type,year,ratingKey",
            "includeElements": "Guid",
            "sort": "watchlistedAt:desc",
            "type": 1,
        }
        try:
            response = await self._client.get(
                f"{self._metadata_url}{self._WATCHLIST_PATH}",
                headers=self._headers(),
                params=params,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise FetchError(f"Failed to fetch Plex watchlist: {exc}") from exc

        watchlist = self.parse_watchlist_xml(response.text)
        logger.info("Fetched %s titles from the Plex watchlist", len(watchlist))
        return watchlist

    @staticmethod
    def parse_watchlist_xml(content: str) -> list[WatchlistRecord]:
        """Read ``<Video>`` elements from a watchlist listing.

        The document is consumed incrementally; a syntax error ends the parse
        and whatever was read before it is returned.
        """

        watchlist: list[WatchlistRecord] = []
        parser = ElementTree.XMLPullParser(events=("start",))
        try:
            parser.feed(content)
            for _, element in parser.read_events():
                if _local_name(element.tag).lower() != "video":
                    continue
                rating_key = element.get("ratingKey")
                record = WatchlistRecord(
                    title=element.get("title") or "",
                    year=parse_year(element.get("year")),
                    source=WatchlistSource.PLEX,
                    external_id=rating_key or None,
                )
                if record.is_empty():
                    continue
                watchlist.append(record)
            parser.close()
        except ElementTree.ParseError as exc:
            logger.warning(
                "Stopped reading Plex watchlist after %s titles: %s", len(watchlist), exc
            )
        return watchlist

    async def search(self, title: str, year: int) -> list[SearchCandidate]:
        """Return the external-provider search hits for ``title``, in ranked order."""

        params = {
            "query": title,
            "limit": self._settings.plex_search_limit,
            "searchTypes": "movies",
            "searchProviders": "discover",
            "includeMetadata": 1,
        }
        logger.info("Searching for %s (%s)", title, year)
        try:
            response = await self._client.get(
                f"{self._discover_url}{self._SEARCH_PATH}",
                headers=self._headers(accept="application/json, text/plain, */*"),
                params=params,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise SearchError(title, year, str(exc)) from exc

        try:
            payload = SearchResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise SearchError(title, year, "unexpected search response") from exc

        group = payload.group(EXTERNAL_GROUP_ID)
        if group is None:
            raise SearchGroupNotFoundError(title, year, EXTERNAL_GROUP_ID)
        return [entry.to_candidate() for entry in group.results]

    async def add_to_watchlist(self, rating_key: str) -> bool:
        """Add ``rating_key`` to the watchlist; ``True`` only on HTTP 200."""

        try:
            response = await self._client.put(
                f"{self._discover_url}{self._ADD_PATH}",
                headers=self._headers(),
                params={"ratingKey": rating_key},
            )
        except httpx.HTTPError as exc:
            raise WatchlistWriteError(rating_key, str(exc)) from exc

        if response.status_code == 200:
            return True
        logger.warning(
            "Plex rejected ratingKey=%s with status %s: %s",
            rating_key,
            response.status_code,
            response.text,
        )
        return False

    @staticmethod
    def _normalize_base_url(value: str) -> str:
        return value.strip().rstrip("/")


def _local_name(tag: str) -> str:
    if "}" in tag:
        return tag.rsplit("}", 1)[1]
    return tag
