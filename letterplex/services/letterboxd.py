"""Client for logging into Letterboxd and downloading the watchlist export."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import Settings
from ..exceptions import AuthenticationError, ConfigurationError, FetchError
from ..models import WatchlistRecord, WatchlistSource
from ..utils import iter_export_rows, parse_year, split_export_row

logger = logging.getLogger(__name__)


class LetterboxdClient:
    """Session-authenticated wrapper around the Letterboxd website.

    The session lives in the cookie jar of the injected ``httpx.AsyncClient``,
    whose ``base_url`` must point at Letterboxd.
    """

    _LOGIN_PATH = "/user/login.do"
    _EXPORT_PATH = "/{username}/watchlist/export"

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        *,
        username: str | None = None,
        password: str | None = None,
    ):
        resolved_username = username or settings.letterboxd_username
        resolved_password = password or settings.letterboxd_password
        if not (resolved_username and resolved_password):
            raise ConfigurationError("Letterboxd username and password are required")
        self._settings = settings
        self._client = http_client
        self._username = resolved_username
        self._password = resolved_password

    def _headers(self, *, accept: str = "*/*") -> dict[str, str]:
        return {
            "User-Agent": f"{self._settings.app_name} (letterplex)",
            "Accept": accept,
        }

    async def login(self) -> dict[str, Any]:
        """Run the two-step login handshake and return the final response body.

        The first POST only exists to obtain a CSRF token; the second repeats
        the credentials together with that token to establish the session.
        """

        form = {
            "authenticationCode": "",
            "username": self._username,
            "password": self._password,
            "remember": "true",
        }
        first = await self._post_login(form)
        csrf = first.get("csrf")
        if not isinstance(csrf, str) or not csrf:
            raise AuthenticationError("Letterboxd login did not return a CSRF token")

        second = await self._post_login({**form, "__csrf": csrf})
        if second.get("result") == "error":
            raise AuthenticationError(
                f"Letterboxd rejected the login for {self._username}"
            )
        logger.info("Logged into Letterboxd as %s", self._username)
        return second

    async def _post_login(self, form: dict[str, str]) -> dict[str, Any]:
        try:
            response = await self._client.post(
                self._LOGIN_PATH,
                data=form,
                headers=self._headers(accept="application/json, text/javascript, */*"),
            )
        except httpx.HTTPError as exc:
            raise AuthenticationError(
                f"Letterboxd login request failed: {exc}"
            ) from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthenticationError(
                f"Unexpected non-JSON Letterboxd login response (HTTP {response.status_code})"
            ) from exc
        if not isinstance(payload, dict):
            raise AuthenticationError("Unexpected Letterboxd login response structure")
        return payload

    async def fetch_watchlist(self) -> list[WatchlistRecord]:
        """Download and parse the authenticated user's watchlist export."""

        path = self._EXPORT_PATH.format(username=self._username)
        try:
            response = await self._client.get(path, headers=self._headers(accept="text/csv, */*"))
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise FetchError(f"Failed to fetch Letterboxd watchlist: {exc}") from exc

        watchlist = self.parse_watchlist_export(response.text)
        logger.info("Fetched %s titles from the Letterboxd watchlist", len(watchlist))
        return watchlist

    @staticmethod
    def parse_watchlist_export(content: str) -> list[WatchlistRecord]:
        """Convert a watchlist CSV export into records.

        Rows are ``id,title,year,uri``. Short rows and rows without a title are
        skipped; an unparseable year becomes ``0``.
        """

        watchlist: list[WatchlistRecord] = []
        for line_number, fields in iter_export_rows(content):
            row = split_export_row(fields)
            if row is None:
                logger.warning(
                    "Skipping truncated watchlist row %s: %r", line_number, fields
                )
                continue
            _, title, year, _ = row
            if not title.strip():
                logger.warning("Skipping watchlist row %s without a title", line_number)
                continue
            watchlist.append(
                WatchlistRecord(
                    title=title,
                    year=parse_year(year),
                    source=WatchlistSource.LETTERBOXD,
                )
            )
        return watchlist
