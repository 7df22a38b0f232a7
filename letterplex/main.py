"""Entry point that wires the clients together and runs one sync."""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack

import httpx
from pydantic import ValidationError

from .config import Settings, get_settings
from .exceptions import LetterplexError
from .services.letterboxd import LetterboxdClient
from .services.plex import PlexClient
from .services.sync import SyncReport, WatchlistSync

logger = logging.getLogger(__name__)


async def run_sync(
    settings: Settings,
    *,
    letterboxd_transport: httpx.AsyncBaseTransport | None = None,
    plex_transport: httpx.AsyncBaseTransport | None = None,
) -> SyncReport:
    """Log into Letterboxd and copy its watchlist onto Plex.

    Raises ``ConfigurationError``, ``AuthenticationError`` or ``FetchError``
    when the run cannot start; per-title failures end up in the report.
    """

    settings.require_credentials()
    timeout = httpx.Timeout(settings.http_timeout_seconds, connect=10.0)

    async with AsyncExitStack() as exit_stack:
        letterboxd_http = await exit_stack.enter_async_context(
            httpx.AsyncClient(
                base_url=str(settings.letterboxd_url),
                timeout=timeout,
                follow_redirects=True,
                transport=letterboxd_transport,
            )
        )
        plex_http = await exit_stack.enter_async_context(
            httpx.AsyncClient(timeout=timeout, transport=plex_transport)
        )

        letterboxd = LetterboxdClient(settings, letterboxd_http)
        plex = PlexClient(settings, plex_http)

        await letterboxd.login()
        sync = WatchlistSync(letterboxd, plex, concurrency=settings.sync_concurrency)
        return await sync.run()


def main(settings: Settings | None = None) -> int:
    """Run a sync and return the process exit status."""

    try:
        resolved = settings if settings is not None else get_settings()
    except ValidationError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.error("Invalid configuration: %s", exc)
        return 1

    logging.basicConfig(
        level=resolved.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        report = asyncio.run(run_sync(resolved))
    except LetterplexError as exc:
        logger.error("Sync aborted: %s", exc)
        return 1

    logger.info("Sync finished: %s", report.summary())
    return 0
