"""Reconcile the Letterboxd watchlist into the Plex watchlist."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Sequence, TypeVar

from ..exceptions import SearchGroupNotFoundError
from ..models import SearchCandidate, WatchlistRecord
from .letterboxd import LetterboxdClient
from .plex import PlexClient

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(slots=True)
class SyncReport:
    """Outcome of a single sync run."""

    fetched: list[WatchlistRecord] = field(default_factory=list)
    matched: list[WatchlistRecord] = field(default_factory=list)
    unmatched: list[WatchlistRecord] = field(default_factory=list)
    failed_searches: list[WatchlistRecord] = field(default_factory=list)
    added: list[WatchlistRecord] = field(default_factory=list)
    failed_adds: list[WatchlistRecord] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"{len(self.fetched)} fetched, {len(self.matched)} matched, "
            f"{len(self.unmatched)} not found, {len(self.failed_searches)} search failures, "
            f"{len(self.added)} added, {len(self.failed_adds)} add failures"
        )


def select_exact_match(
    record: WatchlistRecord, candidates: Iterable[SearchCandidate]
) -> SearchCandidate | None:
    """Return the first candidate whose title and year equal the record's.

    Titles are compared verbatim. When several candidates qualify the earliest
    one in search order wins, regardless of score.
    """

    for candidate in candidates:
        if candidate.matches(record.title, record.year):
            return candidate
    return None


class WatchlistSync:
    """Drive fetch, search and add across the two services."""

    def __init__(
        self,
        letterboxd: LetterboxdClient,
        plex: PlexClient,
        *,
        concurrency: int = 1,
    ):
        self._letterboxd = letterboxd
        self._plex = plex
        self._concurrency = max(1, int(concurrency))

    async def run(self) -> SyncReport:
        """Fetch the Letterboxd watchlist and push every exact match to Plex.

        Nothing is remembered between runs, so repeating a run repeats the same
        add calls.
        """

        report = SyncReport()
        report.fetched = await self._letterboxd.fetch_watchlist()
        resolved = await self.resolve(report.fetched, report=report)
        await self.write(resolved, report=report)
        return report

    async def fetch_target_watchlist(self) -> list[WatchlistRecord]:
        """Return what is already on the Plex watchlist."""

        return await self._plex.fetch_watchlist()

    async def resolve(
        self,
        records: Sequence[WatchlistRecord],
        *,
        report: SyncReport | None = None,
    ) -> list[WatchlistRecord]:
        """Match each record against Plex search; unmatched records are dropped."""

        report = report if report is not None else SyncReport()
        results = await self._map_bounded(self._resolve_one, records)

        resolved: list[WatchlistRecord] = []
        for record, result in zip(records, results):
            if isinstance(result, Exception):
                logger.warning(
                    "Search for %s failed: %s", record.label(), result
                )
                report.failed_searches.append(record)
                continue
            if result is None:
                report.unmatched.append(record)
                continue
            resolved.append(result)
        report.matched.extend(resolved)
        return resolved

    async def _resolve_one(self, record: WatchlistRecord) -> WatchlistRecord | None:
        try:
            candidates = await self._plex.search(record.title, record.year)
        except SearchGroupNotFoundError:
            logger.debug("No external search results for %s", record.label())
            candidates = []

        match = select_exact_match(record, candidates)
        if match is None:
            logger.info("Did not find %s in Plex search", record.label())
            return None
        logger.info(
            "Found %s in Plex search, ratingKey=%s", record.label(), match.rating_key
        )
        return record.resolved(match.rating_key)

    async def write(
        self,
        records: Sequence[WatchlistRecord],
        *,
        report: SyncReport | None = None,
    ) -> SyncReport:
        """Add every resolved record to the Plex watchlist, one outcome per record."""

        report = report if report is not None else SyncReport()
        pending = [
            (record, record.external_id)
            for record in records
            if record.external_id is not None
        ]
        results = await self._map_bounded(self._write_one, pending)

        for (record, _), result in zip(pending, results):
            if isinstance(result, Exception):
                logger.warning("Adding %s failed: %s", record.label(), result)
                report.failed_adds.append(record)
            elif result:
                logger.info("Added %s to the Plex watchlist", record.label())
                report.added.append(record)
            else:
                logger.warning("Plex did not add %s to the watchlist", record.label())
                report.failed_adds.append(record)
        return report

    async def _write_one(self, item: tuple[WatchlistRecord, str]) -> bool:
        record, rating_key = item
        logger.info("Adding %s to watchlist", record.label())
        return await self._plex.add_to_watchlist(rating_key)

    async def _map_bounded(
        self,
        func: Callable[[T], Awaitable[R]],
        items: Sequence[T],
    ) -> list[R | Exception]:
        """Run ``func`` over ``items`` with at most ``concurrency`` in flight.

        Results keep the order of ``items``; a failing item yields its
        exception in place of a result. Cancellation is re-raised.
        """

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _guarded(item: T) -> R:
            async with semaphore:
                return await func(item)

        tasks = [asyncio.create_task(_guarded(item)) for item in items]
        if not tasks:
            return []
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
        return list(results)
