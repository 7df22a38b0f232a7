"""Tests for the Letterboxd to Plex reconciliation pipeline."""

from __future__ import annotations

import asyncio
from typing import cast

import pytest

from letterplex.exceptions import (
    FetchError,
    SearchError,
    SearchGroupNotFoundError,
    WatchlistWriteError,
)
from letterplex.models import SearchCandidate, WatchlistRecord, WatchlistSource
from letterplex.services.letterboxd import LetterboxdClient
from letterplex.services.plex import PlexClient
from letterplex.services.sync import WatchlistSync, select_exact_match


def tracked(title: str, year: int) -> WatchlistRecord:
    return WatchlistRecord(title=title, year=year, source=WatchlistSource.LETTERBOXD)


def candidate(rating_key: str, title: str, year: int, score: float = 0.5) -> SearchCandidate:
    return SearchCandidate(
        rating_key=rating_key, title=title, media_type="movie", year=year, score=score
    )


class StubLetterboxd:
    """Letterboxd stand-in returning a fixed watchlist."""

    def __init__(self, records: list[WatchlistRecord] | Exception):
        self._records = records
        self.fetch_calls = 0

    async def fetch_watchlist(self) -> list[WatchlistRecord]:
        self.fetch_calls += 1
        if isinstance(self._records, Exception):
            raise self._records
        return list(self._records)


class StubPlex:
    """Plex stand-in that records every search and add."""

    def __init__(
        self,
        results: dict[tuple[str, int], list[SearchCandidate] | BaseException],
        add_outcomes: dict[str, bool | Exception] | None = None,
        delay: float = 0.0,
        delays: dict[str, float] | None = None,
    ):
        self._results = results
        self._add_outcomes = add_outcomes or {}
        self._delay = delay
        self._delays = delays or {}
        self.events: list[str] = []
        self.searches: list[tuple[str, int]] = []
        self.adds: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def search(self, title: str, year: int) -> list[SearchCandidate]:
        self.searches.append((title, year))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self._delays.get(title, self._delay))
        finally:
            self.in_flight -= 1
        self.events.append(f"search:{title}")
        result = self._results.get((title, year))
        if result is None:
            raise SearchGroupNotFoundError(title, year, "external")
        if isinstance(result, BaseException):
            raise result
        return result

    async def add_to_watchlist(self, rating_key: str) -> bool:
        self.adds.append(rating_key)
        self.events.append(f"add:{rating_key}")
        outcome = self._add_outcomes.get(rating_key, True)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def fetch_watchlist(self) -> list[WatchlistRecord]:
        return [
            WatchlistRecord(title="Heat", year=1995, source=WatchlistSource.PLEX, external_id="a1")
        ]


def build_sync(
    letterboxd: StubLetterboxd, plex: StubPlex, *, concurrency: int = 1
) -> WatchlistSync:
    return WatchlistSync(
        cast(LetterboxdClient, letterboxd),
        cast(PlexClient, plex),
        concurrency=concurrency,
    )


def test_select_exact_match_rejects_year_mismatch() -> None:
    record = tracked("Dune", 2021)
    candidates = [candidate("99", "Dune", 1984), candidate("100", "Dune", 2021)]

    assert select_exact_match(record, candidates) == candidates[1]


def test_select_exact_match_compares_titles_verbatim() -> None:
    record = tracked("Alien", 1979)

    assert select_exact_match(record, [candidate("1", "alien", 1979)]) is None
    assert select_exact_match(record, [candidate("1", "Alien ", 1979)]) is None
    assert select_exact_match(record, []) is None


def test_select_exact_match_prefers_first_candidate_over_score() -> None:
    record = tracked("Solaris", 2002)
    candidates = [
        candidate("low", "Solaris", 2002, score=0.1),
        candidate("high", "Solaris", 2002, score=0.9),
    ]

    assert select_exact_match(record, candidates).rating_key == "low"


@pytest.mark.anyio
async def test_run_adds_only_exact_matches() -> None:
    """Dune resolves exactly while Nope has no exact hit and is skipped."""

    letterboxd = StubLetterboxd([tracked("Dune", 2021), tracked("Nope", 2022)])
    plex = StubPlex(
        {
            ("Dune", 2021): [candidate("99", "Dune", 1984), candidate("100", "Dune", 2021)],
            ("Nope", 2022): [candidate("7", "Nope", 2021)],
        }
    )

    report = await build_sync(letterboxd, plex).run()

    assert plex.searches == [("Dune", 2021), ("Nope", 2022)]
    assert plex.adds == ["100"]
    assert report.matched == [
        WatchlistRecord(title="Dune", year=2021, source=WatchlistSource.PLEX, external_id="100")
    ]
    assert report.unmatched == [tracked("Nope", 2022)]
    assert [record.external_id for record in report.added] == ["100"]
    assert report.failed_adds == []


@pytest.mark.anyio
async def test_missing_or_empty_external_group_does_not_stop_other_titles() -> None:
    letterboxd = StubLetterboxd(
        [tracked("Absent", 2000), tracked("Empty", 2001), tracked("Heat", 1995)]
    )
    plex = StubPlex(
        {
            ("Empty", 2001): [],
            ("Heat", 1995): [candidate("a1", "Heat", 1995)],
        }
    )

    report = await build_sync(letterboxd, plex).run()

    assert plex.adds == ["a1"]
    assert report.unmatched == [tracked("Absent", 2000), tracked("Empty", 2001)]
    assert report.failed_searches == []


@pytest.mark.anyio
async def test_search_failure_is_isolated_to_its_record() -> None:
    letterboxd = StubLetterboxd([tracked("Broken", 1990), tracked("Heat", 1995)])
    plex = StubPlex(
        {
            ("Broken", 1990): SearchError("Broken", 1990, "HTTP 500"),
            ("Heat", 1995): [candidate("a1", "Heat", 1995)],
        }
    )

    report = await build_sync(letterboxd, plex).run()

    assert report.failed_searches == [tracked("Broken", 1990)]
    assert plex.adds == ["a1"]


@pytest.mark.anyio
async def test_write_failures_do_not_abort_the_batch() -> None:
    records = [
        tracked("Rejected", 2001).resolved("r1"),
        tracked("Dropped", 2002).resolved("r2"),
        tracked("Accepted", 2003).resolved("r3"),
        tracked("Unresolved", 2004),
    ]
    plex = StubPlex(
        {},
        add_outcomes={"r1": False, "r2": WatchlistWriteError("r2", "connection reset")},
    )

    report = await build_sync(StubLetterboxd([]), plex).write(records)

    assert plex.adds == ["r1", "r2", "r3"]
    assert [record.external_id for record in report.added] == ["r3"]
    assert [record.external_id for record in report.failed_adds] == ["r1", "r2"]


@pytest.mark.anyio
async def test_repeated_runs_repeat_the_same_adds() -> None:
    letterboxd = StubLetterboxd([tracked("Dune", 2021)])
    plex = StubPlex({("Dune", 2021): [candidate("100", "Dune", 2021)]})
    sync = build_sync(letterboxd, plex)

    first = await sync.run()
    second = await sync.run()

    assert plex.adds == ["100", "100"]
    assert letterboxd.fetch_calls == 2
    assert first.summary() == second.summary()


@pytest.mark.anyio
async def test_resolve_bounds_concurrency_and_keeps_order() -> None:
    titles = [(f"Film {index}", 2000 + index) for index in range(10)]
    plex = StubPlex(
        {key: [candidate(str(index), *key)] for index, key in enumerate(titles)},
        delay=0.01,
    )
    sync = build_sync(StubLetterboxd([]), plex, concurrency=3)

    resolved = await sync.resolve([tracked(title, year) for title, year in titles])

    assert plex.max_in_flight <= 3
    assert plex.max_in_flight > 1
    assert [record.external_id for record in resolved] == [str(i) for i in range(10)]


@pytest.mark.anyio
async def test_fetch_failure_propagates() -> None:
    plex = StubPlex({})
    sync = build_sync(StubLetterboxd(FetchError("export unavailable")), plex)

    with pytest.raises(FetchError):
        await sync.run()
    assert plex.searches == []


@pytest.mark.anyio
async def test_fetch_target_watchlist_reads_plex() -> None:
    sync = build_sync(StubLetterboxd([]), StubPlex({}))

    records = await sync.fetch_target_watchlist()

    assert [record.external_id for record in records] == ["a1"]


@pytest.mark.anyio
async def test_every_search_finishes_before_the_first_add() -> None:
    """Fast matches wait for slow searches before anything is written."""

    letterboxd = StubLetterboxd(
        [tracked("Quick", 2001), tracked("Slow", 2002), tracked("Slower", 2003)]
    )
    plex = StubPlex(
        {
            ("Quick", 2001): [candidate("q", "Quick", 2001)],
            ("Slow", 2002): [candidate("s", "Slow", 2002)],
            ("Slower", 2003): [candidate("z", "Slower", 2003)],
        },
        delays={"Quick": 0.0, "Slow": 0.02, "Slower": 0.04},
    )

    await build_sync(letterboxd, plex, concurrency=3).run()

    first_add = next(i for i, event in enumerate(plex.events) if event.startswith("add:"))
    searches = [i for i, event in enumerate(plex.events) if event.startswith("search:")]
    assert len(searches) == 3
    assert max(searches) < first_add
    assert sorted(plex.adds) == ["q", "s", "z"]


@pytest.mark.anyio
async def test_cancelled_search_is_not_reported_as_a_failure() -> None:
    plex = StubPlex(
        {
            ("Heat", 1995): [candidate("a1", "Heat", 1995)],
            ("Stopped", 2000): asyncio.CancelledError(),
        }
    )
    sync = build_sync(StubLetterboxd([]), plex, concurrency=2)

    with pytest.raises(asyncio.CancelledError):
        await sync.resolve([tracked("Heat", 1995), tracked("Stopped", 2000)])
