"""Utility helpers for parsing watchlist payloads."""

from __future__ import annotations

import csv
from typing import Iterator

EXPORT_MIN_FIELDS = 4


def parse_year(value: object) -> int:
    """Return ``value`` as a non-negative year, or ``0`` when it is unusable."""

    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value if value >= 0 else 0
    text = str(value or "").strip()
    if not text.isdigit():
        return 0
    try:
        return int(text)
    except ValueError:
        return 0


def iter_export_rows(content: str) -> Iterator[tuple[int, list[str]]]:
    """Yield ``(line_number, fields)`` for each data row of a CSV export.

    The header row is skipped. Each line is read on its own, so an unbalanced
    quote only spoils its own row. Quoted fields may contain the delimiter and
    doubled quotes, which a plain ``split(",")`` would mangle.
    """

    for line_number, line in enumerate(content.splitlines(), start=1):
        if line_number == 1 or not line.strip():
            continue
        try:
            fields = next(csv.reader([line]), [])
        except csv.Error:
            fields = [line]
        if not any(field.strip() for field in fields):
            continue
        yield line_number, fields


def split_export_row(fields: list[str]) -> tuple[str, str, str, str] | None:
    """Map a CSV row onto ``(id, title, year, uri)``.

    The first field is the id and the title follows it; the year and uri are
    read from the end of the row. Rows that are too short yield ``None``.
    """

    if len(fields) < EXPORT_MIN_FIELDS:
        return None
    return fields[0], fields[1], fields[-2], fields[-1]
