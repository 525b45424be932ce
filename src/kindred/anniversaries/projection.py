"""Projection of Hebrew-anchored events onto solar years.

Solar-anchored events never come through here: their yearly appearance is
plain year substitution done by the month query. For Hebrew-anchored events
each solar year needs a calendar search, so the results are materialised
into the event's ``occurrences`` list and only the missing years are ever
computed again.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date

from kindred.anniversaries.hebrew import HebrewKey, find_solar_date_for_key_in_year
from kindred.anniversaries.models import EventType, Occurrence

logger = logging.getLogger(__name__)


def burial_start_override(event_type: EventType, burial_date: date | None) -> int | None:
    """Return the first projectable year imposed by a burial date.

    Death and death-memorial events with a burial date start recurring the
    year after burial. Other events (or no burial date) impose nothing.
    """
    if burial_date is None or not EventType(event_type).is_death_type:
        return None
    return burial_date.year + 1


def projection_start(
    event_type: EventType,
    anchor_date: date,
    burial_date: date | None = None,
    *,
    current_year: int | None = None,
) -> int:
    """First solar year an event's Hebrew occurrences are projected from."""
    return first_projection_year(
        anchor_date,
        burial_start_override(event_type, burial_date),
        current_year,
    )


def solar_occurrence(anchor_date: date, year: int) -> Occurrence:
    """Return a solar-anchored event's appearance in *year*.

    Feb 29 anchors keep day 29 in every year, matching the month query,
    which compares months only.
    """
    return Occurrence(year, anchor_date.month, anchor_date.day)


def first_projection_year(
    anchor_date: date,
    start_year_override: int | None = None,
    current_year: int | None = None,
) -> int:
    """Return ``max(current year, anchor year, override)``."""
    if current_year is None:
        current_year = date.today().year
    override = start_year_override if start_year_override is not None else anchor_date.year
    return max(current_year, anchor_date.year, override)


def project_hebrew_occurrences(
    hebrew_key: str | HebrewKey,
    anchor_date: date,
    end_year: int,
    start_year_override: int | None = None,
    *,
    current_year: int | None = None,
    years: Iterable[int] | None = None,
) -> list[Occurrence]:
    """Project a Hebrew key onto every solar year from the start year to *end_year*.

    Years in which the Hebrew month/day does not exist are left out. When
    *years* is given only those years (clipped to the projection window) are
    computed.

    Returns
    -------
    list[Occurrence]
        Sorted by year ascending, at most one entry per year.
    """
    start_year = first_projection_year(anchor_date, start_year_override, current_year)
    if years is None:
        wanted = range(start_year, end_year + 1)
    else:
        wanted = sorted({y for y in years if start_year <= y <= end_year})

    result: list[Occurrence] = []
    for year in wanted:
        solar = find_solar_date_for_key_in_year(hebrew_key, year, near=anchor_date)
        if solar is None:
            logger.debug("No occurrence of %s in %d; skipping year", hebrew_key, year)
            continue
        result.append(Occurrence.from_date(solar))
    return result


def merge_occurrences(
    existing: Iterable[Occurrence] | None,
    additions: Iterable[Occurrence],
) -> list[Occurrence]:
    """Union two occurrence lists, one entry per year, sorted by year.

    Entries already present win over additions for the same year.
    """
    by_year: dict[int, Occurrence] = {}
    for occ in additions:
        by_year[occ.year] = occ
    for occ in existing or ():
        by_year[occ.year] = occ
    return [by_year[year] for year in sorted(by_year)]


def plan_backfill(
    existing: Iterable[Occurrence] | None,
    hebrew_key: str | HebrewKey,
    anchor_date: date,
    target_year: int,
    start_year_override: int | None = None,
    *,
    current_year: int | None = None,
) -> list[Occurrence]:
    """Compute occurrences for the years up to *target_year* not yet materialised.

    Years already present in *existing* are excluded before any calendar
    search runs, so re-running a backfill over a covered range computes
    nothing and returns an empty list.
    """
    present = {occ.year for occ in existing or ()}
    start_year = first_projection_year(anchor_date, start_year_override, current_year)
    missing = [year for year in range(start_year, target_year + 1) if year not in present]
    if not missing:
        return []
    return project_hebrew_occurrences(
        hebrew_key,
        anchor_date,
        target_year,
        start_year_override,
        current_year=current_year,
        years=missing,
    )
