"""Tests for the pure parts of kindred.anniversaries.store.

Covers calendar-field resolution for create/update and the merge/filter/sort
step of the month query. No database is needed.
"""

from __future__ import annotations

import uuid
from datetime import date

import pytest

from kindred.anniversaries.hebrew import to_hebrew_key
from kindred.anniversaries.models import (
    AnniversaryEvent,
    AnniversaryValidationError,
    EventType,
    Occurrence,
)
from kindred.anniversaries.store import events_for_month, resolve_calendar_fields

pytestmark = pytest.mark.unit


def _event(
    name: str,
    anchor: date,
    *,
    type: EventType = EventType.BIRTHDAY,
    is_annual: bool = True,
    use_hebrew: bool = False,
    occurrences: list[Occurrence] | None = None,
) -> AnniversaryEvent:
    return AnniversaryEvent(
        id=uuid.uuid4(),
        site_id="site-1",
        name=name,
        type=type,
        date=anchor,
        year=anchor.year,
        month=anchor.month,
        day=anchor.day,
        is_annual=is_annual,
        use_hebrew=use_hebrew,
        hebrew_key=str(to_hebrew_key(anchor)) if use_hebrew else None,
        occurrences=occurrences,
    )


# ---------------------------------------------------------------------------
# resolve_calendar_fields
# ---------------------------------------------------------------------------


class TestResolveCalendarFields:
    def test_solar_event_has_no_hebrew_fields(self):
        fields = resolve_calendar_fields(
            EventType.BIRTHDAY,
            date(1990, 7, 4),
            is_annual=True,
            use_hebrew=False,
            horizon_year=2030,
            current_year=2026,
        )
        assert (fields.year, fields.month, fields.day) == (1990, 7, 4)
        assert fields.hebrew_key is None
        assert fields.hebrew_date is None
        assert fields.occurrences is None

    def test_hebrew_annual_event_projects_to_horizon(self):
        fields = resolve_calendar_fields(
            EventType.BIRTHDAY,
            date(2024, 10, 3),
            is_annual=True,
            use_hebrew=True,
            horizon_year=2030,
            current_year=2026,
        )
        assert fields.hebrew_key == "Tishrei 1"
        assert fields.hebrew_date
        assert [occ.year for occ in fields.occurrences] == list(range(2026, 2031))

    def test_hebrew_non_annual_event_has_key_but_no_occurrences(self):
        fields = resolve_calendar_fields(
            EventType.WEDDING,
            date(2024, 10, 3),
            is_annual=False,
            use_hebrew=True,
            horizon_year=2030,
            current_year=2026,
        )
        assert fields.hebrew_key == "Tishrei 1"
        assert fields.occurrences is None

    def test_death_date_becomes_anchor(self):
        fields = resolve_calendar_fields(
            EventType.DEATH,
            date(2020, 1, 1),
            is_annual=True,
            use_hebrew=True,
            death_date=date(2020, 3, 1),
            burial_date=date(2020, 5, 3),
            horizon_year=2026,
            current_year=2020,
        )
        assert fields.date == date(2020, 3, 1)
        assert fields.death_date == date(2020, 3, 1)
        assert fields.hebrew_key == "Adar 5"
        assert fields.hebrew_burial_key == str(to_hebrew_key(date(2020, 5, 3)))
        assert fields.hebrew_burial_date
        assert min(occ.year for occ in fields.occurrences) >= 2021

    def test_death_date_defaults_to_anchor(self):
        fields = resolve_calendar_fields(
            EventType.DEATH_MEMORIAL,
            date(2020, 3, 1),
            is_annual=True,
            use_hebrew=False,
            horizon_year=2026,
        )
        assert fields.death_date == date(2020, 3, 1)

    def test_burial_before_death_rejected(self):
        with pytest.raises(AnniversaryValidationError, match="burial_date"):
            resolve_calendar_fields(
                EventType.DEATH,
                date(2020, 3, 1),
                is_annual=True,
                use_hebrew=True,
                burial_date=date(2020, 2, 1),
                horizon_year=2026,
            )

    def test_death_fields_rejected_for_other_types(self):
        with pytest.raises(AnniversaryValidationError):
            resolve_calendar_fields(
                EventType.BIRTHDAY,
                date(2020, 3, 1),
                is_annual=True,
                use_hebrew=False,
                burial_date=date(2020, 5, 3),
                horizon_year=2026,
            )


# ---------------------------------------------------------------------------
# events_for_month
# ---------------------------------------------------------------------------


class TestEventsForMonth:
    def test_solar_and_hebrew_events_are_merged_by_day(self):
        solar = _event("Solar", date(1990, 3, 10))
        hebrew = _event(
            "Hebrew",
            date(2024, 3, 1),
            use_hebrew=True,
            occurrences=[Occurrence(2025, 3, 11), Occurrence(2026, 3, 22)],
        )

        result = events_for_month([hebrew, solar], 3, 2026)

        assert [e.name for e in result] == ["Solar", "Hebrew"]
        assert [e.day for e in result] == [10, 22]

    def test_hebrew_row_carries_matched_occurrence(self):
        hebrew = _event(
            "Hebrew",
            date(2024, 3, 1),
            use_hebrew=True,
            occurrences=[Occurrence(2026, 3, 22)],
        )

        (matched,) = events_for_month([hebrew], 3, 2026)

        assert matched.date == date(2026, 3, 22)
        assert (matched.year, matched.month, matched.day) == (2026, 3, 22)
        assert matched.id == hebrew.id
        assert matched.hebrew_key == hebrew.hebrew_key
        # The stored event is untouched.
        assert hebrew.date == date(2024, 3, 1)

    def test_hebrew_event_without_occurrence_in_month_is_excluded(self):
        hebrew = _event(
            "Hebrew",
            date(2024, 3, 1),
            use_hebrew=True,
            occurrences=[Occurrence(2026, 4, 2)],
        )
        assert events_for_month([hebrew], 3, 2026) == []

    def test_non_annual_events_match_only_their_year(self):
        once = _event("Once", date(2026, 3, 5), is_annual=False)

        assert events_for_month([once], 3, 2026) == [once]
        assert events_for_month([once], 3, 2027) == []

    def test_non_annual_hebrew_event_matches_its_literal_date(self):
        once = _event("Once", date(2026, 3, 5), is_annual=False, use_hebrew=True)

        assert events_for_month([once], 3, 2026) == [once]
        assert events_for_month([once], 3, 2027) == []

    def test_other_months_excluded(self):
        assert events_for_month([_event("July", date(1990, 7, 4))], 3, 2026) == []

    def test_ties_ordered_by_name(self):
        b = _event("Bravo", date(1990, 3, 10))
        a = _event("Alpha", date(1985, 3, 10))

        assert [e.name for e in events_for_month([b, a], 3, 2026)] == ["Alpha", "Bravo"]
