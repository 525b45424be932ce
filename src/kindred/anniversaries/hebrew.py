"""Solar <-> Hebrew calendar conversion for anniversary matching.

Everything here is pure and stateless. A Hebrew-anchored event is matched by
its *Hebrew key*: the Hebrew month name plus day of month (``"Av 15"``),
which is independent of the Hebrew year. Projecting a key onto a solar year
means finding the day in that solar year on which the Hebrew month/day falls.

Month naming follows the usual English transliteration. In a leap year the
twelfth month is ``Adar I`` and the thirteenth ``Adar II``; in a common year
the twelfth month is plain ``Adar``. A key therefore only maps onto Hebrew
years that actually contain its month, and a ``30`` key only maps onto years
in which that month has thirty days (Cheshvan and Kislev vary, Adar in a
common year always has 29).
"""

from __future__ import annotations

import logging
from datetime import date
from typing import NamedTuple

from pyluach import dates, hebrewcal

logger = logging.getLogger(__name__)

# Hebrew year H begins in the autumn of solar year H - 3761, so a solar year Y
# overlaps Hebrew years Y + 3760 (January to Elul) and Y + 3761 (Tishrei on).
_HEBREW_YEAR_OFFSET = 3760

# pyluach numbers months from Nisan (1); 12 is Adar / Adar I, 13 is Adar II.
_FIXED_MONTH_NAMES: dict[int, str] = {
    1: "Nisan",
    2: "Iyyar",
    3: "Sivan",
    4: "Tamuz",
    5: "Av",
    6: "Elul",
    7: "Tishrei",
    8: "Cheshvan",
    9: "Kislev",
    10: "Tevet",
    11: "Sh'vat",
}
_FIXED_MONTH_NUMBERS: dict[str, int] = {name: num for num, name in _FIXED_MONTH_NAMES.items()}

ADAR = "Adar"
ADAR_I = "Adar I"
ADAR_II = "Adar II"

MONTH_NAMES: tuple[str, ...] = (*_FIXED_MONTH_NAMES.values(), ADAR, ADAR_I, ADAR_II)


class HebrewKey(NamedTuple):
    """Year-independent Hebrew month/day pair."""

    month: str
    day: int

    def __str__(self) -> str:
        return f"{self.month} {self.day}"


def parse_hebrew_key(value: str | HebrewKey) -> HebrewKey:
    """Parse the stored ``"<month> <day>"`` form of a key.

    Raises
    ------
    ValueError
        If the month name is unknown or the day is not an integer in 1..30.
    """
    if isinstance(value, HebrewKey):
        return value
    month, sep, day_text = str(value).strip().rpartition(" ")
    if not sep or month not in MONTH_NAMES:
        raise ValueError(f"Invalid Hebrew key: {value!r}")
    try:
        day = int(day_text)
    except ValueError:
        raise ValueError(f"Invalid Hebrew key: {value!r}") from None
    if not 1 <= day <= 30:
        raise ValueError(f"Invalid Hebrew key day: {value!r}")
    return HebrewKey(month, day)


def is_leap_year(hebrew_year: int) -> bool:
    """Return True when *hebrew_year* has thirteen months."""
    return hebrewcal.Year(hebrew_year).leap


def month_name(hebrew_year: int, month: int) -> str:
    """Return the key month name for a pyluach month number in *hebrew_year*."""
    if month == 12:
        return ADAR_I if is_leap_year(hebrew_year) else ADAR
    if month == 13:
        return ADAR_II
    return _FIXED_MONTH_NAMES[month]


def month_number(hebrew_year: int, name: str) -> int | None:
    """Return the pyluach month number for *name* in *hebrew_year*.

    ``None`` when the month does not exist in that year (``Adar`` in a leap
    year, ``Adar I``/``Adar II`` in a common year).
    """
    if name in _FIXED_MONTH_NUMBERS:
        return _FIXED_MONTH_NUMBERS[name]
    leap = is_leap_year(hebrew_year)
    if name == ADAR:
        return None if leap else 12
    if name == ADAR_I:
        return 12 if leap else None
    if name == ADAR_II:
        return 13 if leap else None
    raise ValueError(f"Unknown Hebrew month name: {name!r}")


def month_length(hebrew_year: int, month: int) -> int:
    """Return the number of days (29 or 30) of *month* in *hebrew_year*."""
    last_safe = dates.HebrewDate(hebrew_year, month, 29)
    return 30 if (last_safe + 1).month == month else 29


def _hebrew_date_for_key(hebrew_year: int, key: HebrewKey) -> dates.HebrewDate | None:
    month = month_number(hebrew_year, key.month)
    if month is None:
        return None
    if key.day > month_length(hebrew_year, month):
        return None
    return dates.HebrewDate(hebrew_year, month, key.day)


def to_hebrew_key(value: date) -> HebrewKey:
    """Encode the Hebrew month and day of a solar date."""
    hd = dates.HebrewDate.from_pydate(value)
    return HebrewKey(month_name(hd.year, hd.month), hd.day)


def to_hebrew_display(value: date) -> str:
    """Render a solar date as a Hebrew-letter date with year (display only)."""
    return dates.HebrewDate.from_pydate(value).hebrew_date_string()


def _same_day_in_year(reference: date, year: int) -> date:
    try:
        return reference.replace(year=year)
    except ValueError:
        # 29 February in a common year
        return date(year, 2, 28)


def find_solar_date_for_key_in_year(
    key: str | HebrewKey,
    solar_year: int,
    near: date | None = None,
) -> date | None:
    """Find the solar date in *solar_year* on which the Hebrew *key* falls.

    Both Hebrew years overlapping the solar year are examined. Returns
    ``None`` when the month/day does not exist in either of them or when
    neither conversion lands inside *solar_year*.

    A Hebrew date can fall twice in one solar year (early Tevet after a short
    Hebrew year lands in both early January and late December). In that case
    the candidate closest to *near*'s month/day is returned, or the earliest
    when *near* is not given. Callers that need the round-trip
    ``find(to_hebrew_key(d), d.year, near=d) == d`` must pass *near*; without
    it the December date of such a pair resolves to its January twin.
    """
    parsed = parse_hebrew_key(key)
    candidates: list[date] = []
    for hebrew_year in (solar_year + _HEBREW_YEAR_OFFSET, solar_year + _HEBREW_YEAR_OFFSET + 1):
        hd = _hebrew_date_for_key(hebrew_year, parsed)
        if hd is None:
            continue
        solar = hd.to_pydate()
        if solar.year == solar_year:
            candidates.append(solar)

    if not candidates:
        logger.debug("Hebrew key %s has no date in solar year %d", parsed, solar_year)
        return None
    if near is None or len(candidates) == 1:
        return min(candidates)

    target = _same_day_in_year(near, solar_year)
    return min(candidates, key=lambda candidate: (abs((candidate - target).days), candidate))
