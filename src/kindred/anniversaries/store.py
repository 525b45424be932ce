"""Anniversary persistence and month-query orchestration.

``AnniversaryStore`` is the only writer of ``anniversaries.occurrences``.
Solar-anchored events are matched on read by their denormalised month.
Hebrew-anchored annual events are matched against their materialised
occurrence list, which is kept complete up to the site's horizon year:

- create/update regenerate the whole list up to the current horizon;
- a month query for a year past the horizon first runs horizon extension,
  which appends only the missing years to every Hebrew event of the site in
  one transaction and then advances the horizon.

Create, update and extension all take the site's horizon row lock (shared
for event writes, exclusive for extension), so an event write can never
interleave with an extension and leave years unmaterialised.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import uuid
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from typing import Any

import asyncpg

from kindred.anniversaries.hebrew import to_hebrew_display, to_hebrew_key
from kindred.anniversaries.horizon import (
    advance_horizon,
    get_horizon_year,
    read_horizon,
)
from kindred.anniversaries.localization import LocaleFieldLocalizer, Localizer
from kindred.anniversaries.models import (
    AnniversaryEvent,
    AnniversaryNotFoundError,
    AnniversaryValidationError,
    EventType,
    Occurrence,
    occurrences_to_json,
)
from kindred.anniversaries.projection import (
    burial_start_override,
    merge_occurrences,
    plan_backfill,
    project_hebrew_occurrences,
    projection_start,
    solar_occurrence,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_LOOKAHEAD_YEARS = 200

_EVENT_COLUMNS = """
    id, site_id, name, description, type, image_url, date, year, month, day,
    is_annual, use_hebrew, hebrew_key, hebrew_date, death_date, burial_date,
    hebrew_burial_key, hebrew_burial_date, occurrences, locales, primary_locale,
    owner_id, created_by, created_at, updated_at
"""

_CREATE_FIELDS = frozenset(
    {
        "name",
        "description",
        "type",
        "date",
        "is_annual",
        "use_hebrew",
        "death_date",
        "burial_date",
        "image_url",
        "owner_id",
        "created_by",
    }
)
_UPDATE_FIELDS = _CREATE_FIELDS - {"owner_id", "created_by"}


# ---------------------------------------------------------------------------
# Payload coercion
# ---------------------------------------------------------------------------


def _coerce_date(value: Any, field_name: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            pass
    raise AnniversaryValidationError(f"{field_name} must be an ISO date, got {value!r}")


def _coerce_optional_date(value: Any, field_name: str) -> date | None:
    if value is None or value == "":
        return None
    return _coerce_date(value, field_name)


def _coerce_type(value: Any) -> EventType:
    try:
        return EventType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in EventType)
        raise AnniversaryValidationError(
            f"type must be one of: {allowed}; got {value!r}"
        ) from None


def _coerce_name(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise AnniversaryValidationError("name must be a non-empty string")
    return value.strip()


def _coerce_bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise AnniversaryValidationError(f"{field_name} must be true or false, got {value!r}")
    return value


def _reject_unknown(payload: Mapping[str, Any], allowed: frozenset[str]) -> None:
    unknown = set(payload) - allowed
    if unknown:
        raise AnniversaryValidationError(f"Unknown event field(s): {', '.join(sorted(unknown))}")


def _parse_event_id(event_id: Any) -> uuid.UUID:
    try:
        return event_id if isinstance(event_id, uuid.UUID) else uuid.UUID(str(event_id))
    except ValueError:
        raise AnniversaryNotFoundError(event_id) from None


# ---------------------------------------------------------------------------
# Pure calendar resolution
# ---------------------------------------------------------------------------


@dataclasses.dataclass
class CalendarFields:
    """Every column derived from an event's type, dates and calendar mode."""

    date: date
    year: int
    month: int
    day: int
    death_date: date | None = None
    burial_date: date | None = None
    hebrew_key: str | None = None
    hebrew_date: str | None = None
    hebrew_burial_key: str | None = None
    hebrew_burial_date: str | None = None
    occurrences: list[Occurrence] | None = None


def resolve_calendar_fields(
    event_type: EventType,
    anchor: date,
    *,
    is_annual: bool,
    use_hebrew: bool,
    death_date: date | None = None,
    burial_date: date | None = None,
    horizon_year: int,
    current_year: int | None = None,
) -> CalendarFields:
    """Derive the denormalised anchor, Hebrew keys and occurrence list.

    For death types the death date is the anchor (defaulting to *anchor*),
    the Hebrew key is taken from it, and a burial date delays the first
    occurrence to the year after burial. Occurrences are projected through
    *horizon_year* only, and only for annual Hebrew events.
    """
    if event_type.is_death_type:
        death = death_date or anchor
        if burial_date is not None and burial_date < death:
            raise AnniversaryValidationError("burial_date cannot be before the death date")
        anchor = death
    else:
        if death_date is not None or burial_date is not None:
            raise AnniversaryValidationError(
                f"death_date and burial_date are only valid for death events, not {event_type}"
            )
        death = None

    fields = CalendarFields(
        date=anchor,
        year=anchor.year,
        month=anchor.month,
        day=anchor.day,
        death_date=death,
        burial_date=burial_date,
    )
    if not use_hebrew:
        return fields

    key = to_hebrew_key(anchor)
    fields.hebrew_key = str(key)
    fields.hebrew_date = to_hebrew_display(anchor)
    if burial_date is not None:
        fields.hebrew_burial_key = str(to_hebrew_key(burial_date))
        fields.hebrew_burial_date = to_hebrew_display(burial_date)
    if is_annual:
        fields.occurrences = project_hebrew_occurrences(
            key,
            anchor,
            horizon_year,
            burial_start_override(event_type, burial_date),
            current_year=current_year,
        )
    return fields


def events_for_month(
    events: Iterable[AnniversaryEvent],
    month: int,
    year: int,
) -> list[AnniversaryEvent]:
    """Select and order the events that appear in (year, month).

    Annual Hebrew events appear when their occurrence list has an entry for
    (year, month); the returned copy carries that occurrence's date. Every
    other event matches on its anchor month, and non-annual ones only in
    their own year. Sorted by day, then name.
    """
    matched: list[AnniversaryEvent] = []
    for event in events:
        if event.use_hebrew and event.is_annual:
            occ = event.occurrence_for(year, month)
            if occ is not None:
                matched.append(
                    dataclasses.replace(
                        event,
                        date=occ.date,
                        year=occ.year,
                        month=occ.month,
                        day=occ.day,
                    )
                )
        elif event.is_annual or event.year == year:
            if solar_occurrence(event.date, year).month == month:
                matched.append(event)
    matched.sort(key=lambda e: (e.day, e.name))
    return matched


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class AnniversaryStore:
    """Create, update, delete and query a site's anniversary events.

    Parameters
    ----------
    pool:
        asyncpg pool for the database holding ``anniversaries`` and
        ``anniversary_horizons``.
    localizer:
        Applied to every event returned by a read; defaults to
        :class:`LocaleFieldLocalizer`.
    max_lookahead_years:
        Horizon extension refuses targets further than this many years past
        the current year.
    """

    def __init__(
        self,
        pool: asyncpg.Pool,
        *,
        localizer: Localizer | None = None,
        max_lookahead_years: int = DEFAULT_MAX_LOOKAHEAD_YEARS,
    ) -> None:
        self._pool = pool
        self._localizer = localizer or LocaleFieldLocalizer()
        self._max_lookahead_years = max_lookahead_years

    def _localize(self, event: AnniversaryEvent, locale: str | None) -> AnniversaryEvent:
        if locale is None:
            return event
        return self._localizer.localize(event, locale)

    async def _shared_horizon_year(
        self,
        conn: asyncpg.Connection,
        site_id: str,
        current_year: int | None,
    ) -> int:
        """Return the horizon year while holding a shared lock on its row."""
        await get_horizon_year(conn, site_id, current_year=current_year)
        return await conn.fetchval(
            "SELECT horizon_year FROM anniversary_horizons WHERE site_id = $1 FOR SHARE",
            site_id,
        )

    # -- create -------------------------------------------------------------

    async def create(
        self,
        site_id: str,
        payload: Mapping[str, Any],
        *,
        locale: str | None = None,
        current_year: int | None = None,
    ) -> AnniversaryEvent:
        """Validate and persist a new event, materialising Hebrew occurrences.

        Raises
        ------
        AnniversaryValidationError
            On a missing/invalid name, type or anchor date, death fields on a
            non-death type, or a burial date before the death date.
        """
        _reject_unknown(payload, _CREATE_FIELDS)
        name = _coerce_name(payload.get("name"))
        event_type = _coerce_type(payload.get("type"))
        if payload.get("date") is None and payload.get("death_date") is None:
            raise AnniversaryValidationError("date is required")
        death_date = _coerce_optional_date(payload.get("death_date"), "death_date")
        anchor = (
            _coerce_date(payload["date"], "date") if payload.get("date") is not None else death_date
        )
        burial_date = _coerce_optional_date(payload.get("burial_date"), "burial_date")
        is_annual = _coerce_bool(payload.get("is_annual", True), "is_annual")
        use_hebrew = _coerce_bool(payload.get("use_hebrew", False), "use_hebrew")
        description = payload.get("description") or ""
        created_by = payload.get("created_by")
        owner_id = payload.get("owner_id") or created_by
        locales = {locale: {"name": name, "description": description}} if locale else {}

        async with self._pool.acquire() as conn:
            async with conn.transaction():
                horizon_year = await self._shared_horizon_year(conn, site_id, current_year)
                fields = resolve_calendar_fields(
                    event_type,
                    anchor,
                    is_annual=is_annual,
                    use_hebrew=use_hebrew,
                    death_date=death_date,
                    burial_date=burial_date,
                    horizon_year=horizon_year,
                    current_year=current_year,
                )
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO anniversaries (
                        site_id, name, description, type, image_url, date, year, month, day,
                        is_annual, use_hebrew, hebrew_key, hebrew_date, death_date,
                        burial_date, hebrew_burial_key, hebrew_burial_date, occurrences,
                        locales, primary_locale, owner_id, created_by
                    )
                    VALUES (
                        $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14,
                        $15, $16, $17, $18::jsonb, $19::jsonb, $20, $21, $22
                    )
                    RETURNING {_EVENT_COLUMNS}
                    """,
                    site_id,
                    name,
                    description,
                    event_type.value,
                    payload.get("image_url"),
                    fields.date,
                    fields.year,
                    fields.month,
                    fields.day,
                    is_annual,
                    use_hebrew,
                    fields.hebrew_key,
                    fields.hebrew_date,
                    fields.death_date,
                    fields.burial_date,
                    fields.hebrew_burial_key,
                    fields.hebrew_burial_date,
                    occurrences_to_json(fields.occurrences),
                    json.dumps(locales),
                    locale,
                    owner_id,
                    created_by,
                )

        event = AnniversaryEvent.from_row(row)
        logger.info(
            "Created %s event %s for site %s (hebrew=%s, occurrences=%d)",
            event.type,
            event.id,
            site_id,
            use_hebrew,
            len(event.occurrences or ()),
        )
        return event

    # -- reads --------------------------------------------------------------

    async def _fetch_live(
        self,
        conn: asyncpg.Pool | asyncpg.Connection,
        event_id: Any,
        site_id: str | None,
    ) -> AnniversaryEvent:
        uid = _parse_event_id(event_id)
        row = await conn.fetchrow(
            f"SELECT {_EVENT_COLUMNS} FROM anniversaries WHERE id = $1 AND deleted_at IS NULL",
            uid,
        )
        if row is None or (site_id is not None and row["site_id"] != site_id):
            raise AnniversaryNotFoundError(event_id)
        return AnniversaryEvent.from_row(row)

    async def get(
        self,
        event_id: Any,
        *,
        site_id: str | None = None,
        locale: str | None = None,
    ) -> AnniversaryEvent | None:
        """Return a live event by id, or ``None`` if missing, deleted or foreign."""
        try:
            event = await self._fetch_live(self._pool, event_id, site_id)
        except AnniversaryNotFoundError:
            return None
        return self._localize(event, locale)

    async def list_events(
        self,
        site_id: str,
        *,
        locale: str | None = None,
    ) -> list[AnniversaryEvent]:
        """Return every live event of a site ordered by anchor month and day."""
        rows = await self._pool.fetch(
            f"""
            SELECT {_EVENT_COLUMNS} FROM anniversaries
            WHERE site_id = $1 AND deleted_at IS NULL
            ORDER BY month, day, name
            """,
            site_id,
        )
        return [self._localize(AnniversaryEvent.from_row(row), locale) for row in rows]

    # -- update -------------------------------------------------------------

    async def update(
        self,
        event_id: Any,
        changes: Mapping[str, Any],
        *,
        site_id: str | None = None,
        locale: str | None = None,
        current_year: int | None = None,
    ) -> AnniversaryEvent:
        """Apply a partial update and regenerate every derived calendar field.

        Keys absent from *changes* keep their stored value. ``None`` keeps the
        stored value for required fields and clears nullable ones
        (``image_url``, ``death_date``, ``burial_date``). A Hebrew event's
        occurrence list is rebuilt from scratch up to the current horizon; an
        event switched to the solar calendar loses its Hebrew fields and list.

        Raises
        ------
        AnniversaryNotFoundError
            If the id is unknown, deleted, or belongs to another site.
        AnniversaryValidationError
            If the merged event is invalid. Nothing is written in either case.
        """
        _reject_unknown(changes, _UPDATE_FIELDS)

        async with self._pool.acquire() as conn:
            async with conn.transaction():
                existing = await self._fetch_live(conn, event_id, site_id)

                def provided(key: str) -> bool:
                    return changes.get(key) is not None

                event_type = _coerce_type(changes["type"]) if provided("type") else existing.type
                name = _coerce_name(changes["name"]) if provided("name") else existing.name
                description = (
                    (changes.get("description") or "")
                    if "description" in changes
                    else existing.description
                )
                anchor = (
                    _coerce_date(changes["date"], "date") if provided("date") else existing.date
                )

                if provided("death_date"):
                    death_date = _coerce_date(changes["death_date"], "death_date")
                elif provided("date") or "death_date" in changes:
                    death_date = None
                else:
                    death_date = existing.death_date
                if "burial_date" in changes:
                    burial_date = _coerce_optional_date(changes["burial_date"], "burial_date")
                else:
                    burial_date = existing.burial_date

                if not event_type.is_death_type:
                    if provided("death_date") or provided("burial_date"):
                        raise AnniversaryValidationError(
                            "death_date and burial_date are only valid for death events"
                        )
                    death_date = None
                    burial_date = None

                is_annual = (
                    _coerce_bool(changes["is_annual"], "is_annual")
                    if provided("is_annual")
                    else existing.is_annual
                )
                use_hebrew = (
                    _coerce_bool(changes["use_hebrew"], "use_hebrew")
                    if provided("use_hebrew")
                    else existing.use_hebrew
                )
                image_url = changes["image_url"] if "image_url" in changes else existing.image_url

                locales = {key: dict(value) for key, value in existing.locales.items()}
                top_level_name = name
                if locale and (provided("name") or "description" in changes):
                    entry = locales.setdefault(locale, {})
                    entry["name"] = name
                    entry["description"] = description
                    if existing.primary_locale not in (None, locale):
                        top_level_name = existing.name
                        description = existing.description

                horizon_year = await self._shared_horizon_year(
                    conn, existing.site_id, current_year
                )
                fields = resolve_calendar_fields(
                    event_type,
                    anchor,
                    is_annual=is_annual,
                    use_hebrew=use_hebrew,
                    death_date=death_date,
                    burial_date=burial_date,
                    horizon_year=horizon_year,
                    current_year=current_year,
                )
                row = await conn.fetchrow(
                    f"""
                    UPDATE anniversaries
                    SET name = $2, description = $3, type = $4, image_url = $5,
                        date = $6, year = $7, month = $8, day = $9,
                        is_annual = $10, use_hebrew = $11,
                        hebrew_key = $12, hebrew_date = $13,
                        death_date = $14, burial_date = $15,
                        hebrew_burial_key = $16, hebrew_burial_date = $17,
                        occurrences = $18::jsonb, locales = $19::jsonb,
                        updated_at = now()
                    WHERE id = $1
                    RETURNING {_EVENT_COLUMNS}
                    """,
                    existing.id,
                    top_level_name,
                    description,
                    event_type.value,
                    image_url,
                    fields.date,
                    fields.year,
                    fields.month,
                    fields.day,
                    is_annual,
                    use_hebrew,
                    fields.hebrew_key,
                    fields.hebrew_date,
                    fields.death_date,
                    fields.burial_date,
                    fields.hebrew_burial_key,
                    fields.hebrew_burial_date,
                    occurrences_to_json(fields.occurrences),
                    json.dumps(locales),
                )

        event = AnniversaryEvent.from_row(row)
        logger.info(
            "Updated event %s for site %s (hebrew=%s, occurrences=%d)",
            event.id,
            event.site_id,
            use_hebrew,
            len(event.occurrences or ()),
        )
        return self._localize(event, locale)

    # -- delete -------------------------------------------------------------

    async def delete(self, event_id: Any, *, site_id: str | None = None) -> None:
        """Soft-delete an event and drop its occurrence list.

        Raises
        ------
        AnniversaryNotFoundError
            If the id is unknown, already deleted, or belongs to another site.
        """
        uid = _parse_event_id(event_id)
        deleted = await self._pool.fetchval(
            """
            UPDATE anniversaries
            SET deleted_at = now(), occurrences = NULL, updated_at = now()
            WHERE id = $1 AND deleted_at IS NULL AND ($2::text IS NULL OR site_id = $2)
            RETURNING id
            """,
            uid,
            site_id,
        )
        if deleted is None:
            raise AnniversaryNotFoundError(event_id)
        logger.info("Deleted event %s", uid)

    # -- month query --------------------------------------------------------

    async def query_month(
        self,
        site_id: str,
        month: int,
        year: int,
        *,
        locale: str | None = None,
        current_year: int | None = None,
    ) -> list[AnniversaryEvent]:
        """Return the site's events falling in (year, month), ordered by day.

        Extends the horizon first when *year* lies beyond it. *month* is 1-12.
        """
        if not 1 <= month <= 12:
            raise AnniversaryValidationError(f"month must be between 1 and 12, got {month}")

        horizon_year = await get_horizon_year(self._pool, site_id, current_year=current_year)
        if year > horizon_year:
            await self.ensure_horizon_for_year(site_id, year, current_year=current_year)

        direct_rows = await self._pool.fetch(
            f"""
            SELECT {_EVENT_COLUMNS} FROM anniversaries
            WHERE site_id = $1
              AND deleted_at IS NULL
              AND month = $2
              AND (NOT use_hebrew OR NOT is_annual)
              AND (is_annual OR year = $3)
            """,
            site_id,
            month,
            year,
        )
        hebrew_rows = await self._pool.fetch(
            f"""
            SELECT {_EVENT_COLUMNS} FROM anniversaries
            WHERE site_id = $1
              AND deleted_at IS NULL
              AND use_hebrew
              AND is_annual
              AND occurrences @> $2::jsonb
            """,
            site_id,
            json.dumps([{"year": year, "month": month}]),
        )

        events = [AnniversaryEvent.from_row(row) for row in (*direct_rows, *hebrew_rows)]
        return [self._localize(event, locale) for event in events_for_month(events, month, year)]

    # -- horizon extension --------------------------------------------------

    async def ensure_horizon_for_year(
        self,
        site_id: str,
        year: int,
        *,
        current_year: int | None = None,
    ) -> int:
        """Materialise every annual Hebrew event of the site through *year*.

        Runs in one transaction holding the site's horizon row lock. Each
        event's missing years are planned against its locked row, all changed
        rows are written in one batch, and the horizon is then advanced with a
        version check. Any failure rolls back the batch and leaves the horizon
        where it was. Re-running for a covered year is a no-op.

        Returns
        -------
        int
            The horizon year after the call.

        Raises
        ------
        AnniversaryValidationError
            If *year* is more than ``max_lookahead_years`` past the current year.
        """
        today_year = current_year if current_year is not None else date.today().year
        if year > today_year + self._max_lookahead_years:
            raise AnniversaryValidationError(
                f"year {year} is more than {self._max_lookahead_years} years ahead"
            )

        async with self._pool.acquire() as conn:
            async with conn.transaction():
                record = await read_horizon(conn, site_id, for_update=True)
                if record is None:
                    await get_horizon_year(conn, site_id, current_year=today_year)
                    record = await read_horizon(conn, site_id, for_update=True)
                if record.horizon_year >= year:
                    return record.horizon_year

                rows = await conn.fetch(
                    f"""
                    SELECT {_EVENT_COLUMNS} FROM anniversaries
                    WHERE site_id = $1 AND deleted_at IS NULL AND use_hebrew AND is_annual
                    FOR UPDATE
                    """,
                    site_id,
                )
                batch: list[tuple[str, uuid.UUID]] = []
                added = 0
                for row in rows:
                    event = AnniversaryEvent.from_row(row)
                    if event.hebrew_key is None:
                        logger.warning("Hebrew event %s has no Hebrew key; skipping", event.id)
                        continue
                    start = projection_start(
                        event.type, event.hebrew_anchor, event.burial_date, current_year=today_year
                    )
                    additions = plan_backfill(
                        event.occurrences,
                        event.hebrew_key,
                        event.hebrew_anchor,
                        year,
                        start,
                        current_year=today_year,
                    )
                    if not additions:
                        continue
                    added += len(additions)
                    merged = merge_occurrences(event.occurrences, additions)
                    batch.append((occurrences_to_json(merged), event.id))

                if batch:
                    await conn.executemany(
                        """
                        UPDATE anniversaries
                        SET occurrences = $1::jsonb, updated_at = now()
                        WHERE id = $2
                        """,
                        batch,
                    )
                advanced = await advance_horizon(conn, record, year)

        logger.info(
            "Extended anniversary horizon for site %s from %d to %d "
            "(%d event(s) updated, %d occurrence(s) added)",
            site_id,
            record.horizon_year,
            advanced.horizon_year,
            len(batch),
            added,
        )
        return advanced.horizon_year


# ---------------------------------------------------------------------------
# Module-level entry points
# ---------------------------------------------------------------------------


async def create_event(
    pool: asyncpg.Pool, site_id: str, payload: Mapping[str, Any], **kwargs: Any
) -> AnniversaryEvent:
    """Create an event through a default-configured store."""
    return await AnniversaryStore(pool).create(site_id, payload, **kwargs)


async def update_event(
    pool: asyncpg.Pool, event_id: Any, changes: Mapping[str, Any], **kwargs: Any
) -> AnniversaryEvent:
    """Update an event through a default-configured store."""
    return await AnniversaryStore(pool).update(event_id, changes, **kwargs)


async def delete_event(pool: asyncpg.Pool, event_id: Any, **kwargs: Any) -> None:
    """Delete an event through a default-configured store."""
    await AnniversaryStore(pool).delete(event_id, **kwargs)


async def get_events_for_month(
    pool: asyncpg.Pool, site_id: str, month: int, year: int, **kwargs: Any
) -> list[AnniversaryEvent]:
    """Run the month query through a default-configured store."""
    return await AnniversaryStore(pool).query_month(site_id, month, year, **kwargs)


async def ensure_horizon_for_year(
    pool: asyncpg.Pool, site_id: str, year: int, **kwargs: Any
) -> int:
    """Run horizon extension through a default-configured store."""
    return await AnniversaryStore(pool).ensure_horizon_for_year(site_id, year, **kwargs)
