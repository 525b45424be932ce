"""Anniversaries: recurring life events projected across solar and Hebrew calendars."""

from kindred.anniversaries.hebrew import (
    HebrewKey,
    find_solar_date_for_key_in_year,
    parse_hebrew_key,
    to_hebrew_display,
    to_hebrew_key,
)
from kindred.anniversaries.horizon import (
    HorizonConflictError,
    HorizonRecord,
    advance_horizon,
    extend_horizon_year,
    get_horizon_year,
    read_horizon,
)
from kindred.anniversaries.localization import (
    LocaleFieldLocalizer,
    Localizer,
    localized_fields,
    normalize_lang,
)
from kindred.anniversaries.models import (
    AnniversaryEvent,
    AnniversaryNotFoundError,
    AnniversaryValidationError,
    EventType,
    Occurrence,
)
from kindred.anniversaries.projection import (
    burial_start_override,
    merge_occurrences,
    plan_backfill,
    project_hebrew_occurrences,
    projection_start,
    solar_occurrence,
)
from kindred.anniversaries.store import (
    DEFAULT_MAX_LOOKAHEAD_YEARS,
    AnniversaryStore,
    create_event,
    delete_event,
    ensure_horizon_for_year,
    events_for_month,
    get_events_for_month,
    resolve_calendar_fields,
    update_event,
)

__all__ = [
    "AnniversaryEvent",
    "AnniversaryNotFoundError",
    "AnniversaryStore",
    "AnniversaryValidationError",
    "DEFAULT_MAX_LOOKAHEAD_YEARS",
    "EventType",
    "HebrewKey",
    "HorizonConflictError",
    "HorizonRecord",
    "LocaleFieldLocalizer",
    "Localizer",
    "Occurrence",
    "advance_horizon",
    "burial_start_override",
    "create_event",
    "delete_event",
    "ensure_horizon_for_year",
    "events_for_month",
    "extend_horizon_year",
    "find_solar_date_for_key_in_year",
    "get_events_for_month",
    "get_horizon_year",
    "localized_fields",
    "merge_occurrences",
    "normalize_lang",
    "parse_hebrew_key",
    "plan_backfill",
    "project_hebrew_occurrences",
    "projection_start",
    "read_horizon",
    "resolve_calendar_fields",
    "solar_occurrence",
    "to_hebrew_display",
    "to_hebrew_key",
    "update_event",
]
