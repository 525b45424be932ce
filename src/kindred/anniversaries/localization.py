"""Locale selection for event display text.

Events carry per-locale copies of their free-text fields in
``locales = {"he": {"name": ..., "description": ...}, ...}``. The occurrence
engine never reads them; a ``Localizer`` is applied to events on the way out
of the store so callers see text in the requested locale.
"""

from __future__ import annotations

import dataclasses
from typing import Protocol

from kindred.anniversaries.models import AnniversaryEvent

LOCALIZED_FIELDS: tuple[str, ...] = ("name", "description")


class Localizer(Protocol):
    def localize(self, event: AnniversaryEvent, locale: str | None) -> AnniversaryEvent: ...


def normalize_lang(value: str | None) -> str | None:
    """Reduce an Accept-Language style value to its base language (``en-US`` -> ``en``)."""
    if not value:
        return None
    code = value.split(",")[0].strip().split(";")[0]
    base = code.split("-")[0].strip().lower()
    return base or None


def localized_fields(
    locales: dict[str, dict],
    locale: str | None,
    fields: tuple[str, ...] = LOCALIZED_FIELDS,
) -> dict[str, str]:
    """Return the requested *fields* stored for *locale*.

    Tries an exact (case-insensitive) locale match first, then any stored
    locale with the same base language. Missing locales yield ``{}``.
    """
    base = normalize_lang(locale)
    if not locale or base is None or not locales:
        return {}

    data = locales.get(locale)
    if data is None:
        for key, value in locales.items():
            if key.lower() == locale.lower() or normalize_lang(key) == base:
                data = value
                break
    if not data:
        return {}
    return {name: data[name] for name in fields if data.get(name) is not None}


class LocaleFieldLocalizer:
    """Default localizer: overlay stored per-locale fields onto the event."""

    def localize(self, event: AnniversaryEvent, locale: str | None) -> AnniversaryEvent:
        overrides = localized_fields(event.locales, locale)
        if not overrides:
            return event
        return dataclasses.replace(event, **overrides)
