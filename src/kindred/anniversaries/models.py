"""Data models for anniversary events.

``AnniversaryEvent`` maps 1:1 to the ``anniversaries`` table and
``Occurrence`` is one element of its materialised ``occurrences`` JSONB
array. Includes JSON serialisation helpers for API responses and database
round-tripping.
"""

from __future__ import annotations

import enum
import json
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any


class EventType(enum.StrEnum):
    """Kinds of life events a site can record."""

    BIRTHDAY = "birthday"
    WEDDING = "wedding"
    DEATH = "death"
    DEATH_MEMORIAL = "death-memorial"

    @property
    def is_death_type(self) -> bool:
        return self in (EventType.DEATH, EventType.DEATH_MEMORIAL)


class AnniversaryValidationError(ValueError):
    """Raised when an event payload is rejected before persistence."""


class AnniversaryNotFoundError(KeyError):
    """Raised when an event id does not resolve to a live event.

    Attributes:
        event_id: The id that was looked up.
    """

    def __init__(self, event_id: Any) -> None:
        self.event_id = event_id
        super().__init__(f"Anniversary event not found: {event_id}")

    def __str__(self) -> str:
        return str(self.args[0])


def _parse_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def _parse_optional_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _parse_optional_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _parse_jsonb(value: Any) -> Any:
    """Parse a JSONB value that may arrive as text or already decoded."""
    if isinstance(value, str):
        return json.loads(value)
    return value


@dataclass(frozen=True, order=True)
class Occurrence:
    """One concrete solar appearance of a recurring event."""

    year: int
    month: int
    day: int

    @property
    def date(self) -> date:
        return date(self.year, self.month, self.day)

    @classmethod
    def from_date(cls, value: date) -> Occurrence:
        return cls(value.year, value.month, value.day)

    def to_dict(self) -> dict[str, Any]:
        return {
            "year": self.year,
            "month": self.month,
            "day": self.day,
            "date": self.date.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Occurrence:
        return cls(int(data["year"]), int(data["month"]), int(data["day"]))


def occurrences_to_json(occurrences: list[Occurrence] | None) -> str | None:
    """Serialise an occurrence list for a ``$n::jsonb`` parameter."""
    if occurrences is None:
        return None
    return json.dumps([occ.to_dict() for occ in occurrences])


def _parse_occurrences(value: Any) -> list[Occurrence] | None:
    raw = _parse_jsonb(value)
    if raw is None:
        return None
    return [Occurrence.from_dict(item) for item in raw]


@dataclass
class AnniversaryEvent:
    """A recorded life event owned by a site.

    ``year``/``month``/``day`` are the denormalised anchor (``month`` is
    1-12). For rows returned by a month query on a Hebrew-anchored event they
    hold the matched occurrence instead, with ``date`` updated to match.
    """

    id: uuid.UUID
    site_id: str
    name: str
    type: EventType
    date: date
    year: int
    month: int
    day: int
    is_annual: bool
    description: str = ""
    image_url: str | None = None
    use_hebrew: bool = False
    hebrew_key: str | None = None
    hebrew_date: str | None = None
    death_date: date | None = None
    burial_date: date | None = None
    hebrew_burial_key: str | None = None
    hebrew_burial_date: str | None = None
    occurrences: list[Occurrence] | None = None
    locales: dict[str, dict[str, Any]] = field(default_factory=dict)
    primary_locale: str | None = None
    owner_id: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def hebrew_anchor(self) -> date:
        """Solar date the Hebrew key was derived from (death date for death types)."""
        if self.type.is_death_type and self.death_date is not None:
            return self.death_date
        return self.date

    def occurrence_for(self, year: int, month: int) -> Occurrence | None:
        """Return the materialised occurrence for (year, month), if any."""
        for occ in self.occurrences or ():
            if occ.year == year and occ.month == month:
                return occ
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-safe dictionary."""
        return {
            "id": str(self.id),
            "site_id": self.site_id,
            "name": self.name,
            "description": self.description,
            "type": self.type.value,
            "image_url": self.image_url,
            "date": self.date.isoformat(),
            "year": self.year,
            "month": self.month,
            "day": self.day,
            "is_annual": self.is_annual,
            "use_hebrew": self.use_hebrew,
            "hebrew_key": self.hebrew_key,
            "hebrew_date": self.hebrew_date,
            "death_date": self.death_date.isoformat() if self.death_date else None,
            "burial_date": self.burial_date.isoformat() if self.burial_date else None,
            "hebrew_burial_key": self.hebrew_burial_key,
            "hebrew_burial_date": self.hebrew_burial_date,
            "occurrences": (
                [occ.to_dict() for occ in self.occurrences]
                if self.occurrences is not None
                else None
            ),
            "locales": self.locales,
            "primary_locale": self.primary_locale,
            "owner_id": self.owner_id,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_row(cls, row: Any) -> AnniversaryEvent:
        """Reconstruct an event from a database row (asyncpg Record or mapping)."""
        data = dict(row)
        return cls(
            id=_parse_uuid(data["id"]),
            site_id=data["site_id"],
            name=data["name"],
            description=data.get("description") or "",
            type=EventType(data["type"]),
            image_url=data.get("image_url"),
            date=_parse_optional_date(data["date"]),
            year=data["year"],
            month=data["month"],
            day=data["day"],
            is_annual=bool(data["is_annual"]),
            use_hebrew=bool(data.get("use_hebrew")),
            hebrew_key=data.get("hebrew_key"),
            hebrew_date=data.get("hebrew_date"),
            death_date=_parse_optional_date(data.get("death_date")),
            burial_date=_parse_optional_date(data.get("burial_date")),
            hebrew_burial_key=data.get("hebrew_burial_key"),
            hebrew_burial_date=data.get("hebrew_burial_date"),
            occurrences=_parse_occurrences(data.get("occurrences")),
            locales=_parse_jsonb(data.get("locales")) or {},
            primary_locale=data.get("primary_locale"),
            owner_id=data.get("owner_id"),
            created_by=data.get("created_by"),
            created_at=_parse_optional_datetime(data.get("created_at")),
            updated_at=_parse_optional_datetime(data.get("updated_at")),
        )

    from_dict = from_row
