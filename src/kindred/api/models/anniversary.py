"""Anniversary-specific Pydantic models.

Request bodies keep dates and the event type as plain strings so that the
store, not request parsing, rejects malformed values with a 400
``VALIDATION_ERROR``.
"""

from __future__ import annotations

import datetime as dt
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from kindred.anniversaries.models import AnniversaryEvent


class OccurrenceModel(BaseModel):
    """One materialised solar appearance of a Hebrew-anchored event."""

    year: int
    month: int
    day: int
    date: dt.date


class AnniversaryEventModel(BaseModel):
    """An anniversary event as returned by the API.

    On month-query responses ``date``/``year``/``month``/``day`` hold the
    matched occurrence for Hebrew-anchored annual events.
    """

    id: UUID
    site_id: str
    name: str
    description: str = ""
    type: str
    image_url: str | None = None
    date: dt.date
    year: int
    month: int
    day: int
    is_annual: bool
    use_hebrew: bool = False
    hebrew_key: str | None = None
    hebrew_date: str | None = None
    death_date: dt.date | None = None
    burial_date: dt.date | None = None
    hebrew_burial_key: str | None = None
    hebrew_burial_date: str | None = None
    occurrences: list[OccurrenceModel] | None = None
    locales: dict[str, dict[str, Any]] = Field(default_factory=dict)
    primary_locale: str | None = None
    owner_id: str | None = None
    created_by: str | None = None
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    @classmethod
    def from_event(cls, event: AnniversaryEvent) -> AnniversaryEventModel:
        return cls.model_validate(event.to_dict())


class AnniversaryCreateRequest(BaseModel):
    """Request body for creating an event.

    Unknown keys are kept so the store can reject them with a 400.
    """

    model_config = {"extra": "allow"}

    name: str | None = None
    type: str | None = None
    date: str | None = None
    description: str | None = None
    is_annual: bool = True
    use_hebrew: bool = False
    death_date: str | None = None
    burial_date: str | None = None
    image_url: str | None = None
    owner_id: str | None = None
    created_by: str | None = None


class AnniversaryUpdateRequest(BaseModel):
    """Request body for a partial update; only fields sent are applied."""

    model_config = {"extra": "allow"}

    name: str | None = None
    type: str | None = None
    date: str | None = None
    description: str | None = None
    is_annual: bool | None = None
    use_hebrew: bool | None = None
    death_date: str | None = None
    burial_date: str | None = None
    image_url: str | None = None


class HorizonRequest(BaseModel):
    """Request body for pre-warming occurrences through a year."""

    year: int


class HorizonResponse(BaseModel):
    site_id: str
    horizon_year: int


class DeleteResponse(BaseModel):
    id: str
    deleted: bool = True
