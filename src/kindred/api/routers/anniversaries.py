"""Anniversary endpoints: CRUD plus the month query for one site.

Provides a single router mounted at ``/api/sites/{site_id}/anniversaries``.
Every handler delegates to the ``AnniversaryStore`` injected through the
``_get_store`` stub, which the app overrides at startup and tests override
with mocks.
"""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, Header

from kindred.anniversaries.models import AnniversaryNotFoundError
from kindred.anniversaries.store import AnniversaryStore
from kindred.api.models import ApiMeta, ApiResponse
from kindred.api.models.anniversary import (
    AnniversaryCreateRequest,
    AnniversaryEventModel,
    AnniversaryUpdateRequest,
    DeleteResponse,
    HorizonRequest,
    HorizonResponse,
)
from kindred.core.logging import set_site_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sites/{site_id}/anniversaries", tags=["anniversaries"])


def _get_store() -> AnniversaryStore:
    """Dependency stub -- overridden at app startup or in tests."""
    raise RuntimeError("AnniversaryStore not initialized")


def _get_default_locale() -> str | None:
    """Dependency stub -- overridden at app startup with the configured locale."""
    return None


def _request_locale(
    x_locale: str | None = Header(default=None),
    default_locale: str | None = Depends(_get_default_locale),
) -> str | None:
    return x_locale or default_locale


@router.get("", response_model=ApiResponse[list[AnniversaryEventModel]])
async def list_month(
    site_id: str,
    month: int | None = None,
    year: int | None = None,
    locale: str | None = Depends(_request_locale),
    store: AnniversaryStore = Depends(_get_store),
) -> ApiResponse[list[AnniversaryEventModel]]:
    """Return the site's events falling in a month (default: the current one)."""
    set_site_context(site_id)
    today = date.today()
    month = month if month is not None else today.month
    year = year if year is not None else today.year
    events = await store.query_month(site_id, month, year, locale=locale)
    return ApiResponse[list[AnniversaryEventModel]](
        data=[AnniversaryEventModel.from_event(event) for event in events],
        meta=ApiMeta(month=month, year=year, count=len(events)),
    )


@router.post("", response_model=ApiResponse[AnniversaryEventModel], status_code=201)
async def create_anniversary(
    site_id: str,
    body: AnniversaryCreateRequest,
    locale: str | None = Depends(_request_locale),
    store: AnniversaryStore = Depends(_get_store),
) -> ApiResponse[AnniversaryEventModel]:
    set_site_context(site_id)
    payload = body.model_dump(exclude_none=True)
    event = await store.create(site_id, payload, locale=locale)
    return ApiResponse[AnniversaryEventModel](data=AnniversaryEventModel.from_event(event))


@router.post("/horizon", response_model=ApiResponse[HorizonResponse])
async def extend_horizon(
    site_id: str,
    body: HorizonRequest,
    store: AnniversaryStore = Depends(_get_store),
) -> ApiResponse[HorizonResponse]:
    """Materialise every Hebrew occurrence of the site through ``body.year``."""
    set_site_context(site_id)
    horizon_year = await store.ensure_horizon_for_year(site_id, body.year)
    return ApiResponse[HorizonResponse](
        data=HorizonResponse(site_id=site_id, horizon_year=horizon_year)
    )


@router.get("/{event_id}", response_model=ApiResponse[AnniversaryEventModel])
async def get_anniversary(
    site_id: str,
    event_id: str,
    locale: str | None = Depends(_request_locale),
    store: AnniversaryStore = Depends(_get_store),
) -> ApiResponse[AnniversaryEventModel]:
    set_site_context(site_id)
    event = await store.get(event_id, site_id=site_id, locale=locale)
    if event is None:
        raise AnniversaryNotFoundError(event_id)
    return ApiResponse[AnniversaryEventModel](data=AnniversaryEventModel.from_event(event))


@router.put("/{event_id}", response_model=ApiResponse[AnniversaryEventModel])
async def update_anniversary(
    site_id: str,
    event_id: str,
    body: AnniversaryUpdateRequest,
    locale: str | None = Depends(_request_locale),
    store: AnniversaryStore = Depends(_get_store),
) -> ApiResponse[AnniversaryEventModel]:
    """Apply the fields present in the body; absent fields keep their value."""
    set_site_context(site_id)
    changes = body.model_dump(exclude_unset=True)
    event = await store.update(event_id, changes, site_id=site_id, locale=locale)
    return ApiResponse[AnniversaryEventModel](data=AnniversaryEventModel.from_event(event))


@router.delete("/{event_id}", response_model=ApiResponse[DeleteResponse])
async def delete_anniversary(
    site_id: str,
    event_id: str,
    store: AnniversaryStore = Depends(_get_store),
) -> ApiResponse[DeleteResponse]:
    set_site_context(site_id)
    await store.delete(event_id, site_id=site_id)
    return ApiResponse[DeleteResponse](data=DeleteResponse(id=event_id))
