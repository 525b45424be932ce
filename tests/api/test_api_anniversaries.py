"""Tests for the anniversary API endpoints.

Verifies the API contract (status codes, response envelopes, error mapping)
with the ``AnniversaryStore`` replaced by an ``AsyncMock``.
"""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from kindred.anniversaries.horizon import HorizonConflictError
from kindred.anniversaries.models import (
    AnniversaryEvent,
    AnniversaryNotFoundError,
    AnniversaryValidationError,
    EventType,
    Occurrence,
)
from kindred.anniversaries.store import AnniversaryStore
from kindred.api.app import create_app
from kindred.api.routers.anniversaries import _get_default_locale, _get_store

pytestmark = pytest.mark.unit

_NOW = datetime(2026, 1, 5, 12, 0, tzinfo=UTC)
_EVENT_ID = uuid.uuid4()
_BASE = "/api/sites/site-1/anniversaries"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_event(**overrides) -> AnniversaryEvent:
    values = {
        "id": _EVENT_ID,
        "site_id": "site-1",
        "name": "Grandpa",
        "type": EventType.DEATH,
        "date": date(2020, 3, 1),
        "year": 2020,
        "month": 3,
        "day": 1,
        "is_annual": True,
        "use_hebrew": True,
        "hebrew_key": "Adar 5",
        "hebrew_date": "5 Adar 5780",
        "death_date": date(2020, 3, 1),
        "occurrences": [Occurrence(2026, 2, 22)],
        "created_at": _NOW,
        "updated_at": _NOW,
    }
    values.update(overrides)
    return AnniversaryEvent(**values)


def _app_with_mock_store(store: AsyncMock | None = None, default_locale: str | None = None):
    store = store or AsyncMock(spec=AnniversaryStore)
    app = create_app()
    app.dependency_overrides[_get_store] = lambda: store
    app.dependency_overrides[_get_default_locale] = lambda: default_locale
    return app, store


def _client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


# ---------------------------------------------------------------------------
# GET /api/health
# ---------------------------------------------------------------------------


async def test_health():
    app, _ = _app_with_mock_store()
    async with _client(app) as client:
        resp = await client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


# ---------------------------------------------------------------------------
# GET /api/sites/{site_id}/anniversaries
# ---------------------------------------------------------------------------


class TestListMonth:
    async def test_returns_events_with_meta(self):
        app, store = _app_with_mock_store()
        store.query_month.return_value = [
            _make_event(date=date(2026, 2, 22), year=2026, month=2, day=22)
        ]

        async with _client(app) as client:
            resp = await client.get(_BASE, params={"month": 2, "year": 2026})

        assert resp.status_code == 200
        body = resp.json()
        assert body["meta"] == {"month": 2, "year": 2026, "count": 1}
        assert body["data"][0]["id"] == str(_EVENT_ID)
        assert body["data"][0]["date"] == "2026-02-22"
        assert body["data"][0]["occurrences"][0]["date"] == "2026-02-22"
        store.query_month.assert_awaited_once_with("site-1", 2, 2026, locale=None)

    async def test_locale_header_wins_over_default(self):
        app, store = _app_with_mock_store(default_locale="he")
        store.query_month.return_value = []

        async with _client(app) as client:
            await client.get(_BASE, params={"month": 5, "year": 2026})
            await client.get(
                _BASE, params={"month": 5, "year": 2026}, headers={"x-locale": "en"}
            )

        locales = [call.kwargs["locale"] for call in store.query_month.await_args_list]
        assert locales == ["he", "en"]

    async def test_defaults_to_current_month(self):
        app, store = _app_with_mock_store()
        store.query_month.return_value = []

        async with _client(app) as client:
            resp = await client.get(_BASE)

        today = date.today()
        assert resp.json()["meta"]["month"] == today.month
        assert resp.json()["meta"]["year"] == today.year

    async def test_invalid_month_is_400(self):
        app, store = _app_with_mock_store()
        store.query_month.side_effect = ValueError("month must be between 1 and 12, got 13")

        async with _client(app) as client:
            resp = await client.get(_BASE, params={"month": 13, "year": 2026})

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_unexpected_failure_is_500_envelope(self):
        app, store = _app_with_mock_store()
        store.query_month.side_effect = RuntimeError("pool closed")

        async with _client(app) as client:
            resp = await client.get(_BASE, params={"month": 1, "year": 2026})

        assert resp.status_code == 500
        assert resp.json() == {
            "error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": None}
        }


# ---------------------------------------------------------------------------
# POST /api/sites/{site_id}/anniversaries
# ---------------------------------------------------------------------------


class TestCreate:
    async def test_created(self):
        app, store = _app_with_mock_store(default_locale="he")
        store.create.return_value = _make_event()

        async with _client(app) as client:
            resp = await client.post(
                _BASE,
                json={"name": "Grandpa", "type": "death", "date": "2020-03-01", "use_hebrew": True},
            )

        assert resp.status_code == 201
        assert resp.json()["data"]["hebrew_key"] == "Adar 5"
        store.create.assert_awaited_once_with(
            "site-1",
            {
                "name": "Grandpa",
                "type": "death",
                "date": "2020-03-01",
                "is_annual": True,
                "use_hebrew": True,
            },
            locale="he",
        )

    async def test_validation_error_is_400(self):
        app, store = _app_with_mock_store()
        store.create.side_effect = AnniversaryValidationError("name is required")

        async with _client(app) as client:
            resp = await client.post(_BASE, json={"type": "birthday", "date": "2020-03-01"})

        assert resp.status_code == 400
        assert resp.json()["error"] == {
            "code": "VALIDATION_ERROR",
            "message": "name is required",
            "details": None,
        }


# ---------------------------------------------------------------------------
# GET / PUT / DELETE /api/sites/{site_id}/anniversaries/{event_id}
# ---------------------------------------------------------------------------


class TestGet:
    async def test_found(self):
        app, store = _app_with_mock_store()
        store.get.return_value = _make_event()

        async with _client(app) as client:
            resp = await client.get(f"{_BASE}/{_EVENT_ID}")

        assert resp.status_code == 200
        assert resp.json()["data"]["name"] == "Grandpa"
        store.get.assert_awaited_once_with(str(_EVENT_ID), site_id="site-1", locale=None)

    async def test_missing_is_404(self):
        app, store = _app_with_mock_store()
        store.get.return_value = None

        async with _client(app) as client:
            resp = await client.get(f"{_BASE}/{_EVENT_ID}")

        assert resp.status_code == 404
        error = resp.json()["error"]
        assert error["code"] == "ANNIVERSARY_NOT_FOUND"
        assert error["details"] == {"id": str(_EVENT_ID)}


class TestUpdate:
    async def test_only_sent_fields_forwarded(self):
        app, store = _app_with_mock_store()
        store.update.return_value = _make_event(name="Saba")

        async with _client(app) as client:
            resp = await client.put(
                f"{_BASE}/{_EVENT_ID}", json={"name": "Saba", "burial_date": None}
            )

        assert resp.status_code == 200
        assert resp.json()["data"]["name"] == "Saba"
        store.update.assert_awaited_once_with(
            str(_EVENT_ID),
            {"name": "Saba", "burial_date": None},
            site_id="site-1",
            locale=None,
        )

    async def test_unknown_event_is_404(self):
        app, store = _app_with_mock_store()
        store.update.side_effect = AnniversaryNotFoundError("nope")

        async with _client(app) as client:
            resp = await client.put(f"{_BASE}/nope", json={"name": "x"})

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "ANNIVERSARY_NOT_FOUND"


class TestDelete:
    async def test_deleted(self):
        app, store = _app_with_mock_store()
        store.delete.return_value = None

        async with _client(app) as client:
            resp = await client.delete(f"{_BASE}/{_EVENT_ID}")

        assert resp.status_code == 200
        assert resp.json()["data"] == {"id": str(_EVENT_ID), "deleted": True}
        store.delete.assert_awaited_once_with(str(_EVENT_ID), site_id="site-1")

    async def test_missing_is_404(self):
        app, store = _app_with_mock_store()
        store.delete.side_effect = AnniversaryNotFoundError(str(_EVENT_ID))

        async with _client(app) as client:
            resp = await client.delete(f"{_BASE}/{_EVENT_ID}")

        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# POST /api/sites/{site_id}/anniversaries/horizon
# ---------------------------------------------------------------------------


class TestHorizon:
    async def test_extends(self):
        app, store = _app_with_mock_store()
        store.ensure_horizon_for_year.return_value = 2040

        async with _client(app) as client:
            resp = await client.post(f"{_BASE}/horizon", json={"year": 2040})

        assert resp.status_code == 200
        assert resp.json()["data"] == {"site_id": "site-1", "horizon_year": 2040}
        store.ensure_horizon_for_year.assert_awaited_once_with("site-1", 2040)

    async def test_conflict_is_409(self):
        app, store = _app_with_mock_store()
        store.ensure_horizon_for_year.side_effect = HorizonConflictError("site-1", 3, 4)

        async with _client(app) as client:
            resp = await client.post(f"{_BASE}/horizon", json={"year": 2040})

        assert resp.status_code == 409
        assert resp.json()["error"]["details"] == {"site_id": "site-1"}

    async def test_missing_year_is_422(self):
        app, _ = _app_with_mock_store()

        async with _client(app) as client:
            resp = await client.post(f"{_BASE}/horizon", json={})

        assert resp.status_code == 422


async def test_unwired_store_is_500():
    app = create_app()
    async with _client(app) as client:
        resp = await client.get(_BASE, params={"month": 1, "year": 2026})
    assert resp.status_code == 500


_EXTRA_BODY = {"name": "A", "type": "birthday", "date": "2020-03-01", "colour": "red"}


class TestUnknownFields:
    """Unknown body keys reach the store, which rejects them with a 400."""

    async def test_create_forwards_extra_keys(self):
        app, store = _app_with_mock_store()
        store.create.return_value = _make_event()

        async with _client(app) as client:
            await client.post(_BASE, json=_EXTRA_BODY)

        assert store.create.await_args.args[1]["colour"] == "red"

    @pytest.mark.parametrize(
        ("method", "path", "body"),
        [
            ("POST", _BASE, _EXTRA_BODY),
            ("PUT", f"{_BASE}/{_EVENT_ID}", {"name": "B", "colour": "red"}),
        ],
    )
    async def test_rejected_by_real_store(self, method, path, body):
        app, _ = _app_with_mock_store(AnniversaryStore(MagicMock()))

        async with _client(app) as client:
            resp = await client.request(method, path, json=body)

        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert "colour" in error["message"]
