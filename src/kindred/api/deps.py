"""Process-wide dependencies for the kindred API.

Provides:
- ``init_store()`` / ``shutdown_store()``: open and close the database pool
  and build the ``AnniversaryStore`` singleton from ``KindredConfig``.
- ``get_store()`` / ``get_default_locale()``: FastAPI dependencies.
- ``wire_store_dependencies()``: replace router-level stubs with the above.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from kindred.anniversaries.store import AnniversaryStore
from kindred.config import KindredConfig
from kindred.db import Database

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

_database: Database | None = None
_store: AnniversaryStore | None = None
_config: KindredConfig | None = None


async def init_store(config: KindredConfig) -> AnniversaryStore:
    """Provision the database, open the pool and create the store singleton.

    Called once during app startup (in the lifespan handler).
    """
    global _database, _store, _config  # noqa: PLW0603

    db = Database.from_env(config.db_name, schema=config.db_schema)
    await db.provision()
    pool = await db.connect()

    _database = db
    _config = config
    _store = AnniversaryStore(
        pool,
        max_lookahead_years=config.anniversaries.max_lookahead_years,
    )
    return _store


async def shutdown_store() -> None:
    """Close the pool behind the store singleton. Called during app shutdown."""
    global _database, _store  # noqa: PLW0603
    if _database is not None:
        await _database.close()
    _database = None
    _store = None


def get_store() -> AnniversaryStore:
    """FastAPI dependency: provides the AnniversaryStore singleton."""
    if _store is None:
        raise RuntimeError("AnniversaryStore not initialized: call init_store() first")
    return _store


def get_default_locale() -> str | None:
    """FastAPI dependency: the locale used when a request sends no ``x-locale``."""
    if _config is None:
        return None
    return _config.anniversaries.default_locale


def wire_store_dependencies(app: FastAPI) -> None:
    """Override the router-level ``_get_store``/``_get_default_locale`` stubs."""
    from kindred.api.routers import anniversaries

    app.dependency_overrides[anniversaries._get_store] = get_store
    app.dependency_overrides[anniversaries._get_default_locale] = get_default_locale
