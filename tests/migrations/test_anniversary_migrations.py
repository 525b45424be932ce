"""Tests for the core anniversary migration chain."""

from __future__ import annotations

import importlib.util
import inspect
import shutil
import uuid
from pathlib import Path

import asyncpg
import pytest

from kindred.db import Database
from kindred.migrations import ALEMBIC_DIR, CHAINS, build_alembic_config, run_migrations

docker_available = shutil.which("docker") is not None

CORE_MIGRATIONS_DIR = ALEMBIC_DIR / "versions" / "core"


def _load_migration(filename: str):
    path = CORE_MIGRATIONS_DIR / filename
    spec = importlib.util.spec_from_file_location(f"migration_{path.stem}", path)
    assert spec is not None
    assert spec.loader is not None
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)
    return mod


@pytest.mark.unit
class TestChainLayout:
    def test_revision_chain(self):
        first = _load_migration("core_001_create_anniversary_tables.py")
        second = _load_migration("core_002_anniversary_query_indexes.py")

        assert (first.revision, first.down_revision, first.branch_labels) == (
            "core_001",
            None,
            ("core",),
        )
        assert (second.revision, second.down_revision, second.branch_labels) == (
            "core_002",
            "core_001",
            None,
        )

    def test_occurrences_restricted_to_hebrew_events(self):
        source = inspect.getsource(_load_migration("core_001_create_anniversary_tables.py"))
        assert "CHECK (occurrences IS NULL OR use_hebrew)" in source

    def test_config_points_at_core_chain(self):
        config = build_alembic_config("postgresql://u:p%40ss@h:5432/kindred", target_schema="s1")

        assert CHAINS == ("core",)
        assert config.get_main_option("version_locations") == str(CORE_MIGRATIONS_DIR)
        assert config.get_main_option("sqlalchemy.url") == "postgresql://u:p%40ss@h:5432/kindred"
        assert config.get_main_option("kindred.target_schema") == "s1"
        assert Path(config.get_main_option("script_location")) == ALEMBIC_DIR


@pytest.mark.integration
@pytest.mark.skipif(not docker_available, reason="Docker not available")
class TestUpgrade:
    async def test_tables_created_and_rerun_is_noop(self, postgres_container):
        db = Database(
            db_name=f"test_{uuid.uuid4().hex[:12]}",
            host=postgres_container.get_container_host_ip(),
            port=int(postgres_container.get_exposed_port(5432)),
            user=postgres_container.username,
            password=postgres_container.password,
            min_pool_size=1,
            max_pool_size=2,
        )
        await db.provision()
        await run_migrations(db.url)
        await run_migrations(db.url)

        pool = await db.connect()
        try:
            tables = {
                row["table_name"]
                for row in await pool.fetch(
                    "SELECT table_name FROM information_schema.tables "
                    "WHERE table_schema = 'public'"
                )
            }
            assert {"anniversaries", "anniversary_horizons", "alembic_version"} <= tables
            assert await pool.fetchval("SELECT version_num FROM alembic_version") == "core_002"
        finally:
            await db.close()

    async def test_solar_event_cannot_store_occurrences(self, provisioned_postgres_pool):
        async with provisioned_postgres_pool() as pool:
            with pytest.raises(asyncpg.CheckViolationError):
                await pool.execute(
                    """
                    INSERT INTO anniversaries
                        (site_id, name, type, date, year, month, day, use_hebrew, occurrences)
                    VALUES ('s', 'n', 'birthday', '2020-01-01', 2020, 1, 1, false, '[]'::jsonb)
                    """
                )
