"""CLI for kindred: migrate the database, pre-warm horizons, query months, serve the API."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import click

from kindred.anniversaries.store import AnniversaryStore
from kindred.config import CONFIG_FILENAME, ConfigError, KindredConfig, load_config
from kindred.core.logging import configure_logging, set_site_context
from kindred.db import Database
from kindred.migrations import run_migrations

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path(".")


def _load(config_dir: Path) -> KindredConfig:
    """Load kindred.toml from *config_dir*, or fall back to defaults when absent."""
    if not (config_dir / CONFIG_FILENAME).exists():
        return KindredConfig()
    return load_config(config_dir)


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=DEFAULT_CONFIG_DIR,
    help=f"Directory containing {CONFIG_FILENAME}",
)
@click.pass_context
def cli(ctx: click.Context, config_dir: Path) -> None:
    """Kindred: recurring anniversaries across the solar and Hebrew calendars."""
    try:
        config = _load(config_dir)
    except ConfigError as exc:
        click.echo(f"Invalid configuration: {exc}", err=True)
        sys.exit(1)
    configure_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_root=config.logging.log_root,
        service_name=config.name,
    )
    ctx.obj = config


@asynccontextmanager
async def _open_store(config: KindredConfig) -> AsyncIterator[AnniversaryStore]:
    db = Database.from_env(config.db_name, schema=config.db_schema)
    pool = await db.connect()
    try:
        yield AnniversaryStore(pool, max_lookahead_years=config.anniversaries.max_lookahead_years)
    finally:
        await db.close()


async def _migrate(config: KindredConfig) -> None:
    db = Database.from_env(config.db_name, schema=config.db_schema)
    await db.provision()
    await run_migrations(db.url, schema=config.db_schema)


@cli.command()
@click.pass_obj
def migrate(config: KindredConfig) -> None:
    """Create the database if needed and upgrade it to the latest schema."""
    asyncio.run(_migrate(config))
    click.echo(f"Database {config.db_name} is up to date")


async def _extend_horizon(config: KindredConfig, site_id: str, year: int) -> int:
    set_site_context(site_id)
    async with _open_store(config) as store:
        return await store.ensure_horizon_for_year(site_id, year)


@cli.command("extend-horizon")
@click.argument("site_id")
@click.argument("year", type=int)
@click.pass_obj
def extend_horizon(config: KindredConfig, site_id: str, year: int) -> None:
    """Materialise Hebrew occurrences for SITE_ID through YEAR."""
    try:
        horizon = asyncio.run(_extend_horizon(config, site_id, year))
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    click.echo(f"Horizon for {site_id}: {horizon}")


async def _month(config: KindredConfig, site_id: str, month: int, year: int, locale: str | None):
    set_site_context(site_id)
    async with _open_store(config) as store:
        return await store.query_month(site_id, month, year, locale=locale)


@cli.command()
@click.argument("site_id")
@click.argument("month", type=int)
@click.argument("year", type=int)
@click.option("--locale", default=None, help="Locale for names and descriptions")
@click.pass_obj
def month(config: KindredConfig, site_id: str, month: int, year: int, locale: str | None) -> None:
    """List the events of SITE_ID falling in MONTH (1-12) of YEAR."""
    try:
        events = asyncio.run(
            _month(config, site_id, month, year, locale or config.anniversaries.default_locale)
        )
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if not events:
        click.echo(f"No events in {year}-{month:02d}")
        return

    click.echo(f"{'Date':<12} {'Type':<16} {'Name':<30} {'Hebrew'}")
    click.echo("-" * 80)
    for event in events:
        hebrew = event.hebrew_date or ""
        click.echo(f"{event.date.isoformat():<12} {event.type:<16} {event.name:<30} {hebrew}")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", type=int, default=None, help="Defaults to kindred.port from the config")
@click.pass_obj
def serve(config: KindredConfig, host: str, port: int | None) -> None:
    """Run the HTTP API."""
    import uvicorn

    from kindred.api.app import create_app

    app = create_app(config)
    uvicorn.run(app, host=host, port=port or config.port, log_config=None)
