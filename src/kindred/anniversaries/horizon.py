"""Per-site horizon record backed by PostgreSQL.

The horizon is the last solar year through which every annual
Hebrew-anchored event of a site has materialised occurrences. It lives in
the ``anniversary_horizons`` table as a versioned value: every advance bumps
``version`` so that writers can compare-and-set against the value they read.

All functions accept either an asyncpg pool or a connection, so they can run
inside a caller's transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

import asyncpg

logger = logging.getLogger(__name__)


class HorizonConflictError(Exception):
    """Raised by advance_horizon when the stored version no longer matches.

    Attributes:
        site_id: The site whose horizon was being advanced.
        expected_version: The version the caller read.
        actual_version: The version found in the database (or None if absent).
    """

    def __init__(
        self,
        site_id: str,
        expected_version: int,
        actual_version: int | None,
    ) -> None:
        self.site_id = site_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Horizon conflict for site {site_id!r}: expected version {expected_version}, "
            f"got {actual_version!r}"
        )


@dataclass(frozen=True)
class HorizonRecord:
    """Snapshot of a site's horizon row."""

    site_id: str
    horizon_year: int
    version: int


Executor = asyncpg.Pool | asyncpg.Connection


async def read_horizon(
    conn: Executor,
    site_id: str,
    *,
    for_update: bool = False,
) -> HorizonRecord | None:
    """Return the stored horizon for *site_id*, or ``None`` if never initialised.

    ``for_update`` locks the row until the surrounding transaction ends.
    """
    query = "SELECT site_id, horizon_year, version FROM anniversary_horizons WHERE site_id = $1"
    if for_update:
        query += " FOR UPDATE"
    row = await conn.fetchrow(query, site_id)
    if row is None:
        return None
    return HorizonRecord(
        site_id=row["site_id"],
        horizon_year=row["horizon_year"],
        version=row["version"],
    )


async def get_horizon_year(
    conn: Executor,
    site_id: str,
    *,
    current_year: int | None = None,
) -> int:
    """Return the site's horizon year, persisting the current year if unset."""
    record = await read_horizon(conn, site_id)
    if record is not None:
        return record.horizon_year

    initial = current_year if current_year is not None else date.today().year
    await conn.execute(
        """
        INSERT INTO anniversary_horizons (site_id, horizon_year, version, updated_at)
        VALUES ($1, $2, 1, now())
        ON CONFLICT (site_id) DO NOTHING
        """,
        site_id,
        initial,
    )
    # A concurrent initialiser may have won the insert.
    record = await read_horizon(conn, site_id)
    if record is None:
        raise RuntimeError(f"Horizon row for site {site_id!r} vanished after insert")
    logger.info("Initialised anniversary horizon for site %s at %d", site_id, record.horizon_year)
    return record.horizon_year


async def extend_horizon_year(
    conn: Executor,
    site_id: str,
    target_year: int,
    *,
    current_year: int | None = None,
) -> int:
    """Set the stored horizon to ``max(stored, target_year)``.

    Calling with a year at or below the stored value changes nothing (the
    version is not bumped either). A missing row is initialised to
    ``max(current year, target_year)``.

    Returns:
        The horizon year stored after the call.
    """
    initial = current_year if current_year is not None else date.today().year
    stored: int = await conn.fetchval(
        """
        INSERT INTO anniversary_horizons AS h (site_id, horizon_year, version, updated_at)
        VALUES ($1, GREATEST($2::int, $3::int), 1, now())
        ON CONFLICT (site_id) DO UPDATE
            SET horizon_year = GREATEST(h.horizon_year, EXCLUDED.horizon_year),
                version = CASE
                    WHEN EXCLUDED.horizon_year > h.horizon_year THEN h.version + 1
                    ELSE h.version
                END,
                updated_at = CASE
                    WHEN EXCLUDED.horizon_year > h.horizon_year THEN now()
                    ELSE h.updated_at
                END
        RETURNING horizon_year
        """,
        site_id,
        target_year,
        initial,
    )
    return stored


async def advance_horizon(
    conn: Executor,
    record: HorizonRecord,
    target_year: int,
) -> HorizonRecord:
    """Advance the horizon only if it is still at the version in *record*.

    This is the compare-and-set used by horizon extension: the caller reads
    the record, materialises occurrences up to *target_year*, then publishes
    the new horizon against the version it read.

    Raises:
        HorizonConflictError: If another writer advanced the horizon in between.
    """
    row = await conn.fetchrow(
        """
        UPDATE anniversary_horizons
        SET horizon_year = GREATEST(horizon_year, $3::int),
            version = version + 1,
            updated_at = now()
        WHERE site_id = $1 AND version = $2
        RETURNING site_id, horizon_year, version
        """,
        record.site_id,
        record.version,
        target_year,
    )
    if row is not None:
        return HorizonRecord(
            site_id=row["site_id"],
            horizon_year=row["horizon_year"],
            version=row["version"],
        )

    actual = await conn.fetchval(
        "SELECT version FROM anniversary_horizons WHERE site_id = $1",
        record.site_id,
    )
    raise HorizonConflictError(
        site_id=record.site_id,
        expected_version=record.version,
        actual_version=actual,
    )
