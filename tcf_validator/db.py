"""SQLite history of validation runs."""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from .models import SiteValidationResult, ValidationRun
from .utils import extract_registered_domain

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS validation_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    vendor_id INTEGER NOT NULL,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    site_count INTEGER DEFAULT 0,
    vendor_found INTEGER DEFAULT 0,
    failed INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS site_results (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id INTEGER NOT NULL REFERENCES validation_runs(id),
    site TEXT NOT NULL,
    domain TEXT,
    vendor_id INTEGER NOT NULL,
    has_tcf BOOLEAN,
    cmp_id INTEGER,
    vendor_is_present BOOLEAN,
    timestamp TEXT,
    error TEXT
);

CREATE INDEX IF NOT EXISTS idx_results_run ON site_results(run_id);
CREATE INDEX IF NOT EXISTS idx_results_domain ON site_results(domain);
CREATE INDEX IF NOT EXISTS idx_results_vendor ON site_results(vendor_id);
"""


def _as_bool(value) -> bool | None:
    return None if value is None else bool(value)


class ResultStore:
    """Async SQLite store for validation results."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open the store, creating the schema on first use."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(str(self.db_path))
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA foreign_keys=ON")
        await self._conn.executescript(SCHEMA_SQL)
        await self._conn.commit()
        logger.info("Result store opened: %s", self.db_path)

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def start_run(self, vendor_id: int, started_at: str) -> int:
        assert self._conn is not None
        cursor = await self._conn.execute(
            "INSERT INTO validation_runs (vendor_id, started_at) VALUES (?, ?)",
            (vendor_id, started_at),
        )
        await self._conn.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    async def save_result(self, run_id: int, result: SiteValidationResult) -> int:
        assert self._conn is not None
        cursor = await self._conn.execute(
            """
            INSERT INTO site_results (
                run_id, site, domain, vendor_id, has_tcf, cmp_id,
                vendor_is_present, timestamp, error
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                run_id,
                result.site,
                extract_registered_domain(result.site),
                result.vendor_id,
                result.has_tcf,
                result.cmp_id,
                result.vendor_is_present,
                result.timestamp,
                result.error,
            ),
        )
        await self._conn.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    async def finish_run(self, run_id: int, run: ValidationRun) -> None:
        assert self._conn is not None
        await self._conn.execute(
            """
            UPDATE validation_runs
            SET completed_at = ?, site_count = ?, vendor_found = ?, failed = ?
            WHERE id = ?
            """,
            (run.completed_at, len(run.results), run.vendor_found, run.failed, run_id),
        )
        await self._conn.commit()
        logger.debug("Saved run %d: %d sites", run_id, len(run.results))

    async def last_result(self, site: str, vendor_id: int) -> SiteValidationResult | None:
        """Most recent stored result for a site and vendor, if any."""
        assert self._conn is not None
        cursor = await self._conn.execute(
            """
            SELECT site, vendor_id, has_tcf, cmp_id, vendor_is_present, timestamp, error
            FROM site_results WHERE site = ? AND vendor_id = ?
            ORDER BY id DESC LIMIT 1
            """,
            (site, vendor_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return SiteValidationResult(
            site=row["site"],
            vendor_id=row["vendor_id"],
            has_tcf=_as_bool(row["has_tcf"]),
            cmp_id=row["cmp_id"],
            vendor_is_present=_as_bool(row["vendor_is_present"]),
            timestamp=row["timestamp"],
            error=row["error"],
        )

    async def get_stats(self, vendor_id: int | None = None) -> dict:
        """Counts across stored results, optionally for one vendor."""
        assert self._conn is not None
        where, params = ("WHERE vendor_id = ?", (vendor_id,)) if vendor_id is not None else ("", ())
        stats = {}

        cursor = await self._conn.execute(
            f"SELECT COUNT(*) FROM validation_runs {where}", params,
        )
        stats["total_runs"] = (await cursor.fetchone())[0]

        cursor = await self._conn.execute(
            f"SELECT COUNT(*) FROM site_results {where}", params,
        )
        stats["total_results"] = (await cursor.fetchone())[0]

        cursor = await self._conn.execute(
            f"SELECT COUNT(DISTINCT domain) FROM site_results {where}", params,
        )
        stats["distinct_domains"] = (await cursor.fetchone())[0]

        and_where = "AND vendor_id = ?" if vendor_id is not None else ""
        cursor = await self._conn.execute(
            f"SELECT COUNT(*) FROM site_results WHERE vendor_is_present = 1 {and_where}",
            params,
        )
        stats["vendor_found"] = (await cursor.fetchone())[0]

        cursor = await self._conn.execute(
            f"SELECT COUNT(*) FROM site_results WHERE error IS NOT NULL {and_where}",
            params,
        )
        stats["failed"] = (await cursor.fetchone())[0]

        return stats
