"""Run-scoped state shared between the restore and the store phase.

The only record is which key restored each cache domain. The restore phase
writes it, the store phase of the same run reads it.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite

from mtimecache.errors import StateError

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS restored_keys (
    run_id TEXT NOT NULL,
    domain TEXT NOT NULL,
    key TEXT NOT NULL,
    recorded_at INTEGER NOT NULL,
    PRIMARY KEY (run_id, domain)
);
"""


async def ensure_db(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    async with aiosqlite.connect(db_path) as db:
        await db.execute(SCHEMA_SQL)
        await db.commit()


async def begin_restore(db_path: Path, run_id: str) -> None:
    """Forget any earlier restore recorded under *run_id*."""
    await ensure_db(db_path)
    async with aiosqlite.connect(db_path) as db:
        await db.execute("DELETE FROM restored_keys WHERE run_id = ?", (run_id,))
        await db.commit()


async def record_restored_key(db_path: Path, run_id: str, domain: str, key: str) -> None:
    await ensure_db(db_path)
    async with aiosqlite.connect(db_path) as db:
        try:
            await db.execute(
                """
                INSERT INTO restored_keys (run_id, domain, key, recorded_at)
                VALUES (?, ?, ?, strftime('%s','now'))
                """,
                (run_id, domain, key),
            )
        except aiosqlite.IntegrityError as exc:
            raise StateError(
                f"Restored key for {domain!r} was already recorded in run {run_id!r}."
            ) from exc
        await db.commit()


async def load_restored_key(db_path: Path, run_id: str, domain: str) -> str | None:
    await ensure_db(db_path)
    async with aiosqlite.connect(db_path) as db:
        cursor = await db.execute(
            "SELECT key FROM restored_keys WHERE run_id = ? AND domain = ?",
            (run_id, domain),
        )
        row = await cursor.fetchone()
        await cursor.close()
    if row is None:
        return None
    return str(row[0])


async def load_restored_keys(db_path: Path, run_id: str) -> dict[str, str]:
    await ensure_db(db_path)
    async with aiosqlite.connect(db_path) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute(
            "SELECT domain, key FROM restored_keys WHERE run_id = ? ORDER BY domain",
            (run_id,),
        )
        rows = await cursor.fetchall()
        await cursor.close()
    return {str(row["domain"]): str(row["key"]) for row in rows}
