from __future__ import annotations

import asyncio
from pathlib import Path

import aiosqlite

from dealdesk.config import load_settings
from dealdesk.db.connection import open_connection

MIGRATIONS_DIR = Path(__file__).resolve().parent / "sql"


async def apply_pending(conn: aiosqlite.Connection) -> list[str]:
    """Apply every sql/*.sql not yet recorded; returns the applied versions."""
    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
          version TEXT PRIMARY KEY,
          applied_at TEXT NOT NULL
        )
        """
    )
    await conn.commit()

    applied: list[str] = []
    for migration_path in sorted(MIGRATIONS_DIR.glob("*.sql")):
        version = migration_path.name
        cursor = await conn.execute(
            "SELECT 1 FROM schema_migrations WHERE version = ?", (version,)
        )
        row = await cursor.fetchone()
        if row:
            continue

        sql = migration_path.read_text(encoding="utf-8")
        await conn.executescript(sql)
        await conn.execute(
            "INSERT INTO schema_migrations(version, applied_at) VALUES(?, strftime('%Y-%m-%dT%H:%M:%fZ','now'))",
            (version,),
        )
        await conn.commit()
        applied.append(version)
    return applied


async def apply_migrations(db_path: Path | None = None) -> None:
    if db_path is None:
        db_path = load_settings().db_path
    conn = await open_connection(db_path)
    try:
        await apply_pending(conn)
    finally:
        await conn.close()


if __name__ == "__main__":
    asyncio.run(apply_migrations())
