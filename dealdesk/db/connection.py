from __future__ import annotations

from pathlib import Path

import aiosqlite

BUSY_TIMEOUT_MS = 5000


async def open_connection(db_path: Path | str) -> aiosqlite.Connection:
    """Open the Data Store file, creating its directory on first use."""
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(str(path))
    conn.row_factory = aiosqlite.Row
    for pragma in ("journal_mode=WAL", "foreign_keys=ON", f"busy_timeout={BUSY_TIMEOUT_MS}"):
        await conn.execute(f"PRAGMA {pragma};")
    await conn.commit()
    return conn
