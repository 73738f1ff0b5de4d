"""SQLite storage for the known asset set."""

from __future__ import annotations

import re
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from data.models import Asset

_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _validate_table(name: str) -> str:
    if not _TABLE_NAME_RE.match(name):
        raise ValueError(f"invalid table name: {name!r}")
    return name


class SQLiteAssetConnection:
    """Asset queries over one open aiosqlite connection."""

    def __init__(self, db: aiosqlite.Connection, default_table: str) -> None:
        self._db = db
        self._default_table = default_table
        self._ready: set[str] = set()

    async def active_assets(self, table: str | None = None) -> list[Asset]:
        name = await self._ensure_table(table)
        cursor = await self._db.execute(f"SELECT payload FROM {name} WHERE active = 1 ORDER BY ticker")
        rows = await cursor.fetchall()
        return [Asset.model_validate_json(row[0]) for row in rows]

    async def upsert_assets(self, assets: Iterable[Asset], table: str | None = None) -> int:
        """Insert or replace assets by composite FIGI; assets without one are skipped."""

        name = await self._ensure_table(table)
        rows = [
            (asset.composite_figi, asset.ticker, int(asset.active), asset.model_dump_json())
            for asset in assets
            if asset.composite_figi
        ]
        await self._db.executemany(
            f"""
            INSERT OR REPLACE INTO {name} (composite_figi, ticker, active, payload)
            VALUES (?, ?, ?, ?)
            """,
            rows,
        )
        await self._db.commit()
        return len(rows)

    async def _ensure_table(self, table: str | None) -> str:
        name = _validate_table(table or self._default_table)
        if name in self._ready:
            return name
        await self._db.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {name} (
                composite_figi TEXT PRIMARY KEY,
                ticker TEXT NOT NULL,
                active INTEGER NOT NULL,
                payload TEXT NOT NULL
            )
            """
        )
        await self._db.commit()
        self._ready.add(name)
        return name


class SQLiteAssetStore:
    """Async SQLite store handing out one scoped connection per acquire."""

    def __init__(self, db_path: Path, default_table: str = "assets") -> None:
        self._db_path = db_path
        self._default_table = _validate_table(default_table)
        self.acquired = 0
        self.released = 0

    async def initialize(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self.acquire() as conn:
            await conn.active_assets()

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[SQLiteAssetConnection]:
        db = await aiosqlite.connect(self._db_path)
        self.acquired += 1
        try:
            yield SQLiteAssetConnection(db, self._default_table)
        finally:
            await db.close()
            self.released += 1
