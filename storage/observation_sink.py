"""Downstream consumer that drains the observation queue."""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiofiles  # type: ignore[import-untyped]
from structlog.stdlib import BoundLogger

from core.logger import get_logger
from data.models import Asset, Observation
from storage.sqlite_store import SQLiteAssetStore


class JSONLObservationSink:
    """Append observations to a JSONL file and keep the asset store current.

    Assets are buffered and upserted in batches so the next catalog run sees
    the updated active set.
    """

    def __init__(
        self,
        path: Path,
        store: SQLiteAssetStore | None = None,
        asset_table: str | None = None,
        batch_size: int = 500,
        logger: BoundLogger | None = None,
    ) -> None:
        self._path = path
        self._store = store
        self._asset_table = asset_table
        self._batch_size = max(batch_size, 1)
        self._pending_assets: list[Asset] = []
        self.written = 0
        self.log = logger or get_logger("storage.observation_sink")

    async def consume(self, queue: asyncio.Queue[Observation | None]) -> int:
        """Drain ``queue`` until a ``None`` sentinel arrives; return the number written."""

        self._path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(self._path, mode="a", encoding="utf-8") as stream:
            while True:
                item = await queue.get()
                try:
                    if item is None:
                        break
                    await stream.write(item.model_dump_json())
                    await stream.write("\n")
                    self.written += 1
                    if item.asset is not None:
                        self._pending_assets.append(item.asset)
                        if len(self._pending_assets) >= self._batch_size:
                            await self.flush_assets()
                finally:
                    queue.task_done()

        await self.flush_assets()
        self.log.info("observations_written", path=str(self._path), count=self.written)
        return self.written

    async def flush_assets(self) -> None:
        if self._store is None or not self._pending_assets:
            self._pending_assets.clear()
            return
        async with self._store.acquire() as conn:
            await conn.upsert_assets(self._pending_assets, self._asset_table)
        self._pending_assets.clear()
