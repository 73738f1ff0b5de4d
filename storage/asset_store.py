"""Storage collaborator contract consumed by the dataset runs."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Protocol

from data.models import Asset


class AssetConnection(Protocol):
    """One acquired storage connection."""

    async def active_assets(self, table: str | None = None) -> list[Asset]:
        """Return instruments currently believed tradable, optionally from a named table."""
        ...


class AssetStore(Protocol):
    """Connection pool handing out scoped connections."""

    def acquire(self) -> AbstractAsyncContextManager[AssetConnection]:
        """Acquire a connection released when the context exits."""
        ...
