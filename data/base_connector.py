"""Provider and dataset contracts shared by all market-data providers."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

from data.asset_types import DataTypeKey
from data.models import Observation, RunSummary
from storage.asset_store import AssetStore

ObservationQueue = asyncio.Queue[Observation]
SummaryQueue = asyncio.Queue[RunSummary]


@dataclass(slots=True)
class Subscription:
    """A configured subscription handed to a dataset run."""

    subscription_id: str
    name: str
    config: dict[str, str]
    store: AssetStore
    data_tables: dict[str, str] = field(default_factory=dict)

    def table_for(self, key: DataTypeKey) -> str | None:
        return self.data_tables.get(key.value)


FetchFn = Callable[[Subscription, ObservationQueue, SummaryQueue], Awaitable[None]]


@dataclass(slots=True)
class Dataset:
    """One runnable dataset offered by a provider."""

    name: str
    description: str
    data_types: list[DataTypeKey]
    date_range: Callable[[], tuple[datetime, datetime]]
    fetch: FetchFn


class DatasetProvider(ABC):
    """Unified interface for market-data providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short provider identifier."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable provider description."""

    @abstractmethod
    def config_description(self) -> dict[str, str]:
        """Prompt text for every subscription configuration key."""

    @abstractmethod
    def datasets(self) -> dict[str, Dataset]:
        """Datasets this provider can run, keyed by name."""

    def get_dataset(self, name: str) -> Dataset:
        """Look up a dataset case-insensitively."""

        for key, dataset in self.datasets().items():
            if key.lower() == name.lower():
                return dataset
        raise KeyError(f"unknown dataset {name!r} for provider {self.name}")
