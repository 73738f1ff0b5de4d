"""Composite FIGI enrichment for normalized assets."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

import httpx
from structlog.stdlib import BoundLogger

from core.config_models import FigiConfig
from core.logger import get_logger
from data.exceptions import ProviderTransportError
from data.models import Asset
from data.rate_limiter import AsyncRateLimiter


class IdentifierEnricher(Protocol):
    """Attach composite identifiers to assets in place.

    Assets that cannot be resolved keep an empty ``composite_figi``.
    """

    async def enrich(self, assets: Sequence[Asset]) -> None:
        ...


class StaticEnricher:
    """Resolve identifiers from an in-memory ticker to FIGI mapping."""

    def __init__(self, mapping: Mapping[str, str]) -> None:
        self._mapping = dict(mapping)

    async def enrich(self, assets: Sequence[Asset]) -> None:
        for asset in assets:
            figi = self._mapping.get(asset.ticker)
            if figi:
                asset.composite_figi = figi


class OpenFigiEnricher:
    """Resolve composite FIGIs through the OpenFIGI mapping API."""

    KEYLESS_BATCH_SIZE = 10
    KEYED_BATCH_SIZE = 100
    KEYLESS_RATE_LIMIT = 25
    KEYED_RATE_LIMIT = 250

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: FigiConfig,
        limiter: AsyncRateLimiter | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        self._client = client
        self._config = config
        self._batch_size = self.KEYED_BATCH_SIZE if config.api_key else self.KEYLESS_BATCH_SIZE
        default_rate = self.KEYED_RATE_LIMIT if config.api_key else self.KEYLESS_RATE_LIMIT
        self._limiter = limiter or AsyncRateLimiter.per_minute(config.rate_limit or default_rate)
        self.log = logger or get_logger("data.enrichment")

    async def enrich(self, assets: Sequence[Asset]) -> None:
        """Resolve identifiers batch by batch; a rejected batch stays unresolved."""

        pending = [asset for asset in assets if not asset.composite_figi]
        self.log.debug("figi_enrichment_started", assets=len(pending))

        resolved = 0
        for start in range(0, len(pending), self._batch_size):
            batch = pending[start : start + self._batch_size]
            results = await self._map_batch(batch)
            for asset, result in zip(batch, results, strict=False):
                figi = _composite_figi(result)
                if figi:
                    asset.composite_figi = figi
                    resolved += 1

        self.log.info("figi_enrichment_finished", requested=len(pending), resolved=resolved)

    async def _map_batch(self, batch: list[Asset]) -> list[Any]:
        jobs = [{"idType": "TICKER", "idValue": asset.ticker, "exchCode": self._config.exchange_code} for asset in batch]
        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["X-OPENFIGI-APIKEY"] = self._config.api_key

        await self._limiter.acquire()
        try:
            response = await self._client.post(self._config.url, json=jobs, headers=headers)
        except httpx.TransportError as exc:
            raise ProviderTransportError(f"openfigi request failed: {exc}", context={"url": self._config.url}) from exc

        if response.status_code >= 300:
            self.log.error(
                "figi_mapping_rejected",
                status_code=response.status_code,
                first_ticker=batch[0].ticker,
                batch_size=len(batch),
            )
            return []

        try:
            payload = response.json()
        except ValueError:
            self.log.error("figi_mapping_undecodable", first_ticker=batch[0].ticker)
            return []

        if not isinstance(payload, list):
            self.log.error("figi_mapping_unexpected_payload", payload_type=type(payload).__name__)
            return []
        return payload


def _composite_figi(result: Any) -> str:
    if not isinstance(result, dict):
        return ""
    matches = result.get("data")
    if not isinstance(matches, list):
        return ""
    for match in matches:
        if isinstance(match, dict) and match.get("compositeFIGI"):
            return str(match["compositeFIGI"])
    return ""
