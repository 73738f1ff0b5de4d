"""Per-instrument end-of-day price retrieval."""

from __future__ import annotations

from datetime import date

import httpx
from pydantic import TypeAdapter, ValidationError
from structlog.stdlib import BoundLogger

from core.logger import get_logger
from data.exceptions import ProviderTransportError
from data.models import Asset, EodQuote, RawEodBar
from data.normalizer import normalize_eod_bar
from data.rate_limiter import AsyncRateLimiter
from data.security import redact_url
from data.symbols import SymbolTranslator
from data.timezone_manager import TimezoneManager

_BARS_ADAPTER = TypeAdapter(list[RawEodBar])


class EodFetcher:
    """Fetch recent daily bars for one instrument at a time.

    Each request waits on the limiter first. A non-success status or an
    undecodable body skips the instrument; a transport failure raises
    ``ProviderTransportError``.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        limiter: AsyncRateLimiter,
        translator: SymbolTranslator,
        tz: TimezoneManager,
        api_key: str,
        url_template: str,
        logger: BoundLogger | None = None,
    ) -> None:
        self._client = client
        self._limiter = limiter
        self._translator = translator
        self._tz = tz
        self._api_key = api_key
        self._url_template = url_template
        self._emitted: set[tuple[str, date]] = set()
        self.log = logger or get_logger("data.eod_fetcher")

    async def fetch(self, asset: Asset, start_date: date) -> list[EodQuote]:
        """Return normalized quotes for ``asset`` since ``start_date``, minus any already returned this run."""

        ticker = self._translator.to_provider(asset.ticker)
        url = self._url_template.format(ticker=ticker)

        await self._limiter.acquire()
        try:
            response = await self._client.get(
                url,
                params={"startDate": start_date.isoformat(), "token": self._api_key},
            )
        except httpx.TransportError as exc:
            raise ProviderTransportError(
                f"eod request failed: {exc}",
                context={"ticker": ticker, "url": url},
            ) from exc

        if response.status_code >= 300:
            self.log.error(
                "eod_request_rejected",
                status_code=response.status_code,
                ticker=ticker,
                url=redact_url(str(response.request.url)),
            )
            return []

        try:
            bars = _BARS_ADAPTER.validate_json(response.content)
        except ValidationError as exc:
            self.log.error("eod_response_undecodable", ticker=ticker, error=str(exc))
            return []

        quotes: list[EodQuote] = []
        for bar in bars:
            try:
                quote = normalize_eod_bar(bar, asset, self._tz)
            except ValueError as exc:
                self.log.error("eod_bad_date", ticker=ticker, date=bar.date, error=str(exc))
                continue

            key = (quote.ticker, quote.date.date())
            if key in self._emitted:
                continue
            self._emitted.add(key)
            quotes.append(quote)

        return quotes
