"""Tiingo security master and end-of-day price datasets."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import AsyncExitStack
from datetime import UTC, datetime, timedelta

import httpx
from structlog.stdlib import BoundLogger

from core.config_models import FigiConfig, TiingoRules
from core.logger import get_logger
from data.asset_types import DataTypeKey
from data.base_connector import (
    Dataset,
    DatasetProvider,
    ObservationQueue,
    Subscription,
    SummaryQueue,
)
from data.catalog_fetcher import CatalogFetcher
from data.enrichment import IdentifierEnricher, OpenFigiEnricher, StaticEnricher
from data.eod_fetcher import EodFetcher
from data.exceptions import ConnectorError, RunInitializationError
from data.models import Observation
from data.normalizer import CatalogNormalizer
from data.rate_limiter import AsyncRateLimiter, parse_rate_limit
from data.reconciler import ActiveSetReconciler
from data.run_reporter import RunReporter
from data.symbols import SymbolTranslator
from data.timezone_manager import TimezoneManager
from storage.asset_store import AssetConnection, AssetStore

EnricherFactory = Callable[[httpx.AsyncClient, BoundLogger], IdentifierEnricher]


class TiingoConnector(DatasetProvider):
    """Tiingo provider exposing the ``EOD`` and ``Stock Tickers`` datasets.

    Both runs follow the same shape: a setup phase (time zone, rate limit,
    storage connection) that fails fast with ``RunInitializationError``,
    then a single sequential pass that pushes observations onto the bounded
    output queue. The run summary is emitted exactly once whatever happens.
    """

    def __init__(
        self,
        rules: TiingoRules | None = None,
        figi: FigiConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        enricher_factory: EnricherFactory | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        self.rules = rules or TiingoRules()
        self.figi = figi or FigiConfig()
        self._transport = transport
        self._enricher_factory = enricher_factory or self._default_enricher
        self.log = logger or get_logger("data.connectors.tiingo")

    @property
    def name(self) -> str:
        return "tiingo"

    @property
    def description(self) -> str:
        return (
            "Tiingo provides EOD, Realtime, News and Fundamental data for stocks. Tiingo built a custom "
            "data processing engine that prioritizes performance, cleanliness, and completeness."
        )

    def config_description(self) -> dict[str, str]:
        return {
            "apiKey": "Enter your tiingo API key:",
            "rateLimit": "What is the maximum number of requests per minute?",
        }

    def datasets(self) -> dict[str, Dataset]:
        return {
            "EOD": Dataset(
                name="EOD",
                description="Get end-of-day stock prices for active assets.",
                data_types=[DataTypeKey.EOD],
                date_range=lambda: (datetime(1960, 1, 1, tzinfo=UTC), datetime.now(UTC)),
                fetch=self.download_eod_quotes,
            ),
            "Stock Tickers": Dataset(
                name="Stock Tickers",
                description="Details about tradeable stocks, ADRs, Mutual Funds and ETFs.",
                data_types=[DataTypeKey.ASSET],
                date_range=lambda: (datetime(2014, 1, 1, tzinfo=UTC), datetime.now(UTC)),
                fetch=self.download_assets,
            ),
        }

    async def download_eod_quotes(
        self,
        subscription: Subscription,
        out: ObservationQueue,
        exit_notification: SummaryQueue,
    ) -> None:
        """Emit the last ``eod_lookback_days`` of daily bars for every active asset."""

        reporter = RunReporter(subscription.subscription_id, subscription.name)
        log = self.log.bind(subscription_id=subscription.subscription_id, dataset="EOD")

        try:
            tz = TimezoneManager.load(self.rules.exchange_timezone, self.rules.market_close_hour)
            rate_limit = parse_rate_limit(subscription.config.get("rateLimit"), self.rules.default_rate_limit)
            limiter = AsyncRateLimiter.per_minute(rate_limit)

            async with AsyncExitStack() as stack:
                conn = await self._acquire(stack, subscription.store)
                client = await stack.enter_async_context(self._http_client())

                fetcher = EodFetcher(
                    client=client,
                    limiter=limiter,
                    translator=self._translator(),
                    tz=tz,
                    api_key=subscription.config.get("apiKey", ""),
                    url_template=self.rules.eod_url_template,
                    logger=log,
                )

                assets = await conn.active_assets(subscription.table_for(DataTypeKey.ASSET))
                start_date = (tz.now() - timedelta(days=self.rules.eod_lookback_days)).date()
                log.debug("eod_download_started", num_assets=len(assets), start_date=start_date.isoformat())

                for asset in assets:
                    for quote in await fetcher.fetch(asset, start_date):
                        await out.put(
                            Observation.wrap(
                                quote,
                                subscription_id=subscription.subscription_id,
                                subscription_name=subscription.name,
                            )
                        )
                        reporter.record()
        except asyncio.CancelledError:
            reporter.cancel()
            log.warning("run_cancelled", num_observations=reporter.num_observations)
            raise
        except ConnectorError as exc:
            reporter.fail(exc)
            log.error("run_failed", num_observations=reporter.num_observations, **exc.to_dict())
        except Exception as exc:
            reporter.fail(exc)
            log.exception("run_crashed", num_observations=reporter.num_observations)
            raise
        finally:
            self._complete(reporter, exit_notification, log)

    async def download_assets(
        self,
        subscription: Subscription,
        out: ObservationQueue,
        exit_notification: SummaryQueue,
    ) -> None:
        """Emit the normalized catalog plus assets that dropped out of it since the last run."""

        reporter = RunReporter(subscription.subscription_id, subscription.name)
        log = self.log.bind(subscription_id=subscription.subscription_id, dataset="Stock Tickers")

        try:
            tz = TimezoneManager.load(self.rules.exchange_timezone, self.rules.market_close_hour)

            async with AsyncExitStack() as stack:
                conn = await self._acquire(stack, subscription.store)
                client = await stack.enter_async_context(self._http_client())

                records = await CatalogFetcher(client, self.rules.catalog_url, logger=log).fetch()
                normalized = CatalogNormalizer(self.rules, tz, translator=self._translator(), logger=log).normalize_all(
                    records, now=tz.now()
                )

                log.debug("figi_enrichment_requested", num_assets=len(normalized.assets))
                await self._enricher_factory(client, log).enrich(normalized.assets)

                previously_active = await conn.active_assets(subscription.table_for(DataTypeKey.ASSET))
                report = ActiveSetReconciler(logger=log).reconcile(normalized.assets, previously_active, now=tz.now())
                reporter.record_unresolved(len(report.unresolved))

                for asset in report.assets:
                    await out.put(
                        Observation.wrap(
                            asset,
                            subscription_id=subscription.subscription_id,
                            subscription_name=subscription.name,
                        )
                    )
                    reporter.record()
        except asyncio.CancelledError:
            reporter.cancel()
            log.warning("run_cancelled", num_observations=reporter.num_observations)
            raise
        except ConnectorError as exc:
            reporter.fail(exc)
            log.error("run_failed", num_observations=reporter.num_observations, **exc.to_dict())
        except Exception as exc:
            reporter.fail(exc)
            log.exception("run_crashed", num_observations=reporter.num_observations)
            raise
        finally:
            self._complete(reporter, exit_notification, log)

    async def _acquire(self, stack: AsyncExitStack, store: AssetStore) -> AssetConnection:
        try:
            return await stack.enter_async_context(store.acquire())
        except ConnectorError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise RunInitializationError(f"could not acquire database connection: {exc}") from exc

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.rules.request_timeout_seconds,
            transport=self._transport,
            follow_redirects=True,
        )

    def _translator(self) -> SymbolTranslator:
        return SymbolTranslator(
            provider_separator=self.rules.provider_separator,
            internal_separator=self.rules.internal_separator,
            provider_aliases=self.rules.provider_separator_aliases,
        )

    def _default_enricher(self, client: httpx.AsyncClient, log: BoundLogger) -> IdentifierEnricher:
        if not self.figi.enabled:
            return StaticEnricher({})
        return OpenFigiEnricher(client, self.figi, logger=log)

    @staticmethod
    def _complete(reporter: RunReporter, exit_notification: SummaryQueue, log: BoundLogger) -> None:
        if reporter.emit(exit_notification):
            summary = reporter.summary
            log.info(
                "run_finished",
                status=summary.status.value,
                num_observations=summary.num_observations,
                num_unresolved=summary.num_unresolved,
                duration_seconds=(
                    (summary.end_time - summary.start_time).total_seconds() if summary.end_time is not None else None
                ),
            )
