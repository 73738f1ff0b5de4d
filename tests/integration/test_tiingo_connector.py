from __future__ import annotations

import asyncio
import io
import zipfile
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import httpx
import pytest
import structlog

from core.config_models import TiingoRules
from data.asset_types import DataTypeKey, Exchange, RunStatus
from data.base_connector import Subscription
from data.connectors import PROVIDERS, TiingoConnector
from data.enrichment import StaticEnricher
from data.models import Asset, Observation, RunSummary

CSV = (
    "ticker,exchange,assetType,priceCurrency,startDate,endDate\n"
    "AAPL,NASDAQ,Stock,USD,1980-12-12,\n"
    "BRK-A,NYSE,Stock,USD,1980-03-17,\n"
    "SPY,NYSE ARCA,ETF,USD,1993-01-29,\n"
    "CLASSA-W1,NYSE,Stock,USD,2020-01-01,\n"
    "VOD,LSE,Stock,GBP,2000-01-01,\n"
    "OLDCO,NYSE,Stock,USD,2001-01-01,2010-01-01\n"
    "NOFIGI,NASDAQ,Stock,USD,2019-01-01,\n"
)

FIGIS = {"AAPL": "FIGI_AAPL", "BRK/A": "FIGI_BRK", "SPY": "FIGI_SPY"}


class _FakeConnection:
    def __init__(self, assets: Sequence[Asset]) -> None:
        self.assets = list(assets)
        self.tables: list[str | None] = []

    async def active_assets(self, table: str | None = None) -> list[Asset]:
        self.tables.append(table)
        return list(self.assets)


class _FakeStore:
    def __init__(self, assets: Sequence[Asset] = (), fail: bool = False) -> None:
        self.connection = _FakeConnection(assets)
        self.fail = fail
        self.acquired = 0
        self.released = 0

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[_FakeConnection]:
        if self.fail:
            raise OSError("database unavailable")
        self.acquired += 1
        try:
            yield self.connection
        finally:
            self.released += 1


def _zip(content: str) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("supported_tickers.csv", content)
    return buffer.getvalue()


def _bar(day: str) -> dict:
    return {
        "date": f"{day}T00:00:00.000Z",
        "open": 10.0,
        "high": 11.0,
        "low": 9.0,
        "close": 10.5,
        "volume": 1000,
        "divCash": 0.0,
        "splitFactor": 1.0,
    }


def _asset(ticker: str, figi: str) -> Asset:
    return Asset(ticker=ticker, primary_exchange=Exchange.NYSE, composite_figi=figi)


def _subscription(store: _FakeStore, **config: str) -> Subscription:
    return Subscription(
        subscription_id="sub-1",
        name="tiingo-test",
        config={"apiKey": "secret", "rateLimit": "6100", **config},
        store=store,  # type: ignore[arg-type]
        data_tables={DataTypeKey.ASSET.value: "tiingo_assets"},
    )


def _connector(handler, rules: TiingoRules | None = None, enrich=None) -> TiingoConnector:
    return TiingoConnector(
        rules=rules,
        transport=httpx.MockTransport(handler),
        enricher_factory=enrich or (lambda _client, _log: StaticEnricher(FIGIS)),
    )


def _drain(queue: asyncio.Queue[Observation]) -> list[Observation]:
    items: list[Observation] = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


def test_provider_metadata() -> None:
    connector = TiingoConnector()

    assert PROVIDERS["tiingo"] is TiingoConnector
    assert connector.name == "tiingo"
    assert set(connector.config_description()) == {"apiKey", "rateLimit"}
    assert set(connector.datasets()) == {"EOD", "Stock Tickers"}
    assert connector.get_dataset("eod").data_types == [DataTypeKey.EOD]
    assert connector.get_dataset("stock tickers").data_types == [DataTypeKey.ASSET]

    start, end = connector.get_dataset("EOD").date_range()
    assert start == datetime(1960, 1, 1, tzinfo=UTC)
    assert end > start

    with pytest.raises(KeyError):
        connector.get_dataset("news")


@pytest.mark.asyncio
async def test_catalog_run_emits_candidates_and_delistings() -> None:
    payload = _zip(CSV)

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "apimedia.tiingo.com"
        return httpx.Response(200, content=payload)

    store = _FakeStore([_asset("AAPL", "FIGI_AAPL"), _asset("GONE", "FIGI_GONE")])
    out: asyncio.Queue[Observation] = asyncio.Queue()
    done: asyncio.Queue[RunSummary] = asyncio.Queue()

    await _connector(handler).download_assets(_subscription(store), out, done)

    observations = _drain(out)
    assets = [item.asset for item in observations if item.asset is not None]
    assert [asset.ticker for asset in assets] == ["AAPL", "BRK/A", "SPY", "GONE"]
    assert all(item.subscription_id == "sub-1" for item in observations)
    assert all(item.subscription_name == "tiingo-test" for item in observations)
    assert [asset.active for asset in assets] == [True, True, True, False]
    assert assets[3].delisting_date != ""
    assert assets[1].primary_exchange == Exchange.NYSE

    summary = done.get_nowait()
    assert summary.status == RunStatus.COMPLETED
    assert summary.num_observations == 4
    assert summary.num_unresolved == 1
    assert summary.end_time is not None
    assert done.empty()

    assert store.acquired == store.released == 1
    assert store.connection.tables == ["tiingo_assets"]


@pytest.mark.asyncio
async def test_catalog_download_rejection_fails_run() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="server error")

    store = _FakeStore()
    out: asyncio.Queue[Observation] = asyncio.Queue()
    done: asyncio.Queue[RunSummary] = asyncio.Queue()

    await _connector(handler).download_assets(_subscription(store), out, done)

    summary = done.get_nowait()
    assert summary.status == RunStatus.FAILED
    assert summary.num_observations == 0
    assert out.empty()
    assert store.acquired == store.released == 1


@pytest.mark.asyncio
async def test_unexpected_error_is_reported_and_raised() -> None:
    class _Broken:
        async def enrich(self, assets: Sequence[Asset]) -> None:
            raise RuntimeError("enrichment exploded")

    payload = _zip(CSV)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=payload)

    store = _FakeStore()
    done: asyncio.Queue[RunSummary] = asyncio.Queue()

    with pytest.raises(RuntimeError):
        await _connector(handler, enrich=lambda _client, _log: _Broken()).download_assets(
            _subscription(store), asyncio.Queue(), done
        )

    summary = done.get_nowait()
    assert summary.status == RunStatus.FAILED
    assert summary.error == "enrichment exploded"
    assert store.acquired == store.released == 1


@pytest.mark.asyncio
async def test_enricher_receives_run_bound_logger() -> None:
    payload = _zip(CSV)
    contexts: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=payload)

    def enrich(_client: httpx.AsyncClient, log) -> StaticEnricher:
        contexts.append(structlog.get_context(log))
        return StaticEnricher(FIGIS)

    done: asyncio.Queue[RunSummary] = asyncio.Queue()
    await _connector(handler, enrich=enrich).download_assets(_subscription(_FakeStore()), asyncio.Queue(), done)

    assert contexts[0]["subscription_id"] == "sub-1"
    assert contexts[0]["dataset"] == "Stock Tickers"
    assert done.get_nowait().status == RunStatus.COMPLETED


@pytest.mark.asyncio
async def test_eod_run_emits_quotes_for_active_assets() -> None:
    requested: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request)
        if request.url.path == "/tiingo/daily/AAPL/prices":
            return httpx.Response(200, json=[_bar("2024-03-01"), _bar("2024-03-04")])
        return httpx.Response(404, json={"detail": "not found"})

    store = _FakeStore([_asset("AAPL", "FIGI_AAPL"), _asset("BRK/A", "FIGI_BRK")])
    out: asyncio.Queue[Observation] = asyncio.Queue()
    done: asyncio.Queue[RunSummary] = asyncio.Queue()

    await _connector(handler).download_eod_quotes(_subscription(store), out, done)

    quotes = [item.eod_quote for item in _drain(out) if item.eod_quote is not None]
    assert [quote.ticker for quote in quotes] == ["AAPL", "AAPL"]
    assert all(quote.composite_figi == "FIGI_AAPL" for quote in quotes)
    assert all(quote.date.hour == 16 for quote in quotes)
    assert [request.url.path for request in requested] == [
        "/tiingo/daily/AAPL/prices",
        "/tiingo/daily/BRK-A/prices",
    ]
    assert all(request.url.params["token"] == "secret" for request in requested)
    assert all("startDate" in request.url.params for request in requested)

    summary = done.get_nowait()
    assert summary.status == RunStatus.COMPLETED
    assert summary.num_observations == 2
    assert store.acquired == store.released == 1


@pytest.mark.asyncio
async def test_eod_transport_failure_keeps_partial_count() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/tiingo/daily/AAPL/prices":
            return httpx.Response(200, json=[_bar("2024-03-01")])
        raise httpx.ConnectError("connection reset", request=request)

    store = _FakeStore([_asset("AAPL", "FIGI_AAPL"), _asset("MSFT", "FIGI_MSFT")])
    out: asyncio.Queue[Observation] = asyncio.Queue()
    done: asyncio.Queue[RunSummary] = asyncio.Queue()

    await _connector(handler).download_eod_quotes(_subscription(store), out, done)

    summary = done.get_nowait()
    assert summary.status == RunStatus.FAILED
    assert summary.num_observations == 1
    assert out.qsize() == 1
    assert store.acquired == store.released == 1


@pytest.mark.asyncio
async def test_cancellation_while_blocked_releases_connection() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[_bar("2024-03-01"), _bar("2024-03-04"), _bar("2024-03-05")])

    store = _FakeStore([_asset("AAPL", "FIGI_AAPL")])
    out: asyncio.Queue[Observation] = asyncio.Queue(maxsize=1)
    done: asyncio.Queue[RunSummary] = asyncio.Queue()

    task = asyncio.create_task(_connector(handler).download_eod_quotes(_subscription(store), out, done))

    async def _wait_full() -> None:
        while not out.full():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_wait_full(), timeout=5)
    await asyncio.sleep(0.05)
    assert not task.done()

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    summary = done.get_nowait()
    assert summary.status == RunStatus.CANCELLED
    assert summary.num_observations == 1
    assert store.acquired == store.released == 1


@pytest.mark.asyncio
async def test_connection_failure_fails_before_any_request() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json=[])

    store = _FakeStore(fail=True)
    done: asyncio.Queue[RunSummary] = asyncio.Queue()

    await _connector(handler).download_eod_quotes(_subscription(store), asyncio.Queue(), done)

    summary = done.get_nowait()
    assert summary.status == RunStatus.FAILED
    assert summary.error is not None
    assert "could not acquire database connection" in summary.error
    assert calls == []


@pytest.mark.asyncio
async def test_unknown_timezone_fails_run() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=_zip(CSV))

    store = _FakeStore()
    done: asyncio.Queue[RunSummary] = asyncio.Queue()
    rules = TiingoRules(exchange_timezone="Mars/Olympus_Mons")

    await _connector(handler, rules=rules).download_assets(_subscription(store), asyncio.Queue(), done)

    summary = done.get_nowait()
    assert summary.status == RunStatus.FAILED
    assert store.acquired == 0


@pytest.mark.asyncio
async def test_non_integer_rate_limit_fails_run() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    store = _FakeStore([_asset("AAPL", "FIGI_AAPL")])
    done: asyncio.Queue[RunSummary] = asyncio.Queue()

    await _connector(handler).download_eod_quotes(_subscription(store, rateLimit="fast"), asyncio.Queue(), done)

    summary = done.get_nowait()
    assert summary.status == RunStatus.FAILED
    assert summary.error is not None
    assert "rateLimit" in summary.error
    assert store.acquired == 0
