from __future__ import annotations

import io
import zipfile

import httpx
import pytest

from data.catalog_fetcher import CatalogFetcher, decode_catalog, decode_catalog_csv
from data.exceptions import CatalogDecodeError, CatalogDownloadError, ProviderTransportError

CATALOG_URL = "https://apimedia.tiingo.com/docs/tiingo/daily/supported_tickers.zip"

CSV = (
    "ticker,exchange,assetType,priceCurrency,startDate,endDate\n"
    "AAPL,NASDAQ,Stock,USD,1980-12-12,2024-03-01\n"
    "BRK-A,NYSE,Stock,USD,,\n"
    "\"CLASSA U.X\",NYSE,Stock,USD,2020-01-01,\n"
)


def _zip(*entries: tuple[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in entries:
            archive.writestr(name, content)
    return buffer.getvalue()


def _fetcher(handler) -> CatalogFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CatalogFetcher(client, CATALOG_URL)


def test_decode_catalog_reads_all_columns_as_text() -> None:
    records = decode_catalog(_zip(("supported_tickers.csv", CSV)))

    assert [record.ticker for record in records] == ["AAPL", "BRK-A", "CLASSA U.X"]
    assert records[0].exchange == "NASDAQ"
    assert records[0].asset_type == "Stock"
    assert records[0].price_currency == "USD"
    assert records[0].start_date == "1980-12-12"
    assert records[0].end_date == "2024-03-01"
    assert records[1].start_date == ""
    assert records[1].end_date == ""


def test_decode_catalog_uses_first_entry_only() -> None:
    other = "ticker,exchange,assetType,priceCurrency,startDate,endDate\nMSFT,NASDAQ,Stock,USD,1986-03-13,\n"

    records = decode_catalog(_zip(("first.csv", CSV), ("second.csv", other)))

    assert "MSFT" not in [record.ticker for record in records]


def test_decode_catalog_empty_archive() -> None:
    with pytest.raises(CatalogDecodeError):
        decode_catalog(_zip())


def test_decode_catalog_rejects_non_zip_payload() -> None:
    with pytest.raises(CatalogDecodeError):
        decode_catalog(b"definitely not a zip archive")


def test_decode_catalog_csv_missing_columns() -> None:
    with pytest.raises(CatalogDecodeError) as exc:
        decode_catalog_csv(b"ticker,exchange\nAAPL,NASDAQ\n")

    assert exc.value.context["missing"] == ["assetType", "priceCurrency", "startDate", "endDate"]


def test_decode_catalog_csv_ignores_extra_columns() -> None:
    payload = (
        "ticker,exchange,assetType,priceCurrency,startDate,endDate,notes\n"
        "AAPL,NASDAQ,Stock,USD,1980-12-12,,listed\n"
    ).encode()

    records = decode_catalog_csv(payload)

    assert len(records) == 1
    assert records[0].ticker == "AAPL"


@pytest.mark.asyncio
async def test_fetch_downloads_and_decodes() -> None:
    payload = _zip(("supported_tickers.csv", CSV))
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, content=payload)

    records = await _fetcher(handler).fetch()

    assert seen == [CATALOG_URL]
    assert len(records) == 3


@pytest.mark.asyncio
async def test_fetch_rejected_status_is_fatal() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="not found")

    with pytest.raises(CatalogDownloadError) as exc:
        await _fetcher(handler).fetch()

    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_fetch_transport_failure_is_fatal() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProviderTransportError):
        await _fetcher(handler).fetch()
