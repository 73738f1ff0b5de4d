"""Download and decode the provider's supported-tickers archive."""

from __future__ import annotations

import io
import zipfile

import httpx
import polars as pl
from pydantic import ValidationError
from structlog.stdlib import BoundLogger

from core.logger import get_logger
from data.exceptions import CatalogDecodeError, CatalogDownloadError, ProviderTransportError
from data.models import RawCatalogRecord

REQUIRED_COLUMNS = ("ticker", "exchange", "assetType", "priceCurrency", "startDate", "endDate")


def decode_catalog(payload: bytes) -> list[RawCatalogRecord]:
    """Decode a zip archive whose first entry is the catalog CSV.

    Only slot 0 of the archive is read; later entries are ignored.
    """

    try:
        with zipfile.ZipFile(io.BytesIO(payload)) as archive:
            entries = archive.infolist()
            if not entries:
                raise CatalogDecodeError("no files contained in supported tickers zip file")
            csv_bytes = archive.read(entries[0])
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as exc:
        raise CatalogDecodeError(f"failed to read supported tickers zip file: {exc}") from exc

    return decode_catalog_csv(csv_bytes)


def decode_catalog_csv(csv_bytes: bytes) -> list[RawCatalogRecord]:
    """Decode the catalog CSV with every column read as text."""

    try:
        frame = pl.read_csv(io.BytesIO(csv_bytes), infer_schema_length=0)
    except pl.exceptions.PolarsError as exc:
        raise CatalogDecodeError(f"failed to parse supported tickers csv: {exc}") from exc

    missing = [column for column in REQUIRED_COLUMNS if column not in frame.columns]
    if missing:
        raise CatalogDecodeError("supported tickers csv is missing columns", context={"missing": missing})

    frame = frame.select(list(REQUIRED_COLUMNS)).fill_null("")
    records: list[RawCatalogRecord] = []
    try:
        for row in frame.iter_rows(named=True):
            records.append(RawCatalogRecord.model_validate(row))
    except ValidationError as exc:
        raise CatalogDecodeError(f"failed to unmarshal supported tickers csv: {exc}") from exc
    return records


class CatalogFetcher:
    """Fetch the full instrument catalog in one request."""

    def __init__(self, client: httpx.AsyncClient, url: str, logger: BoundLogger | None = None) -> None:
        self._client = client
        self._url = url
        self.log = logger or get_logger("data.catalog_fetcher")

    async def fetch(self) -> list[RawCatalogRecord]:
        """Download and decode the catalog; every failure here is fatal to the run."""

        try:
            response = await self._client.get(self._url)
        except httpx.TransportError as exc:
            raise ProviderTransportError(f"failed to download tickers: {exc}", context={"url": self._url}) from exc

        if response.status_code >= 400:
            self.log.error(
                "catalog_download_rejected",
                status_code=response.status_code,
                url=self._url,
                body=response.text[:500],
            )
            raise CatalogDownloadError(
                "error when requesting supported_tickers.zip",
                status_code=response.status_code,
                context={"url": self._url},
            )

        records = decode_catalog(response.content)
        self.log.info("catalog_downloaded", records=len(records), size_bytes=len(response.content))
        return records
