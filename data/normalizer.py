"""Provider payload normalization to internal data models."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta

from structlog.stdlib import BoundLogger

from core.config_models import TiingoRules
from core.logger import get_logger
from data.asset_types import AssetType
from data.models import Asset, EodQuote, RawCatalogRecord, RawEodBar
from data.symbols import SymbolClassifier, SymbolTranslator
from data.timezone_manager import TimezoneManager


class DropReason:
    """Reasons a catalog record does not become an active candidate."""

    EXCHANGE = "unsupported_exchange"
    NO_LIFECYCLE = "no_lifecycle_dates"
    IGNORED_SYMBOL = "ignored_symbol"
    BAD_DELISTING_DATE = "bad_delisting_date"
    DELISTED = "delisted"


@dataclass(slots=True)
class NormalizationResult:
    """Active candidates from one catalog pass plus drop counts per reason."""

    assets: list[Asset] = field(default_factory=list)
    dropped: Counter[str] = field(default_factory=Counter)

    @property
    def total_dropped(self) -> int:
        return sum(self.dropped.values())


class CatalogNormalizer:
    """Map raw catalog rows to internal assets and pick out active candidates."""

    def __init__(
        self,
        rules: TiingoRules,
        tz: TimezoneManager,
        translator: SymbolTranslator | None = None,
        classifier: SymbolClassifier | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        self._rules = rules
        self._tz = tz
        self._translator = translator or SymbolTranslator(
            provider_separator=rules.provider_separator,
            internal_separator=rules.internal_separator,
            provider_aliases=rules.provider_separator_aliases,
        )
        self._classifier = classifier or SymbolClassifier(
            ignore_prefixes=rules.ignore_prefixes,
            ignore_patterns=rules.ignore_patterns,
        )
        self._grace = timedelta(days=rules.delisting_grace_days)
        self.log = logger or get_logger("data.normalizer")

    def normalize_all(self, records: Iterable[RawCatalogRecord], now: datetime | None = None) -> NormalizationResult:
        """Normalize a catalog and keep only instruments that are still listed."""

        now = now or self._tz.now()
        result = NormalizationResult()
        for record in records:
            asset, reason = self._evaluate(record, now)
            if asset is not None and asset.active:
                result.assets.append(asset)
                continue
            result.dropped[reason or DropReason.DELISTED] += 1

        self.log.debug(
            "catalog_normalized",
            retained=len(result.assets),
            dropped=dict(result.dropped),
        )
        return result

    def normalize_record(self, record: RawCatalogRecord, now: datetime | None = None) -> Asset | None:
        """Normalize one row; None when a filter drops it.

        Rows past the delisting grace period come back inactive with their
        delisting timestamp set; ``normalize_all`` leaves those out.
        """

        asset, _reason = self._evaluate(record, now or self._tz.now())
        return asset

    def _evaluate(self, record: RawCatalogRecord, now: datetime) -> tuple[Asset | None, str | None]:
        exchange = self._rules.exchanges.get(record.exchange)
        if exchange is None:
            return None, DropReason.EXCHANGE

        if record.start_date == "" and record.end_date == "":
            return None, DropReason.NO_LIFECYCLE

        if self._classifier.should_ignore(record.ticker):
            return None, DropReason.IGNORED_SYMBOL

        asset_type = self._rules.asset_types.get(record.asset_type)
        if asset_type is None:
            self.log.debug("unmapped_asset_type", ticker=record.ticker, asset_type=record.asset_type)
            asset_type = AssetType.UNKNOWN

        delisting_date = ""
        if record.end_date != "":
            try:
                delisting_date = self._delisting_date(record.end_date, now)
            except ValueError as exc:
                self.log.warning("bad_delisting_date", ticker=record.ticker, end_date=record.end_date, error=str(exc))
                return None, DropReason.BAD_DELISTING_DATE

        asset = Asset(
            ticker=self._translator.to_internal(record.ticker),
            primary_exchange=exchange,
            asset_type=asset_type,
            price_currency=record.price_currency,
            listing_date=record.start_date,
            delisting_date=delisting_date,
            active=delisting_date == "",
            last_updated=now,
        )
        return asset, None if asset.active else DropReason.DELISTED

    def _delisting_date(self, raw: str, now: datetime) -> str:
        """Empty while inside the grace period, otherwise an RFC 3339 timestamp."""

        delisted_at = self._tz.local_midnight(date.fromisoformat(raw.strip()))
        age = self._tz.to_local(now).astimezone(UTC) - delisted_at.astimezone(UTC)
        if age < self._grace:
            return ""
        return delisted_at.isoformat()


def normalize_eod_bar(bar: RawEodBar, asset: Asset, tz: TimezoneManager) -> EodQuote:
    """Stamp a provider bar at market close on its calendar date.

    Raises ValueError when the bar date cannot be parsed.
    """

    bar_date = datetime.fromisoformat(bar.date.strip())
    return EodQuote(
        date=tz.market_close(bar_date.date()),
        ticker=asset.ticker,
        composite_figi=asset.composite_figi,
        open=bar.open,
        high=bar.high,
        low=bar.low,
        close=bar.close,
        volume=bar.volume,
        dividend=bar.dividend,
        split=bar.split,
    )
