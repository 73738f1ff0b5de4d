"""Exchange time zone loading and market-close helpers."""

from __future__ import annotations

from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from data.exceptions import RunInitializationError


class TimezoneManager:
    """Resolve the exchange zone once and answer local-time questions against it."""

    def __init__(self, zone: ZoneInfo, market_close_hour: int = 16) -> None:
        self.zone = zone
        self.market_close_hour = market_close_hour

    @classmethod
    def load(cls, tz_name: str, market_close_hour: int = 16) -> TimezoneManager:
        """Load a zone by IANA name; missing tz data is a fatal setup error."""

        try:
            zone = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise RunInitializationError(
                f"could not load timezone {tz_name!r}",
                context={"timezone": tz_name},
            ) from exc
        return cls(zone, market_close_hour=market_close_hour)

    def now(self) -> datetime:
        """Current wall-clock time in the exchange zone."""

        return datetime.now(UTC).astimezone(self.zone)

    def local_midnight(self, day: date) -> datetime:
        """Start of a calendar day in the exchange zone."""

        return datetime(day.year, day.month, day.day, tzinfo=self.zone)

    def market_close(self, day: date) -> datetime:
        """Market close wall-clock time on a calendar day in the exchange zone."""

        return datetime(day.year, day.month, day.day, self.market_close_hour, tzinfo=self.zone)

    def to_local(self, dt: datetime) -> datetime:
        """Convert an aware datetime (naive is taken as UTC) to the exchange zone."""

        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=UTC)
        return dt.astimezone(self.zone)
