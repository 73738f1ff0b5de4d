"""Catalog/active-set reconciliation keyed by composite FIGI."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel, Field, computed_field
from structlog.stdlib import BoundLogger

from core.logger import get_logger
from data.models import Asset


class ReconciliationReport(BaseModel):
    """Outcome of comparing a fresh catalog with the known active set."""

    timestamp: datetime
    candidates: list[Asset] = Field(default_factory=list)
    newly_inactive: list[Asset] = Field(default_factory=list)
    unresolved: list[str] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def assets(self) -> list[Asset]:
        """Every asset to emit: still-listed candidates, then new delistings."""

        return [*self.candidates, *self.newly_inactive]


class ActiveSetReconciler:
    """Detect instruments that disappeared from the provider catalog."""

    def __init__(self, logger: BoundLogger | None = None) -> None:
        self.log = logger or get_logger("data.reconciler")

    def reconcile(
        self,
        candidates: Iterable[Asset],
        previously_active: Iterable[Asset],
        now: datetime,
    ) -> ReconciliationReport:
        """Diff candidates against the stored active set.

        ``now`` must be exchange-local; it becomes the delisting timestamp of
        every asset that vanished from the catalog. Candidates without a
        composite FIGI are never matched or emitted.
        """

        by_figi: dict[str, Asset] = {}
        unresolved: list[str] = []
        for asset in candidates:
            if not asset.composite_figi:
                unresolved.append(asset.ticker)
                continue
            by_figi[asset.composite_figi] = asset

        if unresolved:
            self.log.debug("unresolved_composite_figi", count=len(unresolved), tickers=unresolved[:20])

        delisting_date = now.isoformat()
        newly_inactive: list[Asset] = []
        seen_inactive: set[str] = set()
        for known in previously_active:
            figi = known.composite_figi
            if not figi or figi in by_figi or figi in seen_inactive:
                continue
            seen_inactive.add(figi)
            newly_inactive.append(
                known.model_copy(update={"active": False, "delisting_date": delisting_date, "last_updated": now})
            )

        report = ReconciliationReport(
            timestamp=now,
            candidates=list(by_figi.values()),
            newly_inactive=newly_inactive,
            unresolved=unresolved,
        )
        self.log.info(
            "active_set_reconciled",
            candidates=len(report.candidates),
            newly_inactive=len(report.newly_inactive),
            unresolved=len(report.unresolved),
        )
        return report
