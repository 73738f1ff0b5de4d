"""Run-scoped accounting and one-shot summary delivery."""

from __future__ import annotations

import asyncio

from data.asset_types import RunStatus
from data.models import RunSummary, utc_now


class RunReporter:
    """Track one dataset run and deliver its summary exactly once."""

    def __init__(self, subscription_id: str, subscription_name: str) -> None:
        self._summary = RunSummary(subscription_id=subscription_id, subscription_name=subscription_name)
        self._emitted = False

    @property
    def summary(self) -> RunSummary:
        return self._summary

    @property
    def num_observations(self) -> int:
        return self._summary.num_observations

    def record(self, count: int = 1) -> None:
        self._summary.num_observations += count

    def record_unresolved(self, count: int) -> None:
        self._summary.num_unresolved += count

    def fail(self, error: BaseException | str) -> None:
        self._summary.status = RunStatus.FAILED
        self._summary.error = str(error)

    def cancel(self) -> None:
        self._summary.status = RunStatus.CANCELLED
        self._summary.error = "run cancelled"

    def finish(self) -> RunSummary:
        """Stamp the end time and return a snapshot of the summary."""

        if self._summary.end_time is None:
            self._summary.end_time = utc_now()
        return self._summary.model_copy()

    def emit(self, exit_notification: asyncio.Queue[RunSummary]) -> bool:
        """Deliver the summary; later calls are no-ops and return False.

        The completion queue must be unbounded so delivery never suspends,
        including while the run is being cancelled.
        """

        if self._emitted:
            return False
        self._emitted = True
        exit_notification.put_nowait(self.finish())
        return True
