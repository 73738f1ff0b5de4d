"""Entry point: run one dataset for one configured subscription."""

from __future__ import annotations

import argparse
import asyncio
import signal
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol, cast

from structlog.stdlib import BoundLogger

from core.config_loader import load_config
from core.config_models import RootConfig, SubscriptionConfig
from core.logger import configure_logging, get_logger
from data.asset_types import DataTypeKey, RunStatus
from data.base_connector import DatasetProvider, FetchFn, Subscription
from data.connectors import PROVIDERS
from data.models import Observation, RunSummary
from data.run_reporter import RunReporter
from storage.observation_sink import JSONLObservationSink
from storage.sqlite_store import SQLiteAssetStore

DATASET_ALIASES = {
    "eod": "EOD",
    "tickers": "Stock Tickers",
}


class ObservationConsumer(Protocol):
    async def consume(self, queue: asyncio.Queue[Observation | None]) -> int:
        ...


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""

    parser = argparse.ArgumentParser(description="Tiingo security master and EOD ingestion")
    parser.add_argument("--config", default="config", help="Config file or directory.")
    parser.add_argument(
        "--subscription",
        default=None,
        help="Subscription id or name; defaults to the first enabled subscription.",
    )
    parser.add_argument(
        "--dataset",
        default=None,
        choices=sorted(DATASET_ALIASES),
        help="Dataset to run; defaults to the subscription's dataset.",
    )
    parser.add_argument("--output", default=None, help="JSONL file receiving observations.")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    """Run the selected dataset to completion and report its summary."""

    config = load_config(Path(args.config))
    run_id = config.system.run_id or "unknown"
    configure_logging(
        run_id=run_id,
        environment=config.system.environment.value,
        log_level=config.system.log_level.value,
    )
    log = get_logger("main")

    subscription_config = _select_subscription(config, args.subscription)
    if subscription_config is None:
        log.error("subscription_not_found", requested=args.subscription)
        return 2

    provider = _build_provider(subscription_config.provider, config)
    if provider is None:
        log.error("unsupported_provider", provider=subscription_config.provider, known=sorted(PROVIDERS))
        return 2

    dataset_name = DATASET_ALIASES[args.dataset] if args.dataset else subscription_config.dataset
    try:
        dataset = provider.get_dataset(DATASET_ALIASES.get(dataset_name.lower(), dataset_name))
    except KeyError as exc:
        log.error("dataset_not_found", dataset=dataset_name, error=str(exc))
        return 2

    data_store = Path(config.system.data_store_path)
    asset_table = subscription_config.data_tables.get(DataTypeKey.ASSET.value)
    store = SQLiteAssetStore(data_store / "assets.sqlite", default_table=asset_table or "assets")
    await store.initialize()

    subscription = Subscription(
        subscription_id=subscription_config.subscription_id,
        name=subscription_config.name,
        config=subscription_config.config,
        store=store,
        data_tables=subscription_config.data_tables,
    )

    output_path = Path(args.output) if args.output else data_store / "observations.jsonl"
    sink = JSONLObservationSink(output_path, store=store, asset_table=asset_table)

    log.info("run_started", subscription=subscription.name, dataset=dataset.name)
    summary, sink_ok = await supervise_run(
        dataset.fetch,
        subscription,
        sink,
        queue_size=config.system.output_queue_size,
        log=log,
        on_start=lambda task: _install_signal_handlers(task.cancel),
    )

    log.info("run_summary", **summary.model_dump(mode="json"))
    return 0 if summary.status == RunStatus.COMPLETED and sink_ok else 1


async def supervise_run(
    fetch: FetchFn,
    subscription: Subscription,
    sink: ObservationConsumer,
    *,
    queue_size: int,
    log: BoundLogger,
    on_start: Callable[[asyncio.Task[None]], Any] | None = None,
) -> tuple[RunSummary, bool]:
    """Run ``fetch`` against ``sink`` until both finish.

    Returns the run summary and whether the sink drained cleanly. A sink that
    dies mid-run cancels the run so it never blocks on a full queue.
    """

    out: asyncio.Queue[Observation | None] = asyncio.Queue(maxsize=queue_size)
    exit_notification: asyncio.Queue[RunSummary] = asyncio.Queue()

    consumer = asyncio.create_task(sink.consume(out), name="observation-sink")
    run_task = asyncio.create_task(
        fetch(subscription, cast(Any, out), exit_notification),
        name=f"dataset-{subscription.name}",
    )
    if on_start is not None:
        on_start(run_task)

    await asyncio.wait({run_task, consumer}, return_when=asyncio.FIRST_COMPLETED)
    if consumer.done() and not run_task.done():
        log.error("observation_sink_stopped", subscription=subscription.name)
        run_task.cancel()

    (outcome,) = await asyncio.gather(run_task, return_exceptions=True)
    if isinstance(outcome, asyncio.CancelledError):
        log.warning("run_interrupted", subscription=subscription.name)
    elif isinstance(outcome, BaseException):
        log.error("run_task_crashed", subscription=subscription.name, exc_info=outcome)

    summary = _take_summary(exit_notification, subscription)
    sink_ok = await _stop_sink(consumer, out, log)
    return summary, sink_ok


def _take_summary(exit_notification: asyncio.Queue[RunSummary], subscription: Subscription) -> RunSummary:
    try:
        return exit_notification.get_nowait()
    except asyncio.QueueEmpty:
        # cancelled before the run body started
        reporter = RunReporter(subscription.subscription_id, subscription.name)
        reporter.cancel()
        return reporter.finish()


async def _stop_sink(
    consumer: asyncio.Task[int],
    out: asyncio.Queue[Observation | None],
    log: BoundLogger,
) -> bool:
    if not consumer.done():
        await out.put(None)
    (outcome,) = await asyncio.gather(consumer, return_exceptions=True)
    if isinstance(outcome, BaseException):
        log.error("observation_sink_failed", error=str(outcome), exc_info=outcome)
        return False
    return True


def _select_subscription(config: RootConfig, key: str | None) -> SubscriptionConfig | None:
    if key is not None:
        return config.get_subscription(key)
    for item in config.subscriptions:
        if item.enabled:
            return item
    return None


def _build_provider(name: str, config: RootConfig) -> DatasetProvider | None:
    factory = PROVIDERS.get(name.lower())
    if factory is None:
        return None
    return factory(config.rules, config.figi)


def _install_signal_handlers(handler: Callable[[], Any]) -> None:
    """Install SIGINT/SIGTERM handlers for cross-platform graceful shutdown."""

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handler)
        except NotImplementedError:
            signal.signal(sig, lambda *_args: handler())


def cli() -> None:
    raise SystemExit(asyncio.run(run(parse_args())))


if __name__ == "__main__":
    cli()
