"""Structlog setup for ingestion runs.

Every record passes through ``redact_event`` so API keys and tokens never
reach the console or the JSON-lines file, whether they arrive as event
fields or inside request URLs.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any, cast

import structlog
from rich.logging import RichHandler
from structlog.stdlib import BoundLogger

from data.security import redact_sensitive, redact_url

LOG_FILE_NAME = "tiingo_ingest.jsonl"
URL_KEYS = frozenset({"url", "request_url"})
NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite")

_RUN_ID = "unknown"


def redact_event(_logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Structlog processor masking secret fields and URL query tokens."""

    redacted = cast(dict[str, Any], redact_sensitive(dict(event_dict)))
    for key in URL_KEYS & redacted.keys():
        if isinstance(redacted[key], str):
            redacted[key] = redact_url(redacted[key])
    return redacted


def configure_logging(
    *,
    run_id: str,
    environment: str,
    log_level: str,
    log_dir: Path = Path("logs"),
) -> None:
    """Route structlog and stdlib records to rich (development) or ``log_dir/LOG_FILE_NAME``."""

    global _RUN_ID
    _RUN_ID = run_id

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        redact_event,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    handler = _build_handler(environment, log_dir)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_renderer(environment),
            foreign_pre_chain=cast(Any, pre_chain),
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # httpx logs full request URLs, token included, at INFO
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=cast(Any, [*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter]),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(run_id=run_id)


def _build_handler(environment: str, log_dir: Path) -> logging.Handler:
    if environment == "development":
        return RichHandler(rich_tracebacks=True, show_path=False)
    log_dir.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8")


def _renderer(environment: str) -> Any:
    if environment == "development":
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def get_logger(module_name: str, *, subscription_id: str | None = None) -> BoundLogger:
    """Logger bound with module and run id, plus the subscription when given."""

    context: dict[str, Any] = {"module": module_name, "run_id": _RUN_ID}
    if subscription_id is not None:
        context["subscription_id"] = subscription_id
    return cast(BoundLogger, structlog.get_logger(module_name).bind(**context))
