"""Configuration loading and saving utilities."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from core.config_models import RootConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "TGI_"
CONFIG_FILES = ("system.yaml", "subscriptions.yaml", "rules.yaml", "figi.yaml")


def load_config(path: Path) -> RootConfig:
    """Load and validate YAML configuration from a file or config directory."""

    raw_data = _load_raw_data(path)
    _apply_env_overrides(raw_data)
    try:
        return RootConfig.model_validate(raw_data)
    except ValidationError as exc:
        for error in exc.errors():
            location = ".".join(str(value) for value in error.get("loc", ()))
            message = error.get("msg", "validation error")
            logger.error("Config validation error", extra={"field": location, "error": message})
        raise


def save_config(config: RootConfig, path: Path) -> None:
    """Save a validated config object to YAML file(s)."""

    payload = config.model_dump(mode="json")
    if path.is_dir() or path.suffix == "":
        path.mkdir(parents=True, exist_ok=True)
        _write_yaml(path / "system.yaml", {"system": payload["system"]})
        _write_yaml(path / "subscriptions.yaml", {"subscriptions": payload["subscriptions"]})
        _write_yaml(path / "rules.yaml", {"rules": payload["rules"]})
        _write_yaml(path / "figi.yaml", {"figi": payload["figi"]})
        return

    _write_yaml(path, payload)


def _load_raw_data(path: Path) -> dict[str, Any]:
    if path.is_dir() or path.suffix == "":
        return _load_from_directory(path)

    return _read_yaml(path)


def _load_from_directory(config_dir: Path) -> dict[str, Any]:
    merged: dict[str, Any] = {}

    for file_name in CONFIG_FILES:
        file_path = config_dir / file_name
        if not file_path.exists():
            continue
        _deep_merge(merged, _read_yaml(file_path))

    return merged


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    return loaded if isinstance(loaded, dict) else {}


def _write_yaml(path: Path, payload: dict[str, Any]) -> None:
    path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> None:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def _apply_env_overrides(data: dict[str, Any]) -> None:
    """Apply TGI_SECTION__KEY=value overrides; subscriptions are addressed by list index."""

    for env_key, raw_value in os.environ.items():
        if not env_key.startswith(ENV_PREFIX):
            continue

        path_parts = env_key[len(ENV_PREFIX) :].lower().split("__")
        parsed_value = yaml.safe_load(raw_value) if raw_value else raw_value

        cursor: Any = data
        for part in path_parts[:-1]:
            if isinstance(cursor, list):
                if not part.isdigit() or int(part) >= len(cursor):
                    cursor = None
                    break
                cursor = cursor[int(part)]
                continue
            next_cursor = cursor.get(part)
            if not isinstance(next_cursor, (dict, list)):
                next_cursor = {}
                cursor[part] = next_cursor
            cursor = next_cursor

        if isinstance(cursor, dict):
            cursor[path_parts[-1]] = parsed_value
        else:
            logger.warning("Ignoring environment override", extra={"variable": env_key})
