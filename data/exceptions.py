"""Connector exception hierarchy.

Every exception here is fatal to the dataset run that raised it. Per-record
problems are logged and skipped where they occur and never raise.
"""

from __future__ import annotations

from typing import Any


class ConnectorError(Exception):
    """Base exception for fatal connector conditions."""

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for structured logging."""

        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class RunInitializationError(ConnectorError):
    """Run setup failed: time zone, configuration, or storage connection."""


class CatalogDownloadError(ConnectorError):
    """The provider refused the catalog download."""

    def __init__(self, message: str, *, status_code: int, context: dict[str, Any] | None = None) -> None:
        super().__init__(message, context=context)
        self.status_code = status_code


class CatalogDecodeError(ConnectorError):
    """The catalog archive or its tabular payload could not be decoded."""


class ProviderTransportError(ConnectorError):
    """The HTTP request never produced a response."""
