"""Sensitive data redaction helpers for logging."""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

REDACTED = "***REDACTED***"

SENSITIVE_KEYS = {
    "apikey",
    "api_key",
    "token",
    "access_token",
    "password",
    "secret",
    "x-openfigi-apikey",
    "authorization",
}


def redact_sensitive(value: Any) -> Any:
    """Recursively redact sensitive values from nested structures."""

    if isinstance(value, dict):
        redacted: dict[str, Any] = {}
        for key, item in value.items():
            if str(key).lower() in SENSITIVE_KEYS:
                redacted[key] = REDACTED
            else:
                redacted[key] = redact_sensitive(item)
        return redacted

    if isinstance(value, list):
        return [redact_sensitive(item) for item in value]

    if isinstance(value, tuple):
        return tuple(redact_sensitive(item) for item in value)

    return value


def redact_url(url: str) -> str:
    """Mask sensitive query parameters such as the API token in a URL."""

    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [
        (key, REDACTED if key.lower() in SENSITIVE_KEYS else item)
        for key, item in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(query, safe="*")))
