"""Ticker notation translation and exclusion rules."""

from __future__ import annotations

import re
from collections.abc import Iterable


class SymbolTranslator:
    """Translate class-share separators between provider and internal notation.

    Provider tickers write share classes as ``BRK-A``; internally the same
    instrument is ``BRK/A``. The substitution is the only transformation
    applied, so ``to_internal(to_provider(t)) == t`` for every internal
    ticker. Alias separators (``BRK.A``) are accepted on the way in but are
    never produced on the way out.
    """

    def __init__(
        self,
        provider_separator: str = "-",
        internal_separator: str = "/",
        provider_aliases: Iterable[str] = (),
    ) -> None:
        if provider_separator == internal_separator:
            raise ValueError("separators must differ")
        self._provider_separator = provider_separator
        self._internal_separator = internal_separator
        self._aliases = tuple(item for item in provider_aliases if item != internal_separator)

    def to_provider(self, ticker: str) -> str:
        """Return the provider notation of an internal ticker."""

        return ticker.replace(self._internal_separator, self._provider_separator)

    def to_internal(self, provider_ticker: str) -> str:
        """Return the internal notation of a provider ticker."""

        ticker = provider_ticker.replace(self._provider_separator, self._internal_separator)
        for alias in self._aliases:
            ticker = ticker.replace(alias, self._internal_separator)
        return ticker


class SymbolClassifier:
    """Flag provider tickers that are test instruments or non-common share classes."""

    def __init__(self, ignore_prefixes: Iterable[str], ignore_patterns: Iterable[str]) -> None:
        self._prefixes = tuple(ignore_prefixes)
        self._patterns = tuple(re.compile(pattern) for pattern in ignore_patterns)

    def should_ignore(self, provider_ticker: str) -> bool:
        """Return True when the ticker must be excluded from the catalog."""

        if self._prefixes and provider_ticker.startswith(self._prefixes):
            return True
        if " " in provider_ticker:
            return True
        return any(pattern.match(provider_ticker) for pattern in self._patterns)
