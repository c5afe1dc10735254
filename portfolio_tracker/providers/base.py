"""Price source contract and in-process implementations."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Mapping, Protocol, runtime_checkable

from portfolio_tracker.core.errors import ProviderError
from portfolio_tracker.db.base import utcnow
from portfolio_tracker.models.asset import AssetType


@dataclass(frozen=True)
class Quote:
    """Uniform quote returned by every price source."""

    symbol: str
    price: Decimal
    change_pct: Decimal = Decimal("0")
    name: str | None = None
    as_of: datetime = field(default_factory=utcnow)


@runtime_checkable
class PriceSource(Protocol):
    async def fetch_quote(self, symbol: str, asset_type: AssetType) -> Quote:
        """Return the latest quote or raise ``ProviderError``."""


class InMemoryQuoteSource:
    """Serve quotes from a dict; values may be exceptions to raise instead.

    Used by tests and for offline runs. ``calls`` records every symbol asked
    for, in order.
    """

    def __init__(
        self,
        quotes: Mapping[str, Quote | Exception] | None = None,
        *,
        delay_seconds: float = 0.0,
    ):
        self._quotes: dict[str, Quote | Exception] = dict(quotes or {})
        self._delay = delay_seconds
        self.calls: list[str] = []

    def set_quote(self, symbol: str, quote: Quote | Exception) -> None:
        self._quotes[symbol.upper()] = quote

    async def fetch_quote(self, symbol: str, asset_type: AssetType) -> Quote:
        self.calls.append(symbol)
        if self._delay:
            await asyncio.sleep(self._delay)
        value = self._quotes.get(symbol.upper())
        if value is None:
            raise ProviderError(f"No quote available for {symbol}")
        if isinstance(value, Exception):
            raise value
        return value


class RoutingQuoteSource:
    """Send fund symbols to the fund provider and everything else to ``general``."""

    def __init__(self, general: PriceSource, fund: PriceSource):
        self.general = general
        self.fund = fund

    async def fetch_quote(self, symbol: str, asset_type: AssetType) -> Quote:
        source = self.fund if asset_type is AssetType.FUND else self.general
        return await source.fetch_quote(symbol, asset_type)

    async def aclose(self) -> None:
        for source in {id(self.general): self.general, id(self.fund): self.fund}.values():
            closer = getattr(source, "aclose", None)
            if closer is not None:
                await closer()


__all__ = ["InMemoryQuoteSource", "PriceSource", "Quote", "RoutingQuoteSource"]
