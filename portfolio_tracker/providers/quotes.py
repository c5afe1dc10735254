"""HTTP clients for the quote and fund price services."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
import pandas as pd

from portfolio_tracker.config import AppSettings, get_settings
from portfolio_tracker.core.errors import ProviderError
from portfolio_tracker.models.asset import AssetType
from portfolio_tracker.providers.base import Quote, RoutingQuoteSource

logger = logging.getLogger(__name__)


def parse_localized_number(value: Any) -> Decimal:
    """Parse numbers such as ``1.234,56``, ``1,234.56`` or ``%2,15`` as well as plain floats."""

    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    text = str(value or "").strip().replace("%", "").replace("TL", "").replace(" ", "")
    if not text:
        raise ValueError("Empty numeric value")
    # The separator that comes last is the decimal point; the other groups thousands.
    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        text = text.replace(",", ".")
    try:
        return Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"Not a number: {value!r}") from exc


def _first_present(payload: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


class _JsonServiceClient:
    """Shared request handling for the JSON quote services."""

    service_label = "Quote service"

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._base_url = (base_url or "").rstrip("/")
        headers = {"Authorization": f"Bearer {token}"} if token else None
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds, headers=headers)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        if not self._base_url:
            raise ProviderError(f"{self.service_label} URL is not configured")
        url = f"{self._base_url}{path}"
        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise ProviderError(f"Failed to reach {self.service_label.lower()}: {exc}") from exc

        if response.status_code >= 400:
            detail: Any
            try:
                payload = response.json()
                detail = payload.get("detail", payload) if isinstance(payload, dict) else payload
            except ValueError:
                detail = response.text
            raise ProviderError(f"{self.service_label} error {response.status_code}: {detail}")

        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(f"{self.service_label} returned invalid JSON payload") from exc

    def _build_quote(
        self,
        symbol: str,
        payload: Any,
        *,
        price_keys: tuple[str, ...],
        change_keys: tuple[str, ...],
        name_keys: tuple[str, ...],
    ) -> Quote:
        if not isinstance(payload, dict):
            raise ProviderError(f"{self.service_label} response for {symbol} is not an object")
        raw_price = _first_present(payload, *price_keys)
        if raw_price is None:
            raise ProviderError(f"{self.service_label} response for {symbol} has no price")
        try:
            price = parse_localized_number(raw_price)
            raw_change = _first_present(payload, *change_keys)
            change = parse_localized_number(raw_change) if raw_change is not None else Decimal("0")
        except ValueError as exc:
            raise ProviderError(f"Malformed quote for {symbol}: {exc}") from exc
        if price <= 0:
            raise ProviderError(f"Non-positive price for {symbol}: {price}")
        name = _first_present(payload, *name_keys)
        return Quote(
            symbol=symbol,
            price=price,
            change_pct=change,
            name=str(name).strip() if name else None,
        )


class HttpQuoteSource(_JsonServiceClient):
    """Quotes for equities, crypto, FX, commodities and indices."""

    async def fetch_quote(self, symbol: str, asset_type: AssetType) -> Quote:
        payload = await self._get_json(f"/quote/{symbol}", params={"type": asset_type.value})
        return self._build_quote(
            symbol,
            payload,
            price_keys=("lastPrice", "price", "last"),
            change_keys=("changePercent", "dailyChange", "change_pct"),
            name_keys=("name", "description"),
        )

    async def fetch_history(self, symbol: str, *, start: date | None = None) -> pd.DataFrame:
        """Return daily closes indexed by date, oldest first."""

        params = {"start": start.isoformat()} if start else None
        payload = await self._get_json(f"/history/{symbol}", params=params)
        points = payload.get("points", []) if isinstance(payload, dict) else payload
        if not isinstance(points, list):
            raise ProviderError(f"{self.service_label} history for {symbol} is not a list")
        rows: list[dict[str, Any]] = []
        for point in points:
            if not isinstance(point, dict):
                continue
            raw_date = point.get("date")
            raw_close = point.get("close")
            if raw_date is None or raw_close is None:
                continue
            try:
                day = pd.to_datetime(raw_date)
                close = float(parse_localized_number(raw_close))
            except (ValueError, TypeError):
                continue
            rows.append({"Date": day, "Close": close})
        if not rows:
            return pd.DataFrame()
        df = pd.DataFrame(rows).set_index("Date").sort_index()
        df.index = pd.to_datetime(df.index)
        df = df[~df.index.duplicated(keep="last")]
        if start is not None:
            df = df.loc[pd.Timestamp(start) :]
        return df


class FundQuoteSource(_JsonServiceClient):
    """Daily fund prices; accepts the upstream's Turkish field names as well."""

    service_label = "Fund service"

    async def fetch_quote(self, symbol: str, asset_type: AssetType) -> Quote:
        payload = await self._get_json(f"/funds/{symbol}")
        return self._build_quote(
            symbol,
            payload,
            price_keys=("price", "FIYAT", "SONFIYAT"),
            change_keys=("dailyReturn", "GUNLUKGETIRI"),
            name_keys=("name", "FONUNVAN"),
        )


def build_quote_source(settings: AppSettings | None = None) -> RoutingQuoteSource:
    """Create the default routing source from configuration."""

    settings = settings or get_settings()
    general = HttpQuoteSource(
        settings.quote_service_url,
        token=settings.quote_service_token,
        timeout_seconds=settings.quote_timeout_seconds,
    )
    fund = FundQuoteSource(
        settings.fund_service_url,
        token=settings.quote_service_token,
        timeout_seconds=settings.quote_timeout_seconds,
    )
    logger.debug(
        "Quote sources configured: general=%s fund=%s",
        settings.quote_service_url,
        settings.fund_service_url,
    )
    return RoutingQuoteSource(general=general, fund=fund)


__all__ = [
    "FundQuoteSource",
    "HttpQuoteSource",
    "build_quote_source",
    "parse_localized_number",
]
