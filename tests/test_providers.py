from __future__ import annotations

from datetime import date
from decimal import Decimal

import httpx
import pytest

from portfolio_tracker.core.errors import ProviderError
from portfolio_tracker.models import AssetType
from portfolio_tracker.providers import (
    FundQuoteSource,
    HttpQuoteSource,
    InMemoryQuoteSource,
    Quote,
    RoutingQuoteSource,
    parse_localized_number,
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1.234,56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("1.234.567,8", Decimal("1234567.8")),
        ("2,5", Decimal("2.5")),
        ("1.234", Decimal("1.234")),
        ("%2,15", Decimal("2.15")),
        ("12.5", Decimal("12.5")),
        (3, Decimal("3")),
        (0.25, Decimal("0.25")),
    ],
)
def test_parse_localized_number(raw, expected):
    assert parse_localized_number(raw) == expected


def test_parse_localized_number_rejects_text():
    with pytest.raises(ValueError):
        parse_localized_number("n/a")


@pytest.mark.asyncio
async def test_http_quote_source_maps_payload():
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"lastPrice": 101.5, "changePercent": -0.75, "name": "Example Equity"})

    client = _client(handler)
    source = HttpQuoteSource("http://quotes.test/", client=client)
    try:
        quote = await source.fetch_quote("THYAO", AssetType.EQUITY)
    finally:
        await client.aclose()

    assert quote.symbol == "THYAO"
    assert quote.price == Decimal("101.5")
    assert quote.change_pct == Decimal("-0.75")
    assert quote.name == "Example Equity"
    assert seen == ["http://quotes.test/quote/THYAO?type=equity"]


@pytest.mark.asyncio
async def test_fund_source_accepts_upstream_field_names():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/funds/TTE"
        return httpx.Response(200, json={"FIYAT": "1,234567", "GUNLUKGETIRI": "%0,42", "FONUNVAN": "Example Fund"})

    client = _client(handler)
    source = FundQuoteSource("http://funds.test", client=client)
    try:
        quote = await source.fetch_quote("TTE", AssetType.FUND)
    finally:
        await client.aclose()

    assert quote.price == Decimal("1.234567")
    assert quote.change_pct == Decimal("0.42")
    assert quote.name == "Example Fund"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, json={"detail": "maintenance"}),
        httpx.Response(200, content=b"<html>"),
        httpx.Response(200, json={"name": "no price"}),
        httpx.Response(200, json={"lastPrice": 0}),
        httpx.Response(200, json=["not", "an", "object"]),
    ],
)
async def test_http_quote_source_errors_become_provider_errors(response: httpx.Response):
    client = _client(lambda request: response)
    source = HttpQuoteSource("http://quotes.test", client=client)
    try:
        with pytest.raises(ProviderError):
            await source.fetch_quote("THYAO", AssetType.EQUITY)
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_transport_failure_becomes_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    source = HttpQuoteSource("http://quotes.test", client=client)
    try:
        with pytest.raises(ProviderError):
            await source.fetch_quote("THYAO", AssetType.EQUITY)
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_fetch_history_builds_sorted_frame():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/history/THYAO"
        return httpx.Response(
            200,
            json={
                "points": [
                    {"date": "2024-01-03", "close": 12.0},
                    {"date": "2024-01-01", "close": 10.0},
                    {"date": "2024-01-02", "close": "11,5"},
                    {"date": None, "close": 1.0},
                ]
            },
        )

    client = _client(handler)
    source = HttpQuoteSource("http://quotes.test", client=client)
    try:
        frame = await source.fetch_history("THYAO", start=date(2024, 1, 2))
    finally:
        await client.aclose()

    assert list(frame.index.date) == [date(2024, 1, 2), date(2024, 1, 3)]
    assert list(frame["Close"]) == [11.5, 12.0]


@pytest.mark.asyncio
async def test_routing_source_dispatches_by_asset_type():
    general = InMemoryQuoteSource({"THYAO": Quote("THYAO", Decimal("1"))})
    fund = InMemoryQuoteSource({"TTE": Quote("TTE", Decimal("2"))})
    router = RoutingQuoteSource(general=general, fund=fund)

    assert (await router.fetch_quote("TTE", AssetType.FUND)).price == Decimal("2")
    assert (await router.fetch_quote("THYAO", AssetType.EQUITY)).price == Decimal("1")
    assert general.calls == ["THYAO"]
    assert fund.calls == ["TTE"]
