from __future__ import annotations

import json
from datetime import date
from decimal import Decimal

import pytest

from portfolio_tracker.core.errors import ValidationError
from portfolio_tracker.providers import InMemoryQuoteSource, Quote
from portfolio_tracker.schemas import TransactionCreateRequest
from portfolio_tracker.services.backup import TABLES, parse_backup
from portfolio_tracker.services.portfolio import PortfolioService


def _service(database, settings, clock, quotes=None) -> PortfolioService:
    return PortfolioService(database, InMemoryQuoteSource(quotes or {}), settings, clock=clock)


async def _populate(service: PortfolioService) -> None:
    await service.add_transaction(
        TransactionCreateRequest(
            trade_date="2024-01-02", asset_type="fund", symbol="TTE", kind="BUY", quantity=10, price=5
        )
    )
    await service.add_transaction(
        TransactionCreateRequest(
            trade_date="2024-01-03", asset_type="equity", symbol="THYAO", kind="BUY", quantity=2, price=100
        )
    )
    await service.refresh_market_data("all", False)


def test_bare_list_is_read_as_transactions():
    payload = parse_backup(
        json.dumps(
            [
                {"date": "-", "type": "Alış", "symbol": "ttE", "quantity": 1, "price": 2},
                {"date": "01.02.2024", "type": "S", "symbol": "BTC-C", "quantity": "0.5", "price": "3", "fee": 1},
            ]
        )
    )

    first, second = payload.transactions
    assert first.kind == "BUY"
    assert first.symbol == "TTE"
    assert first.asset_type == "fund"
    assert first.trade_date == date.today().isoformat()
    assert second.kind == "SELL"
    assert second.asset_type == "crypto"
    assert second.trade_date == "2024-02-01"
    assert second.fees == Decimal("1")
    assert payload.assets == []


@pytest.mark.parametrize(
    "blob",
    [
        "{not json",
        "42",
        json.dumps({"transactions": [{"date": "2024-01-01", "type": "BUY", "symbol": "TTE", "quantity": 0, "price": 1}]}),
        json.dumps({"transactions": [{"date": "2024-01-01", "type": "GIFT", "symbol": "TTE", "quantity": 1, "price": 1}]}),
        json.dumps({"assets": [{"symbol": "TTE", "asset_type": "bond"}]}),
        json.dumps({"portfolio_snapshots": [{"date": "2024-01-01", "total_value": 1}, {"date": "2024-01-01", "total_value": 2}]}),
        json.dumps(
            [
                {"date": "2024-01-01", "type": "BUY", "symbol": "AAA", "quantity": 1, "price": 1},
                {"id": 1, "date": "2024-01-02", "type": "BUY", "symbol": "BBB", "quantity": 1, "price": 1},
            ]
        ),
    ],
)
def test_malformed_payloads_are_rejected(blob: str):
    with pytest.raises(ValidationError):
        parse_backup(blob)


@pytest.mark.asyncio
async def test_export_then_import_restores_every_table(database, settings, clock):
    quotes = {"TTE": Quote("TTE", Decimal("6"), name="Example Fund"), "THYAO": Quote("THYAO", Decimal("110"))}
    service = _service(database, settings, clock, quotes)
    await _populate(service)
    exported = await service.export_snapshot()
    document = json.loads(exported)
    assert set(TABLES) <= set(document)
    assert document["version"] == 1
    before_summary = await service.get_summary()

    await service.clear_database()
    assert await service.get_transactions() == []

    counts = await service.import_snapshot(exported)

    assert counts == {
        "transactions": 2,
        "assets": 2,
        "portfolio_snapshots": 1,
        "asset_price_history": 2,
        "fund_daily_tracking": 1,
    }
    after_summary = await service.get_summary()
    assert after_summary.total_value == before_summary.total_value
    assert after_summary.cost_basis == before_summary.cost_basis
    assert [r.transaction.id for r in await service.get_transactions()] == [2, 1]


@pytest.mark.asyncio
async def test_failed_import_leaves_database_untouched(database, settings, clock):
    service = _service(database, settings, clock, {"TTE": Quote("TTE", Decimal("6"))})
    await _populate(service)
    before = json.loads(await service.export_snapshot())

    broken = {"transactions": [{"date": "2024-01-01", "type": "BUY", "symbol": "", "quantity": 1, "price": 1}]}
    with pytest.raises(ValidationError):
        await service.import_snapshot(json.dumps(broken))

    after = json.loads(await service.export_snapshot())
    for table in TABLES:
        assert after[table] == before[table]


@pytest.mark.asyncio
async def test_legacy_import_replaces_all_tables(database, settings, clock):
    service = _service(database, settings, clock, {"TTE": Quote("TTE", Decimal("6"))})
    await _populate(service)

    counts = await service.import_snapshot(
        json.dumps({"transactions": [{"date": "2024-03-01", "type": "A", "symbol": "GA", "quantity": 3, "price": 2000}]})
    )

    assert counts["transactions"] == 1
    assert counts["assets"] == 1
    records = await service.get_transactions()
    assert [(r.transaction.symbol, r.transaction.asset_type, r.transaction.kind) for r in records] == [
        ("GA", "commodity", "BUY")
    ]
    assets = await service.search_assets("")
    assert [(a.symbol, a.asset_type, a.current_price) for a in assets] == [("GA", "commodity", None)]


@pytest.mark.asyncio
async def test_legacy_import_keeps_transaction_names(database, settings, clock):
    service = _service(database, settings, clock)

    counts = await service.import_snapshot(
        [
            {"date": "2024-01-02", "type": "BUY", "symbol": "TTE", "quantity": 4, "price": 2},
            {"date": "2024-01-03", "type": "BUY", "symbol": "TTE", "name": "Is Portfoy BIST Teknoloji", "quantity": 1, "price": 2},
            {"date": "2024-01-04", "type": "BUY", "symbol": "XAU", "name": "Gram Altın", "quantity": 1, "price": 2500},
        ]
    )

    assert counts["assets"] == 2
    holdings = {holding.symbol: holding for holding in await service.get_holdings()}
    assert holdings["TTE"].name == "Is Portfoy BIST Teknoloji"
    assert holdings["XAU"].asset_type.value == "commodity"
    assert {r.asset_name for r in await service.get_transactions()} == {"Is Portfoy BIST Teknoloji", "Gram Altın"}
    info = await service.get_asset_info("TTE")
    assert info.current_price is None
    assert info.last_updated is None


@pytest.mark.asyncio
async def test_imported_unparsable_date_is_kept_and_skipped(database, settings, clock):
    service = _service(database, settings, clock)

    await service.import_snapshot(
        [
            {"date": "2024-01-01", "type": "BUY", "symbol": "TTE", "quantity": 2, "price": 5},
            {"date": "someday", "type": "BUY", "symbol": "TTE", "quantity": 100, "price": 5},
        ]
    )

    valuation = await service.get_valuation()
    assert valuation.skipped_transaction_ids == [2]
    assert valuation.holdings[0].quantity == Decimal("2")
