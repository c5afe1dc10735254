from __future__ import annotations

import random
from datetime import date
from decimal import Decimal

import pytest

from portfolio_tracker.services.valuation import (
    WARNING_MISSING_PRICE,
    WARNING_UNMATCHED_SELL,
    AssetQuote,
    LedgerEntry,
    compute_valuation,
    parse_trade_date,
    realized_pnl_in_range,
    replay_ledger,
)


def _entry(
    tx_id: int,
    trade_date: str,
    kind: str,
    quantity: str,
    price: str,
    symbol: str = "TTE",
    asset_type: str = "fund",
) -> LedgerEntry:
    return LedgerEntry(
        id=tx_id,
        trade_date=trade_date,
        symbol=symbol,
        kind=kind,
        quantity=Decimal(quantity),
        price=Decimal(price),
        asset_type=asset_type,
    )


def _quote(symbol: str, price: str | None, name: str | None = None) -> AssetQuote:
    return AssetQuote(symbol=symbol, current_price=Decimal(price) if price is not None else None, name=name)


def _basic_ledger() -> list[LedgerEntry]:
    return [
        _entry(1, "2024-01-01", "BUY", "10", "100"),
        _entry(2, "2024-01-05", "BUY", "10", "120"),
        _entry(3, "2024-01-10", "SELL", "15", "150"),
    ]


def test_sell_consumes_oldest_lots_first():
    result = compute_valuation(_basic_ledger(), {"TTE": _quote("TTE", "130", "Example Fund")})

    assert result.realized_pnl == Decimal("650")
    assert len(result.holdings) == 1
    holding = result.holdings[0]
    assert holding.symbol == "TTE"
    assert holding.name == "Example Fund"
    assert holding.quantity == Decimal("5")
    assert holding.avg_cost == Decimal("120")
    assert holding.value == Decimal("650")
    assert holding.unrealized_pnl == Decimal("50")
    assert holding.warnings == []


def test_remaining_lot_is_the_split_second_buy():
    replay = replay_ledger(_basic_ledger())

    lots = list(replay.books["TTE"].lots)
    assert len(lots) == 1
    assert lots[0].origin_transaction_id == 2
    assert lots[0].remaining_quantity == Decimal("5")
    assert lots[0].unit_cost == Decimal("120")


def test_input_order_does_not_change_result():
    entries = _basic_ledger() + [
        _entry(4, "2024-02-01", "BUY", "3", "10", symbol="BTC-C", asset_type="crypto"),
        _entry(5, "2024-02-02", "BUY", "2", "12", symbol="BTC-C", asset_type="crypto"),
        _entry(6, "2024-02-03", "SELL", "5", "20", symbol="BTC-C", asset_type="crypto"),
    ]
    expected = compute_valuation(entries, {})
    shuffled = list(entries)
    random.Random(7).shuffle(shuffled)

    result = compute_valuation(shuffled, {})

    assert result.realized_pnl == expected.realized_pnl
    assert result.realized_pnl == Decimal("650") + Decimal("3") * 10 + Decimal("2") * 8


def test_same_day_rows_are_ordered_by_insertion_id():
    entries = [
        _entry(2, "2024-03-01", "SELL", "5", "150"),
        _entry(1, "2024-03-01", "BUY", "5", "100"),
    ]

    result = compute_valuation(entries, {"TTE": _quote("TTE", "100")})

    assert result.realized_pnl == Decimal("250")
    assert result.unmatched_sells == []


def test_valuation_is_idempotent():
    assets = {"TTE": _quote("TTE", "130")}

    first = compute_valuation(_basic_ledger(), assets)
    second = compute_valuation(_basic_ledger(), assets)

    assert first == second


def test_unparsable_date_is_skipped_and_reported():
    entries = _basic_ledger() + [_entry(4, "not-a-date", "BUY", "1000", "1")]

    result = compute_valuation(entries, {"TTE": _quote("TTE", "130")})

    assert result.skipped_transaction_ids == [4]
    assert result.holdings[0].quantity == Decimal("5")
    assert result.realized_pnl == Decimal("650")


def test_unknown_kind_and_non_positive_quantity_are_skipped():
    entries = _basic_ledger() + [
        _entry(4, "2024-01-02", "DIVIDEND", "1", "1"),
        _entry(5, "2024-01-02", "BUY", "0", "1"),
    ]

    result = compute_valuation(entries, {})

    assert result.skipped_transaction_ids == [4, 5]
    assert result.realized_pnl == Decimal("650")


def test_oversell_is_flagged_with_partial_realized_pnl():
    entries = [
        _entry(1, "2024-01-01", "BUY", "10", "100"),
        _entry(2, "2024-01-10", "SELL", "15", "110"),
    ]

    result = compute_valuation(entries, {"TTE": _quote("TTE", "110")})

    assert result.realized_pnl == Decimal("100")
    assert len(result.unmatched_sells) == 1
    unmatched = result.unmatched_sells[0]
    assert unmatched.transaction_id == 2
    assert unmatched.quantity == Decimal("5")
    holding = result.holdings[0]
    assert holding.quantity == Decimal("0")
    assert holding.has_unmatched_sell
    assert WARNING_UNMATCHED_SELL in holding.warnings
    assert result.open_holdings == []


def test_oversell_does_not_block_other_symbols():
    entries = [
        _entry(1, "2024-01-01", "SELL", "1", "50", symbol="AAA", asset_type="equity"),
        _entry(2, "2024-01-01", "BUY", "2", "10", symbol="BBB", asset_type="equity"),
    ]

    result = compute_valuation(entries, {"BBB": _quote("BBB", "15")})

    by_symbol = {holding.symbol: holding for holding in result.holdings}
    assert by_symbol["AAA"].has_unmatched_sell
    assert by_symbol["BBB"].quantity == Decimal("2")
    assert by_symbol["BBB"].unrealized_pnl == Decimal("10")


def test_zero_cost_basis_gives_zero_percentage():
    entries = [_entry(1, "2024-01-01", "BUY", "4", "0")]

    holding = compute_valuation(entries, {"TTE": _quote("TTE", "5")}).holdings[0]

    assert holding.unrealized_pnl == Decimal("20")
    assert holding.unrealized_pnl_pct == Decimal("0")


def test_missing_price_values_holding_at_zero_with_warning():
    entries = [_entry(1, "2024-01-01", "BUY", "4", "10")]

    holding = compute_valuation(entries, {}).holdings[0]

    assert holding.current_price == Decimal("0")
    assert holding.value == Decimal("0")
    assert holding.unrealized_pnl == Decimal("-40")
    assert WARNING_MISSING_PRICE in holding.warnings
    assert holding.name == "TTE"


def test_holding_quantity_matches_open_lots():
    entries = _basic_ledger() + [
        _entry(4, "2024-01-12", "BUY", "7", "90"),
        _entry(5, "2024-01-15", "SELL", "6", "95"),
    ]

    replay = replay_ledger(entries)
    holding = compute_valuation(entries, {}).holdings[0]

    open_lots = sum(lot.remaining_quantity for lot in replay.books["TTE"].lots)
    assert holding.quantity == open_lots == Decimal("6")
    assert all(lot.remaining_quantity >= 0 for lot in replay.books["TTE"].lots)


def test_weighted_holding_days_of_closed_quantity():
    holding = compute_valuation(_basic_ledger(), {}).holdings[0]

    # 10 units held 9 days, 5 units held 5 days.
    assert holding.avg_holding_days == (Decimal("10") * 9 + Decimal("5") * 5) / Decimal("15")


def test_range_over_full_history_equals_whole_history():
    entries = _basic_ledger() + [
        _entry(4, "2024-03-01", "BUY", "2", "10", symbol="GA", asset_type="commodity"),
        _entry(5, "2024-04-01", "SELL", "1", "14", symbol="GA", asset_type="commodity"),
    ]

    whole = compute_valuation(entries, {}).realized_pnl
    ranged = realized_pnl_in_range(entries, date(2024, 1, 1), date(2024, 4, 1))

    assert ranged == whole == Decimal("654")


def test_range_uses_lots_consumed_before_the_window():
    entries = [
        _entry(1, "2024-01-01", "BUY", "10", "100"),
        _entry(2, "2024-02-01", "BUY", "10", "200"),
        _entry(3, "2024-03-01", "SELL", "10", "250"),
        _entry(4, "2024-04-01", "SELL", "5", "260"),
    ]

    ranged = realized_pnl_in_range(entries, date(2024, 4, 1), None)

    # The April sell matches the second lot because March consumed the first.
    assert ranged == Decimal("5") * (260 - 200)
    assert realized_pnl_in_range(entries, None, date(2024, 3, 31)) == Decimal("1500")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024-03-01", date(2024, 3, 1)),
        ("2024-03-01T10:15:00", date(2024, 3, 1)),
        ("01.03.2024", date(2024, 3, 1)),
        ("20240301", date(2024, 3, 1)),
    ],
)
def test_parse_trade_date_formats(raw: str, expected: date):
    assert parse_trade_date(raw) == expected


def test_parse_trade_date_rejects_garbage():
    with pytest.raises(ValueError):
        parse_trade_date("31/31/2024x")
