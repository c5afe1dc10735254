"""FIFO cost-basis and valuation engine.

The engine replays the complete ledger in ``(trade date, insertion id)``
order and keeps one FIFO queue of open lots per symbol. A SELL consumes the
oldest lots first, splitting the front lot when it holds more than needed.
Lots are rebuilt from scratch on every call and never persisted, so the
result can never drift from what the ledger says.

Nothing in this module touches the database. Callers load a consistent view
of the ledger and the asset cache, convert rows to :class:`LedgerEntry` and
:class:`AssetQuote`, and pass them in.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, getcontext
from typing import Deque, Iterable, Mapping

from portfolio_tracker.core.errors import SchemaError
from portfolio_tracker.models.asset import AssetType
from portfolio_tracker.models.transaction import TransactionKind

getcontext().prec = 28

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

WARNING_UNMATCHED_SELL = "unmatched_sell"
WARNING_MISSING_PRICE = "missing_price"

_DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y", "%d/%m/%Y", "%Y%m%d")


def parse_trade_date(raw: str | date | datetime) -> date:
    """Parse a ledger date; raises ``ValueError`` when no known format matches."""

    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    text = str(raw or "").strip()
    if not text:
        raise ValueError("trade date is empty")
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unparsable trade date: {raw!r}")


@dataclass(frozen=True)
class LedgerEntry:
    """One ledger row as loaded from the store."""

    id: int
    trade_date: str | date
    symbol: str
    kind: str
    quantity: Decimal
    price: Decimal
    asset_type: str | None = None
    fees: Decimal = ZERO


@dataclass(frozen=True)
class AssetQuote:
    """Cached market data for one symbol."""

    symbol: str
    current_price: Decimal | None
    name: str | None = None
    asset_type: str | None = None
    day_change_pct: Decimal = ZERO
    last_updated: datetime | None = None


@dataclass
class Lot:
    origin_transaction_id: int
    symbol: str
    open_date: date
    remaining_quantity: Decimal
    unit_cost: Decimal


@dataclass(frozen=True)
class UnmatchedSell:
    """Sell quantity that found no open lot to match against."""

    transaction_id: int
    symbol: str
    trade_date: date
    quantity: Decimal


@dataclass
class SymbolBook:
    """FIFO state of a single symbol after a replay."""

    symbol: str
    asset_type: AssetType | None = None
    lots: Deque[Lot] = field(default_factory=deque)
    realized_pnl: Decimal = ZERO
    closed_quantity: Decimal = ZERO
    holding_days_weighted: Decimal = ZERO
    unmatched_quantity: Decimal = ZERO

    @property
    def open_quantity(self) -> Decimal:
        return sum((lot.remaining_quantity for lot in self.lots), ZERO)

    @property
    def cost_basis(self) -> Decimal:
        return sum((lot.remaining_quantity * lot.unit_cost for lot in self.lots), ZERO)

    @property
    def avg_cost(self) -> Decimal:
        quantity = self.open_quantity
        if quantity == 0:
            return ZERO
        return self.cost_basis / quantity

    @property
    def avg_holding_days(self) -> Decimal:
        if self.closed_quantity == 0:
            return ZERO
        return self.holding_days_weighted / self.closed_quantity


@dataclass
class LedgerReplay:
    books: dict[str, SymbolBook]
    realized_pnl: Decimal
    total_fees: Decimal
    unmatched_sells: list[UnmatchedSell]
    skipped_transaction_ids: list[int]

    def open_symbols(self) -> dict[str, AssetType | None]:
        """Symbols with a positive open quantity and their ledger asset type."""

        return {
            symbol: book.asset_type
            for symbol, book in sorted(self.books.items())
            if book.open_quantity > 0
        }


@dataclass
class Holding:
    symbol: str
    name: str
    asset_type: AssetType | None
    quantity: Decimal
    avg_cost: Decimal
    current_price: Decimal
    value: Decimal
    unrealized_pnl: Decimal
    unrealized_pnl_pct: Decimal
    realized_pnl: Decimal = ZERO
    avg_holding_days: Decimal = ZERO
    unmatched_sell_quantity: Decimal = ZERO
    warnings: list[str] = field(default_factory=list)

    @property
    def cost_basis(self) -> Decimal:
        return self.quantity * self.avg_cost

    @property
    def has_unmatched_sell(self) -> bool:
        return self.unmatched_sell_quantity > 0


@dataclass
class ValuationResult:
    holdings: list[Holding]
    realized_pnl: Decimal
    total_fees: Decimal = ZERO
    unmatched_sells: list[UnmatchedSell] = field(default_factory=list)
    skipped_transaction_ids: list[int] = field(default_factory=list)

    @property
    def open_holdings(self) -> list[Holding]:
        return [holding for holding in self.holdings if holding.quantity > 0]


@dataclass(frozen=True)
class _OrderedEntry:
    trade_date: date
    entry: LedgerEntry
    symbol: str
    kind: TransactionKind
    asset_type: AssetType | None


def _to_decimal(value: object, field_name: str) -> Decimal:
    try:
        return value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise SchemaError(f"{field_name} is not numeric: {value!r}") from exc


def _interpret(entry: LedgerEntry) -> _OrderedEntry:
    try:
        trade_date = parse_trade_date(entry.trade_date)
    except ValueError as exc:
        raise SchemaError(str(exc)) from exc
    try:
        kind = TransactionKind.from_label(entry.kind)
    except ValueError as exc:
        raise SchemaError(str(exc)) from exc
    if _to_decimal(entry.quantity, "quantity") <= 0:
        raise SchemaError(f"quantity must be positive, got {entry.quantity}")
    if _to_decimal(entry.price, "price") < 0:
        raise SchemaError(f"price must not be negative, got {entry.price}")
    try:
        asset_type = AssetType.from_label(entry.asset_type) if entry.asset_type else None
    except ValueError:
        asset_type = None
    return _OrderedEntry(
        trade_date=trade_date,
        entry=entry,
        symbol=entry.symbol.strip().upper(),
        kind=kind,
        asset_type=asset_type,
    )


def order_entries(entries: Iterable[LedgerEntry]) -> tuple[list[_OrderedEntry], list[int]]:
    """Sort entries for FIFO matching and split off rows that cannot take part.

    Ties on the trade date are broken by the insertion id. Rows whose date,
    kind or amounts do not parse are returned separately by id.
    """

    ordered: list[_OrderedEntry] = []
    skipped: list[int] = []
    for entry in entries:
        try:
            ordered.append(_interpret(entry))
        except SchemaError as exc:
            logger.warning("Excluding transaction %s from lot matching: %s", entry.id, exc)
            skipped.append(entry.id)
    ordered.sort(key=lambda item: (item.trade_date, item.entry.id))
    return ordered, sorted(skipped)


def _in_window(day: date, start: date | None, end: date | None) -> bool:
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


def replay_ledger(
    entries: Iterable[LedgerEntry],
    *,
    window_start: date | None = None,
    window_end: date | None = None,
) -> LedgerReplay:
    """Walk the whole ledger through per-symbol FIFO queues.

    The lot state always comes from the complete timeline. ``window_start``
    and ``window_end`` only filter which SELLs contribute realized PnL.
    """

    ordered, skipped = order_entries(entries)
    books: dict[str, SymbolBook] = {}
    unmatched: list[UnmatchedSell] = []
    total_fees = ZERO

    for item in ordered:
        entry = item.entry
        quantity = _to_decimal(entry.quantity, "quantity")
        price = _to_decimal(entry.price, "price")
        total_fees += _to_decimal(entry.fees or ZERO, "fees")
        book = books.get(item.symbol)
        if book is None:
            book = SymbolBook(symbol=item.symbol, asset_type=item.asset_type)
            books[item.symbol] = book
        elif book.asset_type is None:
            book.asset_type = item.asset_type

        if item.kind is TransactionKind.BUY:
            book.lots.append(
                Lot(
                    origin_transaction_id=entry.id,
                    symbol=item.symbol,
                    open_date=item.trade_date,
                    remaining_quantity=quantity,
                    unit_cost=price,
                )
            )
            continue

        in_window = _in_window(item.trade_date, window_start, window_end)
        remaining = quantity
        while remaining > 0 and book.lots:
            lot = book.lots[0]
            take = min(lot.remaining_quantity, remaining)
            if in_window:
                book.realized_pnl += take * (price - lot.unit_cost)
            book.closed_quantity += take
            book.holding_days_weighted += take * Decimal((item.trade_date - lot.open_date).days)
            lot.remaining_quantity -= take
            remaining -= take
            if lot.remaining_quantity == 0:
                book.lots.popleft()
        if remaining > 0:
            book.unmatched_quantity += remaining
            unmatched.append(
                UnmatchedSell(
                    transaction_id=entry.id,
                    symbol=item.symbol,
                    trade_date=item.trade_date,
                    quantity=remaining,
                )
            )
            logger.warning(
                "Sell %s of %s exceeds open lots by %s units",
                entry.id,
                item.symbol,
                remaining,
            )

    realized = sum((books[symbol].realized_pnl for symbol in sorted(books)), ZERO)
    return LedgerReplay(
        books=books,
        realized_pnl=realized,
        total_fees=total_fees,
        unmatched_sells=unmatched,
        skipped_transaction_ids=skipped,
    )


def _resolve_asset_type(book: SymbolBook, asset: AssetQuote | None) -> AssetType | None:
    if book.asset_type is not None:
        return book.asset_type
    if asset is not None and asset.asset_type:
        try:
            return AssetType.from_label(asset.asset_type)
        except ValueError:
            return None
    return None


def _build_holding(book: SymbolBook, asset: AssetQuote | None) -> Holding:
    quantity = book.open_quantity
    cost_basis = book.cost_basis
    warnings: list[str] = []

    price = asset.current_price if asset is not None else None
    if price is None:
        if quantity > 0:
            warnings.append(WARNING_MISSING_PRICE)
        price = ZERO
    if book.unmatched_quantity > 0:
        warnings.append(WARNING_UNMATCHED_SELL)

    value = quantity * price
    unrealized = value - cost_basis
    unrealized_pct = unrealized / cost_basis * HUNDRED if cost_basis != 0 else ZERO
    return Holding(
        symbol=book.symbol,
        name=(asset.name if asset is not None and asset.name else book.symbol),
        asset_type=_resolve_asset_type(book, asset),
        quantity=quantity,
        avg_cost=book.avg_cost,
        current_price=price,
        value=value,
        unrealized_pnl=unrealized,
        unrealized_pnl_pct=unrealized_pct,
        realized_pnl=book.realized_pnl,
        avg_holding_days=book.avg_holding_days,
        unmatched_sell_quantity=book.unmatched_quantity,
        warnings=warnings,
    )


def compute_valuation(
    entries: Iterable[LedgerEntry],
    assets: Mapping[str, AssetQuote],
) -> ValuationResult:
    """Derive holdings and realized PnL from the ledger and the asset cache.

    A Holding is emitted for every symbol that still has open lots, and for
    every symbol whose sells exceeded its lots, so an oversell surfaces as a
    flagged Holding instead of disappearing.
    """

    replay = replay_ledger(entries)
    holdings = [
        _build_holding(book, assets.get(symbol))
        for symbol, book in sorted(replay.books.items())
        if book.open_quantity > 0 or book.unmatched_quantity > 0
    ]
    return ValuationResult(
        holdings=holdings,
        realized_pnl=replay.realized_pnl,
        total_fees=replay.total_fees,
        unmatched_sells=replay.unmatched_sells,
        skipped_transaction_ids=replay.skipped_transaction_ids,
    )


def realized_pnl_in_range(
    entries: Iterable[LedgerEntry],
    start: date | None = None,
    end: date | None = None,
) -> Decimal:
    """Realized PnL of SELLs dated within ``[start, end]``, either bound optional."""

    return replay_ledger(entries, window_start=start, window_end=end).realized_pnl


__all__ = [
    "AssetQuote",
    "Holding",
    "LedgerEntry",
    "LedgerReplay",
    "Lot",
    "SymbolBook",
    "UnmatchedSell",
    "ValuationResult",
    "WARNING_MISSING_PRICE",
    "WARNING_UNMATCHED_SELL",
    "compute_valuation",
    "order_entries",
    "parse_trade_date",
    "realized_pnl_in_range",
    "replay_ledger",
]
