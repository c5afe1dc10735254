"""Ledger operations: validated create, edit, delete and listing of transactions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_tracker.core.errors import NotFoundError, ValidationError
from portfolio_tracker.models import Asset, AssetType, Transaction, TransactionKind
from portfolio_tracker.schemas.transactions import TransactionCreateRequest, TransactionUpdateRequest
from portfolio_tracker.services.valuation import LedgerEntry, parse_trade_date

logger = logging.getLogger(__name__)

FX_CODES = frozenset({"USD", "EUR", "GBP", "CHF"})
GOLD_CODES = frozenset({"GA", "CE", "ATA", "RA5", "22", "YRG"})
GOLD_NAME_MARKERS = ("altın", "altin", "bilezik")
CRYPTO_SUFFIX = "-C"


def infer_asset_type(symbol: str, name: str | None = None) -> AssetType:
    """Guess the asset class of a symbol that arrived without one."""

    code = symbol.strip().upper()
    lowered = (name or "").lower()
    if code in FX_CODES:
        return AssetType.FX
    if code in GOLD_CODES or any(marker in lowered for marker in GOLD_NAME_MARKERS):
        return AssetType.COMMODITY
    if code.endswith(CRYPTO_SUFFIX):
        return AssetType.CRYPTO
    if len(code) == 3 or (len(code) == 4 and any(ch.isdigit() for ch in code)):
        return AssetType.FUND
    return AssetType.EQUITY


def _decimal_field(value: Any, field_name: str) -> Decimal:
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number") from None
    if not number.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return number


def normalize_transaction(payload: TransactionCreateRequest) -> dict[str, Any]:
    """Validate a request and return the column values to store.

    Raises :class:`ValidationError` naming the first offending field.
    """

    symbol = (payload.symbol or "").strip().upper()
    if not symbol:
        raise ValidationError("symbol must not be empty")

    try:
        trade_date = parse_trade_date(payload.trade_date)
    except ValueError:
        raise ValidationError(f"trade_date is not a valid date: {payload.trade_date!r}") from None

    try:
        kind = TransactionKind.from_label(payload.kind)
    except ValueError:
        raise ValidationError(f"kind must be BUY or SELL, got {payload.kind!r}") from None

    if payload.asset_type and payload.asset_type.strip():
        try:
            asset_type = AssetType.from_label(payload.asset_type)
        except ValueError:
            raise ValidationError(f"asset_type is not recognised: {payload.asset_type!r}") from None
    else:
        asset_type = infer_asset_type(symbol)

    quantity = _decimal_field(payload.quantity, "quantity")
    if quantity <= 0:
        raise ValidationError("quantity must be greater than zero")
    price = _decimal_field(payload.price, "price")
    if price < 0:
        raise ValidationError("price must not be negative")
    fees = _decimal_field(payload.fees or 0, "fees")
    if fees < 0:
        raise ValidationError("fees must not be negative")

    return {
        "trade_date": trade_date.isoformat(),
        "asset_type": asset_type.value,
        "symbol": symbol,
        "kind": kind.value,
        "quantity": quantity,
        "price": price,
        "fees": fees,
        "currency": (payload.currency or "TRY").strip().upper(),
        "is_dividend": bool(payload.is_dividend),
        "broker": payload.broker.strip() if payload.broker else None,
        "notes": payload.notes,
    }


@dataclass
class TransactionRecord:
    transaction: Transaction
    asset_name: str

    @property
    def notional_value(self) -> Decimal:
        tx = self.transaction
        return Decimal(str(tx.quantity)) * Decimal(str(tx.price))


async def add_transaction(session: AsyncSession, payload: TransactionCreateRequest) -> Transaction:
    values = normalize_transaction(payload)
    tx = Transaction(**values)
    session.add(tx)
    await session.flush()
    logger.info("Added %s %s %s @ %s (id=%s)", tx.kind, tx.quantity, tx.symbol, tx.price, tx.id)
    return tx


async def _get_transaction(session: AsyncSession, transaction_id: int) -> Transaction:
    tx = await session.get(Transaction, transaction_id)
    if tx is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return tx


async def update_transaction(
    session: AsyncSession,
    transaction_id: int,
    payload: TransactionUpdateRequest,
) -> Transaction:
    tx = await _get_transaction(session, transaction_id)
    values = normalize_transaction(payload)
    for key, value in values.items():
        setattr(tx, key, value)
    await session.flush()
    logger.info("Updated transaction %s", transaction_id)
    return tx


async def delete_transaction(session: AsyncSession, transaction_id: int) -> None:
    tx = await _get_transaction(session, transaction_id)
    await session.delete(tx)
    await session.flush()
    logger.info("Deleted transaction %s", transaction_id)


def _sort_date(raw: str) -> date:
    try:
        return parse_trade_date(raw)
    except ValueError:
        return date.min


async def list_transactions(session: AsyncSession) -> list[TransactionRecord]:
    """All transactions, newest trade date first, later insertions first within a day."""

    rows = (
        await session.execute(
            select(Transaction, Asset.name).outerjoin(Asset, Asset.symbol == Transaction.symbol)
        )
    ).all()
    records = [TransactionRecord(transaction=tx, asset_name=name or tx.symbol) for tx, name in rows]
    records.sort(
        key=lambda record: (_sort_date(record.transaction.trade_date), record.transaction.id),
        reverse=True,
    )
    return records


def to_ledger_entry(tx: Transaction) -> LedgerEntry:
    return LedgerEntry(
        id=tx.id,
        trade_date=tx.trade_date,
        symbol=tx.symbol,
        kind=tx.kind,
        quantity=Decimal(str(tx.quantity)),
        price=Decimal(str(tx.price)),
        asset_type=tx.asset_type,
        fees=Decimal(str(tx.fees or 0)),
    )


async def load_ledger(session: AsyncSession) -> list[LedgerEntry]:
    rows = (await session.execute(select(Transaction).order_by(Transaction.id))).scalars().all()
    return [to_ledger_entry(row) for row in rows]


__all__ = [
    "TransactionRecord",
    "add_transaction",
    "delete_transaction",
    "infer_asset_type",
    "list_transactions",
    "load_ledger",
    "normalize_transaction",
    "to_ledger_entry",
    "update_transaction",
]
