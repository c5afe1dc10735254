"""JSON export and all-or-nothing import of every persisted table."""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_tracker.core.errors import ValidationError
from portfolio_tracker.db.base import utcnow
from portfolio_tracker.models import (
    Asset,
    AssetPriceHistory,
    AssetType,
    FundDailyTracking,
    PortfolioSnapshot,
    Transaction,
    TransactionKind,
)
from portfolio_tracker.services.ledger import infer_asset_type
from portfolio_tracker.services.valuation import parse_trade_date

logger = logging.getLogger(__name__)

BACKUP_VERSION = 1
TABLES = (
    "transactions",
    "assets",
    "portfolio_snapshots",
    "asset_price_history",
    "fund_daily_tracking",
)
# Older exports use "-" for "today".
_TODAY_MARKERS = frozenset({"", "-"})


class _Row(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class TransactionRow(_Row):
    id: int | None = None
    trade_date: str = Field(validation_alias=AliasChoices("trade_date", "date"))
    asset_type: str | None = None
    symbol: str
    name: str | None = Field(default=None, exclude=True)
    kind: str = Field(validation_alias=AliasChoices("kind", "type"))
    quantity: Decimal = Field(gt=0)
    price: Decimal = Field(ge=0)
    fees: Decimal = Field(default=Decimal("0"), ge=0, validation_alias=AliasChoices("fees", "fee"))
    currency: str = "TRY"
    is_dividend: bool = False
    broker: str | None = None
    notes: str | None = None
    created_at: datetime | None = None

    @field_validator("symbol")
    @classmethod
    def _symbol(cls, value: str) -> str:
        value = value.strip().upper()
        if not value:
            raise ValueError("symbol must not be empty")
        return value

    @field_validator("kind", mode="before")
    @classmethod
    def _kind(cls, value: Any) -> str:
        return TransactionKind.from_label(value).value

    @field_validator("trade_date", mode="before")
    @classmethod
    def _trade_date(cls, value: Any) -> str:
        if isinstance(value, (date, datetime)):
            return parse_trade_date(value).isoformat()
        text = str(value if value is not None else "").strip()
        if text in _TODAY_MARKERS:
            return date.today().isoformat()
        try:
            return parse_trade_date(text).isoformat()
        except ValueError:
            # Kept verbatim; valuation reports such rows as skipped.
            return text

    @model_validator(mode="after")
    def _asset_type(self) -> "TransactionRow":
        if self.asset_type and self.asset_type.strip():
            self.asset_type = AssetType.from_label(self.asset_type).value
        else:
            self.asset_type = infer_asset_type(self.symbol, self.name).value
        return self


class AssetRow(_Row):
    symbol: str
    name: str | None = None
    asset_type: str | None = None
    current_price: Decimal | None = None
    day_change_pct: Decimal = Decimal("0")
    last_updated: datetime | None = None
    market: str | None = None
    sector: str | None = None

    @field_validator("symbol")
    @classmethod
    def _symbol(cls, value: str) -> str:
        value = value.strip().upper()
        if not value:
            raise ValueError("symbol must not be empty")
        return value

    @model_validator(mode="after")
    def _asset_type(self) -> "AssetRow":
        if self.asset_type and self.asset_type.strip():
            self.asset_type = AssetType.from_label(self.asset_type).value
        else:
            self.asset_type = infer_asset_type(self.symbol, self.name).value
        return self


class SnapshotRow(_Row):
    snapshot_date: date = Field(validation_alias=AliasChoices("snapshot_date", "date"))
    total_value_local: Decimal = Field(validation_alias=AliasChoices("total_value_local", "total_value"))
    total_value_usd: Decimal = Decimal("0")
    cost_basis: Decimal = Decimal("0")
    realized_pnl: Decimal = Decimal("0")
    unrealized_pnl: Decimal = Decimal("0")
    cash_balance: Decimal = Decimal("0")
    total_return_pct: Decimal | None = None
    created_at: datetime | None = None


class PriceHistoryRow(_Row):
    symbol: str
    price: Decimal
    snapshot_date: date = Field(validation_alias=AliasChoices("snapshot_date", "date"))


class FundTrackingRow(PriceHistoryRow):
    day_change_pct: Decimal = Decimal("0")


class BackupPayload(BaseModel):
    version: int = BACKUP_VERSION
    exported_at: datetime | None = None
    transactions: list[TransactionRow] = Field(default_factory=list)
    assets: list[AssetRow] = Field(default_factory=list)
    portfolio_snapshots: list[SnapshotRow] = Field(default_factory=list)
    asset_price_history: list[PriceHistoryRow] = Field(default_factory=list)
    fund_daily_tracking: list[FundTrackingRow] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_keys(self) -> "BackupPayload":
        explicit_ids = sum(row.id is not None for row in self.transactions)
        if 0 < explicit_ids < len(self.transactions):
            raise ValueError("transactions must either all carry an id or none")
        keyed = {
            "transactions": [row.id for row in self.transactions if row.id is not None],
            "assets": [row.symbol for row in self.assets],
            "portfolio_snapshots": [row.snapshot_date for row in self.portfolio_snapshots],
            "asset_price_history": [(row.symbol, row.snapshot_date) for row in self.asset_price_history],
            "fund_daily_tracking": [(row.symbol, row.snapshot_date) for row in self.fund_daily_tracking],
        }
        for table, keys in keyed.items():
            if len(keys) != len(set(keys)):
                raise ValueError(f"{table} contains duplicate keys")
        return self

    def counts(self) -> dict[str, int]:
        return {table: len(getattr(self, table)) for table in TABLES}


def parse_backup(blob: str | bytes | dict[str, Any] | list[Any]) -> BackupPayload:
    """Validate a backup document without touching the database.

    Accepts the current format, a bare list of transactions, or an object
    carrying only some of the tables. Raises :class:`ValidationError`.
    """

    data: Any = blob
    if isinstance(blob, (str, bytes)):
        try:
            data = json.loads(blob)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Backup is not valid JSON: {exc}") from exc
    if isinstance(data, list):
        data = {"transactions": data}
    if not isinstance(data, dict):
        raise ValidationError("Backup must be a JSON object or a list of transactions")
    try:
        return BackupPayload.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(f"Backup failed validation: {exc}") from exc


async def export_snapshot(session: AsyncSession, *, now: datetime | None = None) -> str:
    transactions = (await session.execute(select(Transaction).order_by(Transaction.id))).scalars().all()
    assets = (await session.execute(select(Asset).order_by(Asset.symbol))).scalars().all()
    snapshots = (
        await session.execute(select(PortfolioSnapshot).order_by(PortfolioSnapshot.snapshot_date))
    ).scalars().all()
    history = (
        await session.execute(
            select(AssetPriceHistory).order_by(AssetPriceHistory.symbol, AssetPriceHistory.snapshot_date)
        )
    ).scalars().all()
    tracking = (
        await session.execute(
            select(FundDailyTracking).order_by(FundDailyTracking.symbol, FundDailyTracking.snapshot_date)
        )
    ).scalars().all()

    payload = BackupPayload(
        exported_at=now or utcnow(),
        transactions=[TransactionRow.model_validate(row) for row in transactions],
        assets=[AssetRow.model_validate(row) for row in assets],
        portfolio_snapshots=[SnapshotRow.model_validate(row) for row in snapshots],
        asset_price_history=[PriceHistoryRow.model_validate(row) for row in history],
        fund_daily_tracking=[FundTrackingRow.model_validate(row) for row in tracking],
    )
    logger.info("Exported backup: %s", payload.counts())
    return payload.model_dump_json(indent=2)


def _assets_from_transactions(rows: list[TransactionRow]) -> list[AssetRow]:
    """Older backups carry names on the transactions instead of an assets table."""

    assets: dict[str, AssetRow] = {}
    for row in rows:
        name = (row.name or "").strip() or None
        known = assets.get(row.symbol)
        if known is None:
            assets[row.symbol] = AssetRow(symbol=row.symbol, name=name, asset_type=row.asset_type)
        elif known.name is None:
            known.name = name
    return list(assets.values())


async def _delete_all(session: AsyncSession) -> None:
    for model in (Transaction, Asset, PortfolioSnapshot, AssetPriceHistory, FundDailyTracking):
        await session.execute(delete(model))


async def import_snapshot(session: AsyncSession, payload: BackupPayload) -> dict[str, int]:
    """Replace every table with the payload's rows inside the caller's transaction."""

    await _delete_all(session)
    created = utcnow()
    session.add_all(
        Transaction(
            **row.model_dump(exclude={"id", "created_at"}),
            **({"id": row.id} if row.id is not None else {}),
            created_at=row.created_at or created,
        )
        for row in payload.transactions
    )
    assets = payload.assets or _assets_from_transactions(payload.transactions)
    session.add_all(Asset(**row.model_dump()) for row in assets)
    session.add_all(
        PortfolioSnapshot(**row.model_dump(exclude={"created_at"}), created_at=row.created_at or created)
        for row in payload.portfolio_snapshots
    )
    session.add_all(AssetPriceHistory(**row.model_dump()) for row in payload.asset_price_history)
    session.add_all(FundDailyTracking(**row.model_dump()) for row in payload.fund_daily_tracking)
    await session.flush()
    counts = {**payload.counts(), "assets": len(assets)}
    logger.info("Imported backup: %s", counts)
    return counts


async def clear_database(session: AsyncSession) -> None:
    await _delete_all(session)
    logger.warning("Cleared all portfolio data")


__all__ = [
    "BACKUP_VERSION",
    "BackupPayload",
    "TABLES",
    "clear_database",
    "export_snapshot",
    "import_snapshot",
    "parse_backup",
]
