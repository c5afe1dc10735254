"""Database model exports."""

from .asset import Asset, AssetPriceHistory, AssetType, FundDailyTracking
from .snapshot import PortfolioSnapshot
from .transaction import Transaction, TransactionKind

__all__ = [
    "Asset",
    "AssetPriceHistory",
    "AssetType",
    "FundDailyTracking",
    "PortfolioSnapshot",
    "Transaction",
    "TransactionKind",
]
