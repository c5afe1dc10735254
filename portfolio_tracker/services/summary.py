"""Portfolio summary and period-over-period deltas."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, getcontext
from typing import Mapping

from portfolio_tracker.services.valuation import HUNDRED, ZERO, Holding, ValuationResult

getcontext().prec = 28

# Conversion rates above this are treated as bad data and replaced with 1.
MAX_SANE_USD_RATE = Decimal("500")

DAILY, WEEKLY, MONTHLY = 1, 7, 30
PERIOD_DAYS = (DAILY, WEEKLY, MONTHLY)


@dataclass(frozen=True)
class PeriodChange:
    value: Decimal = ZERO
    pct: Decimal = ZERO


@dataclass(frozen=True)
class RangePerformance:
    start_value: Decimal
    end_value: Decimal
    change: Decimal
    pct: Decimal


@dataclass
class PortfolioSummary:
    total_value: Decimal
    total_value_usd: Decimal
    cost_basis: Decimal
    unrealized_pnl: Decimal
    realized_pnl: Decimal
    total_return: Decimal
    roi_pct: Decimal
    total_fees: Decimal
    holdings_count: int
    top_performer: Holding | None
    worst_performer: Holding | None
    last_updated: datetime | None
    daily_change: PeriodChange = field(default_factory=PeriodChange)
    weekly_change: PeriodChange = field(default_factory=PeriodChange)
    monthly_change: PeriodChange = field(default_factory=PeriodChange)
    warnings: list[str] = field(default_factory=list)
    skipped_transaction_ids: list[int] = field(default_factory=list)

    @property
    def total_return_pct(self) -> Decimal:
        if self.cost_basis == 0:
            return ZERO
        return self.total_return / self.cost_basis * HUNDRED


def usable_usd_rate(rate: Decimal | None) -> Decimal:
    if rate is None or rate <= 0 or rate > MAX_SANE_USD_RATE:
        return Decimal("1")
    return rate


def period_change(current: Decimal, baseline: Decimal | None) -> PeriodChange:
    """Difference against a snapshot value; zero when there is no usable baseline."""

    if baseline is None or baseline <= 0:
        return PeriodChange()
    diff = current - baseline
    return PeriodChange(value=diff, pct=diff / baseline * HUNDRED)


def range_performance(start_value: Decimal | None, end_value: Decimal | None) -> RangePerformance:
    start = start_value if start_value is not None else ZERO
    end = end_value if end_value is not None else ZERO
    if start <= 0:
        return RangePerformance(start_value=start, end_value=end, change=ZERO, pct=ZERO)
    change = end - start
    return RangePerformance(start_value=start, end_value=end, change=change, pct=change / start * HUNDRED)


def _collect_warnings(holdings: list[Holding]) -> list[str]:
    warnings: list[str] = []
    for holding in holdings:
        for warning in holding.warnings:
            warnings.append(f"{holding.symbol}: {warning}")
    return warnings


def summarize(
    valuation: ValuationResult,
    *,
    usd_rate: Decimal | None = None,
    last_updated: datetime | None = None,
    baselines: Mapping[int, Decimal | None] | None = None,
) -> PortfolioSummary:
    """Aggregate a valuation into the dashboard summary.

    ``baselines`` maps a look-back in days (1, 7, 30) to the snapshot value
    at or before that day.
    """

    baselines = baselines or {}
    open_holdings = valuation.open_holdings

    total_value = sum((h.value for h in open_holdings), ZERO)
    cost_basis = sum((h.cost_basis for h in open_holdings), ZERO)
    unrealized = total_value - cost_basis
    realized = valuation.realized_pnl
    roi_pct = unrealized / cost_basis * HUNDRED if cost_basis != 0 else ZERO

    top = max(open_holdings, key=lambda h: h.unrealized_pnl_pct, default=None)
    worst = min(open_holdings, key=lambda h: h.unrealized_pnl_pct, default=None)

    return PortfolioSummary(
        total_value=total_value,
        total_value_usd=total_value / usable_usd_rate(usd_rate),
        cost_basis=cost_basis,
        unrealized_pnl=unrealized,
        realized_pnl=realized,
        total_return=unrealized + realized,
        roi_pct=roi_pct,
        total_fees=valuation.total_fees,
        holdings_count=len(open_holdings),
        top_performer=top,
        worst_performer=worst,
        last_updated=last_updated,
        daily_change=period_change(total_value, baselines.get(DAILY)),
        weekly_change=period_change(total_value, baselines.get(WEEKLY)),
        monthly_change=period_change(total_value, baselines.get(MONTHLY)),
        warnings=_collect_warnings(valuation.holdings),
        skipped_transaction_ids=list(valuation.skipped_transaction_ids),
    )


__all__ = [
    "PERIOD_DAYS",
    "PeriodChange",
    "PortfolioSummary",
    "RangePerformance",
    "period_change",
    "range_performance",
    "summarize",
    "usable_usd_rate",
]
