"""
Portfolio-level figures for the dashboard.

Everything here is computed from the Asset views and the ledger; nothing is
stored. Realized gains are a display figure and are replayed on demand.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional
import structlog

from .aggregator import Asset
from .classifier import AssetType
from .dividends import dividends_by_ticker, dividends_in_period
from .transaction import Transaction, TransactionType, sort_by_date

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AllocationSlice:
    """Market value held in one asset category."""
    asset_type: AssetType
    value: float
    percentage: float


@dataclass(frozen=True)
class PortfolioSummary:
    """
    Headline numbers for the dashboard.

    Attributes:
        total_equity: Market value of all open assets
        total_cost: Cost basis of all open assets
        total_gain: total_equity - total_cost
        total_gain_pct: Gain as a percentage of cost (0 when cost is 0)
        realized_gain: Lifetime realized gain on sells
        dividends_total: Lifetime net dividends
        monthly_dividend: Net dividends paid in the reference month
        allocation: Market value per asset category
    """

    total_equity: float
    total_cost: float
    total_gain: float
    total_gain_pct: float
    realized_gain: float
    dividends_total: float
    monthly_dividend: float
    allocation: List[AllocationSlice] = field(default_factory=list)


def allocation_by_type(assets: Iterable[Asset]) -> List[AllocationSlice]:
    """
    Split market value by asset category.

    Slices follow the AssetType declaration order and empty categories are
    dropped.

    Example:
        >>> [(s.asset_type.value, round(s.percentage)) for s in allocation_by_type(assets)]
        [('Ação BR', 70), ('FII', 30)]
    """
    values: Dict[AssetType, float] = {asset_type: 0.0 for asset_type in AssetType}
    for asset in assets:
        values[asset.asset_type] += asset.market_value

    total = sum(values.values())
    return [
        AllocationSlice(
            asset_type=asset_type,
            value=value,
            percentage=(value / total * 100.0) if total > 0 else 0.0,
        )
        for asset_type, value in values.items()
        if value > 0
    ]


def realized_gains(transactions: Iterable[Transaction]) -> Dict[str, float]:
    """
    Realized gain per ticker under weighted-average cost.

    Replays each ticker in date order and, on every sell, books
    ``sold * price - costs - sold * average_cost_at_that_point``. Oversold
    units are clamped exactly as in the position calculator; their costs are
    still charged.

    Returns:
        Dict ticker -> realized gain, only tickers with at least one sell
    """
    quantity: Dict[str, float] = {}
    cost_basis: Dict[str, float] = {}
    gains: Dict[str, float] = {}

    for entry in sort_by_date(transactions):
        if entry.kind == TransactionType.DIVIDEND:
            continue

        held = quantity.get(entry.ticker, 0.0)
        basis = cost_basis.get(entry.ticker, 0.0)

        if entry.kind == TransactionType.BUY:
            quantity[entry.ticker] = held + entry.quantity
            cost_basis[entry.ticker] = basis + entry.quantity * entry.unit_price + entry.costs
            continue

        if held <= 0:
            continue

        average = basis / held
        sold = min(entry.quantity, held)
        gain = sold * entry.unit_price - entry.costs - sold * average
        gains[entry.ticker] = gains.get(entry.ticker, 0.0) + gain

        quantity[entry.ticker] = held - sold
        cost_basis[entry.ticker] = (held - sold) * average

        logger.debug(
            "realized_gain_booked",
            ticker=entry.ticker,
            sold=sold,
            price=entry.unit_price,
            average_cost=average,
            gain=gain
        )

    return gains


def summarize(
    assets: Iterable[Asset],
    transactions: Iterable[Transaction],
    reference_date: Optional[date] = None
) -> PortfolioSummary:
    """
    Build the dashboard summary.

    Args:
        assets: Current open assets (output of build_portfolio)
        transactions: Ledger snapshot
        reference_date: Day whose month is used for ``monthly_dividend``
            (defaults to today)

    Returns:
        PortfolioSummary
    """
    asset_list = list(assets)
    ledger = list(transactions)
    today = reference_date or date.today()

    total_equity = sum(a.market_value for a in asset_list)
    total_cost = sum(a.cost_basis for a in asset_list)
    total_gain = total_equity - total_cost

    month_start = today.replace(day=1)
    next_month = (month_start.replace(year=month_start.year + 1, month=1)
                  if month_start.month == 12
                  else month_start.replace(month=month_start.month + 1))
    month_end = date.fromordinal(next_month.toordinal() - 1)

    return PortfolioSummary(
        total_equity=total_equity,
        total_cost=total_cost,
        total_gain=total_gain,
        total_gain_pct=(total_gain / total_cost * 100.0) if total_cost > 0 else 0.0,
        realized_gain=sum(realized_gains(ledger).values()),
        dividends_total=sum(dividends_by_ticker(ledger).values()),
        monthly_dividend=dividends_in_period(ledger, month_start, month_end),
        allocation=allocation_by_type(asset_list),
    )
