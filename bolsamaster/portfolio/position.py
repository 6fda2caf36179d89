"""
Position calculation with the weighted-average cost method.

A position is never stored: it is replayed from the ledger every time.
Buys raise the cost basis by the amount paid (fees included); sells shrink
the cost basis proportionally and leave the average cost per unit where it
was. Dividends are ignored here.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List
import structlog

from .transaction import Transaction, TransactionType, sort_by_date

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Position:
    """
    Derived holding for one ticker.

    Attributes:
        ticker: Instrument identifier
        quantity: Units held after replaying all BUY/SELL entries (>= 0)
        average_cost: Cost per unit, 0 when nothing is held
        cost_basis: quantity * average_cost
        oversold_quantity: Sell units dropped because they exceeded the
            holding at the time; non-zero usually means a data-entry mistake
    """

    ticker: str
    quantity: float = 0.0
    average_cost: float = 0.0
    cost_basis: float = 0.0
    oversold_quantity: float = 0.0

    @property
    def is_open(self) -> bool:
        return self.quantity > 0

    @property
    def has_oversell(self) -> bool:
        return self.oversold_quantity > 0

    def to_dict(self) -> Dict[str, float]:
        return {
            "ticker": self.ticker,
            "quantity": self.quantity,
            "average_cost": self.average_cost,
            "cost_basis": self.cost_basis,
            "oversold_quantity": self.oversold_quantity,
        }


def compute_position(ticker: str, transactions: Iterable[Transaction]) -> Position:
    """
    Replay one ticker's BUY/SELL entries into a position.

    Entries are processed by date ascending, ties in ledger order.

    On BUY:  cost_basis += quantity * unit_price + costs; quantity += quantity
    On SELL: avg = cost_basis / quantity; sold = min(requested, quantity);
             quantity -= sold; cost_basis = quantity * avg

    Selling more than is held is clamped to a full liquidation and the
    excess is reported in ``oversold_quantity``. A sell with nothing held
    changes nothing.

    Args:
        ticker: Ticker to compute (case-insensitive)
        transactions: Full ledger, any order, any tickers mixed in

    Returns:
        Position for the ticker; all zeros when it has no BUY/SELL entries

    Example:
        >>> ledger = [create_buy_transaction("PETR4", 100, 32.50, date(2024, 1, 10))]
        >>> compute_position("PETR4", ledger)
        Position(ticker='PETR4', quantity=100.0, average_cost=32.5, cost_basis=3250.0, oversold_quantity=0.0)
    """
    symbol = ticker.strip().upper()
    entries = sort_by_date(
        t for t in transactions
        if t.ticker == symbol and t.kind != TransactionType.DIVIDEND
    )

    quantity = 0.0
    cost_basis = 0.0
    oversold = 0.0

    for entry in entries:
        if entry.kind == TransactionType.BUY:
            cost_basis += entry.quantity * entry.unit_price + entry.costs
            quantity += entry.quantity
            continue

        # SELL
        if quantity <= 0:
            oversold += entry.quantity
            continue

        average = cost_basis / quantity
        sold = min(entry.quantity, quantity)
        if entry.quantity > quantity:
            oversold += entry.quantity - quantity

        quantity -= sold
        cost_basis = quantity * average

    if oversold > 0:
        logger.warning(
            "oversell_clamped",
            ticker=symbol,
            dropped_quantity=oversold,
            remaining_quantity=quantity
        )

    return Position(
        ticker=symbol,
        quantity=quantity,
        average_cost=cost_basis / quantity if quantity > 0 else 0.0,
        cost_basis=cost_basis,
        oversold_quantity=oversold,
    )


def distinct_tickers(transactions: Iterable[Transaction]) -> List[str]:
    """Tickers in order of first appearance in the ledger."""
    seen: Dict[str, None] = {}
    for t in transactions:
        seen.setdefault(t.ticker, None)
    return list(seen)


def compute_positions(transactions: Iterable[Transaction]) -> Dict[str, Position]:
    """
    Compute the position of every ticker in the ledger.

    Includes closed positions; the aggregator is what filters them out.

    Returns:
        Dict ticker -> Position, in first-appearance order
    """
    ledger = list(transactions)
    return {ticker: compute_position(ticker, ledger) for ticker in distinct_tickers(ledger)}
