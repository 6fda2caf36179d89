"""
Dividend income accumulation.

A DIVIDEND entry stores the gross payment in ``unit_price`` and the tax
withheld at source in ``costs``; income is always the net of the two.
Dividends never touch quantity or cost basis.
"""

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, Optional

from .transaction import Transaction, TransactionType


def _net(transaction: Transaction) -> float:
    return transaction.unit_price - transaction.costs


def accumulated_dividends(ticker: str, transactions: Iterable[Transaction]) -> float:
    """
    Lifetime net dividends received for a ticker.

    Example:
        >>> ledger = [
        ...     create_dividend_transaction("ITSA4", 12.0, date(2024, 5, 2), withheld_tax=1.8),
        ...     create_dividend_transaction("ITSA4", 8.0, date(2024, 8, 1), withheld_tax=1.2),
        ... ]
        >>> round(accumulated_dividends("ITSA4", ledger), 2)
        17.0
    """
    symbol = ticker.strip().upper()
    return sum(
        (_net(t) for t in transactions
         if t.ticker == symbol and t.kind == TransactionType.DIVIDEND),
        0.0
    )


def dividends_by_ticker(transactions: Iterable[Transaction]) -> Dict[str, float]:
    """Net dividends per ticker, in order of first payment."""
    totals: Dict[str, float] = {}
    for t in transactions:
        if t.kind == TransactionType.DIVIDEND:
            totals[t.ticker] = totals.get(t.ticker, 0.0) + _net(t)
    return totals


def dividends_in_period(
    transactions: Iterable[Transaction],
    start: Optional[date] = None,
    end: Optional[date] = None,
    ticker: Optional[str] = None
) -> float:
    """
    Net dividends paid between ``start`` and ``end`` (both inclusive).

    Open-ended on either side when the bound is None.
    """
    symbol = ticker.strip().upper() if ticker else None
    total = 0.0
    for t in transactions:
        if t.kind != TransactionType.DIVIDEND:
            continue
        if symbol and t.ticker != symbol:
            continue
        if start and t.date < start:
            continue
        if end and t.date > end:
            continue
        total += _net(t)
    return total


def monthly_dividends(transactions: Iterable[Transaction]) -> Dict[str, float]:
    """Net dividends grouped by calendar month, keys ``YYYY-MM`` in ascending order."""
    by_month: Dict[str, float] = defaultdict(float)
    for t in transactions:
        if t.kind == TransactionType.DIVIDEND:
            by_month[t.date.strftime("%Y-%m")] += _net(t)
    return dict(sorted(by_month.items()))
