"""
Historical equity replay for the growth chart.

There is no historical price feed, so the curve is an approximation: the
market value at each past date is what the units held on that date would be
worth at *today's* price. On sells, invested capital is reduced by the
ticker's *current* average cost, not the average that held at that point of
the replay.
"""

import math
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Union

import pandas as pd
import structlog

from .aggregator import Asset, assets_by_ticker
from .transaction import Transaction, TransactionType, sort_by_date

logger = structlog.get_logger(__name__)

DEFAULT_DATE_FORMAT = "%d/%m"


@dataclass(frozen=True)
class HistoryPoint:
    """
    One point of the invested-vs-market-value curve.

    Attributes:
        date: Transaction date this point closes
        label: Date formatted for the chart axis
        invested: Capital invested to date, rounded, floored at 0
        equity: Market value at current prices, rounded, floored at 0
        gain: Rounded equity minus invested (may be negative)
    """

    date: date
    label: str
    invested: int
    equity: int
    gain: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "date": self.label,
            "invested": self.invested,
            "equity": self.equity,
            "gain": self.gain,
        }


def _round_half_up(value: float) -> int:
    # Chart figures round .5 up, not to even
    return int(math.floor(value + 0.5))


def _index(
    current_assets: Union[Mapping[str, Asset], Iterable[Asset], None]
) -> Dict[str, Asset]:
    if not current_assets:
        return {}
    if isinstance(current_assets, Mapping):
        return {ticker.upper(): asset for ticker, asset in current_assets.items()}
    return assets_by_ticker(current_assets)


def historical_series(
    transactions: Iterable[Transaction],
    current_assets_by_ticker: Union[Mapping[str, Asset], Iterable[Asset], None],
    date_format: Optional[str] = None
) -> List[HistoryPoint]:
    """
    Replay the ledger date by date into chart points.

    One point per distinct date that has at least one BUY/SELL; dividends
    are ignored. For each date all of its entries are applied in ledger
    order, then the running holdings are valued at current prices.

    BUY:  held[ticker] += quantity; invested += quantity * unit_price + costs
    SELL: sold = min(quantity, held[ticker]); held[ticker] -= sold;
          invested -= sold * current average cost of the ticker (the sell's
          own unit price when the ticker is no longer held)

    Args:
        transactions: Ledger snapshot
        current_assets_by_ticker: Current Asset views (ticker map or list);
            tickers missing here are valued at 0
        date_format: strftime pattern for labels (default day/month)

    Returns:
        A new list on every call; empty when there is no BUY/SELL. A single
        point is a valid result even though it cannot draw a line.

    Example:
        >>> points = historical_series(ledger, assets_by_ticker(assets))
        >>> [(p.label, p.invested, p.equity) for p in points]
        [('10/01', 3250, 3845)]
    """
    entries = sort_by_date(t for t in transactions if t.kind != TransactionType.DIVIDEND)
    if not entries:
        return []

    date_format = date_format or DEFAULT_DATE_FORMAT
    assets = _index(current_assets_by_ticker)

    by_date: Dict[date, List[Transaction]] = {}
    for entry in entries:
        by_date.setdefault(entry.date, []).append(entry)

    held: Dict[str, float] = {}
    invested = 0.0
    points: List[HistoryPoint] = []

    for day in sorted(by_date):
        for entry in by_date[day]:
            held.setdefault(entry.ticker, 0.0)

            if entry.kind == TransactionType.BUY:
                held[entry.ticker] += entry.quantity
                invested += entry.quantity * entry.unit_price + entry.costs
                continue

            current_qty = held[entry.ticker]
            if current_qty <= 0:
                continue

            sold = min(entry.quantity, current_qty)
            asset = assets.get(entry.ticker)
            average = asset.average_cost if asset is not None else entry.unit_price
            invested -= sold * average
            held[entry.ticker] -= sold

        market_value = 0.0
        for ticker, quantity in held.items():
            asset = assets.get(ticker)
            market_value += quantity * (asset.current_price if asset is not None else 0.0)

        points.append(HistoryPoint(
            date=day,
            label=day.strftime(date_format),
            invested=max(0, _round_half_up(invested)),
            equity=max(0, _round_half_up(market_value)),
            gain=_round_half_up(market_value - invested),
        ))

    logger.debug("history_replayed", points=len(points), transactions=len(entries))

    return points


def history_to_frame(points: Iterable[HistoryPoint]) -> pd.DataFrame:
    """
    Chart-ready DataFrame indexed by date with invested/equity/gain columns.

    Returns an empty frame with the same columns when there are no points.
    """
    rows = [
        {"date": pd.Timestamp(p.date), "label": p.label,
         "invested": p.invested, "equity": p.equity, "gain": p.gain}
        for p in points
    ]
    frame = pd.DataFrame(rows, columns=["date", "label", "invested", "equity", "gain"])
    return frame.set_index("date")
