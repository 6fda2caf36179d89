"""
Portfolio aggregation: from ledger to the current holdings view.

``build_portfolio`` is a pure function. The caller threads the previously
displayed assets and whatever quotes it has; nothing is cached here.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Union
import structlog

from .classifier import AssetType, classify
from .position import compute_position, distinct_tickers
from .transaction import Transaction, generate_id

logger = structlog.get_logger(__name__)

DEFAULT_ASSET_NAME = "Ativo Registrado"


@dataclass(frozen=True)
class Asset:
    """
    Display view of one open holding.

    Recomputed on every ledger change. ``id`` and ``name`` survive
    recomputation only so the UI keeps stable rows; they carry no meaning.

    Attributes:
        ticker: Instrument identifier
        asset_type: Category from the classifier
        quantity: Units held (> 0 for anything build_portfolio returns)
        average_cost: Weighted-average cost per unit
        current_price: Latest quote, else last known price, else average_cost
        last_updated: When a fresh quote was last applied (None if never)
        id: View identity
        name: Display name
    """

    ticker: str
    asset_type: AssetType
    quantity: float
    average_cost: float
    current_price: float
    last_updated: Optional[datetime] = None
    id: str = ""
    name: str = DEFAULT_ASSET_NAME

    @property
    def cost_basis(self) -> float:
        return self.quantity * self.average_cost

    @property
    def market_value(self) -> float:
        return self.quantity * self.current_price

    @property
    def gain(self) -> float:
        """Unrealized gain against cost basis."""
        return self.market_value - self.cost_basis

    @property
    def gain_pct(self) -> float:
        return (self.gain / self.cost_basis * 100.0) if self.cost_basis > 0 else 0.0

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "ticker": self.ticker,
            "name": self.name,
            "type": self.asset_type.value,
            "quantity": self.quantity,
            "average_cost": self.average_cost,
            "current_price": self.current_price,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "market_value": self.market_value,
            "gain": self.gain,
            "gain_pct": self.gain_pct,
        }


def _valid_price(value) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return not math.isnan(number) and not math.isinf(number) and number > 0


def _index_assets(
    previous_assets: Union[Iterable[Asset], Mapping[str, Asset], None]
) -> Dict[str, Asset]:
    if not previous_assets:
        return {}
    if isinstance(previous_assets, Mapping):
        return {ticker.upper(): asset for ticker, asset in previous_assets.items()}
    return {asset.ticker: asset for asset in previous_assets}


def build_portfolio(
    transactions: Iterable[Transaction],
    previous_assets: Union[Iterable[Asset], Mapping[str, Asset], None] = None,
    quotes: Optional[Mapping[str, float]] = None,
    now: Optional[datetime] = None
) -> List[Asset]:
    """
    Derive the open holdings from the ledger.

    For every distinct ticker (first-appearance order) the position is
    replayed, classified and priced. Price precedence is a fresh quote, then
    the previously known price, then the average cost, so a missing quote
    never drops a price to zero. ``last_updated`` moves to ``now`` only when
    a fresh quote was applied. Positions with quantity <= 0 are dropped.

    Args:
        transactions: Ledger snapshot
        previous_assets: Assets from the last computation (list or ticker map)
        quotes: Partial ticker -> price map in the reporting currency
        now: Timestamp for fresh quotes (defaults to datetime.now())

    Returns:
        List of open Asset views

    Example:
        >>> assets = build_portfolio(ledger, quotes={"PETR4": 38.45})
        >>> assets[0].current_price
        38.45
    """
    ledger = list(transactions)
    previous = _index_assets(previous_assets)
    fresh_quotes = {str(k).strip().upper(): v for k, v in (quotes or {}).items()}
    stamp = now or datetime.now()

    assets: List[Asset] = []
    quotes_applied = 0
    for ticker in distinct_tickers(ledger):
        position = compute_position(ticker, ledger)
        if position.quantity <= 0:
            continue

        prior = previous.get(ticker)
        quote = fresh_quotes.get(ticker)

        if _valid_price(quote):
            current_price = float(quote)
            last_updated = stamp
            quotes_applied += 1
        else:
            if prior is not None and _valid_price(prior.current_price):
                current_price = prior.current_price
            else:
                current_price = position.average_cost
            last_updated = prior.last_updated if prior is not None else None

        assets.append(Asset(
            ticker=ticker,
            asset_type=classify(ticker),
            quantity=position.quantity,
            average_cost=position.average_cost,
            current_price=current_price,
            last_updated=last_updated,
            id=prior.id if prior is not None and prior.id else generate_id(),
            name=prior.name if prior is not None else DEFAULT_ASSET_NAME,
        ))

    logger.debug(
        "portfolio_built",
        transactions=len(ledger),
        assets=len(assets),
        quotes_applied=quotes_applied
    )

    return assets


def assets_by_ticker(assets: Iterable[Asset]) -> Dict[str, Asset]:
    """Index an asset list by ticker, the shape the history replay expects."""
    return {asset.ticker: asset for asset in assets}
