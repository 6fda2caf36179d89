"""
Transaction records for the portfolio ledger.

The ledger is an append-only list of BUY, SELL and DIVIDEND transactions and
is the single source of truth: every position, gain and chart point is
derived from it. Transactions are immutable once created and are removed
only as a whole, by id.

Construction is the ingestion boundary. Numbers are checked here so the
valuation engine downstream never has to.
"""

import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional, Dict, Any, Iterable, List, Union
import structlog

from ..exceptions import TransactionValidationError

logger = structlog.get_logger(__name__)


class TransactionType(Enum):
    """
    Kind of ledger entry.

    Attributes:
        BUY: Purchase of units
        SELL: Sale of units
        DIVIDEND: Cash distribution (gross amount in unit_price, withheld tax in costs)
    """
    BUY = "BUY"
    SELL = "SELL"
    DIVIDEND = "DIVIDEND"

    def __str__(self) -> str:
        return self.value


def generate_id() -> str:
    """Generate a short opaque id for transactions and asset views."""
    return uuid.uuid4().hex[:9]


def _coerce_date(value: Union[date, datetime, str]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            # Accepts both "2024-01-10" and full ISO timestamps
            return datetime.fromisoformat(value.strip()[:10]).date()
        except ValueError as e:
            raise TransactionValidationError(
                f"Invalid transaction date: {value!r}",
                field="date",
                value=value,
                expected="ISO date (YYYY-MM-DD)",
                cause=e
            )
    raise TransactionValidationError(
        f"Invalid transaction date: {value!r}",
        field="date",
        value=value,
        expected="date, datetime or ISO string"
    )


def _check_amount(name: str, value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise TransactionValidationError(
            f"{name} must be numeric, got {value!r}",
            field=name,
            value=value,
            expected="non-negative number",
            cause=e
        )
    if math.isnan(number) or math.isinf(number):
        raise TransactionValidationError(
            f"{name} must be finite, got {value!r}",
            field=name,
            value=value,
            expected="finite number"
        )
    if number < 0:
        raise TransactionValidationError(
            f"{name} cannot be negative, got {number}",
            field=name,
            value=number,
            expected="non-negative number"
        )
    return number


@dataclass(frozen=True)
class Transaction:
    """
    A single ledger entry.

    Attributes:
        date: Calendar date of the trade or payment (no time component)
        ticker: Instrument identifier, stripped and uppercased
        kind: BUY, SELL or DIVIDEND
        quantity: Units traded (bookkeeping only for DIVIDEND)
        unit_price: Price per unit; for DIVIDEND the gross cash amount
        costs: Fees and taxes; for DIVIDEND the withheld tax
        id: Opaque unique id (generated when omitted)

    Example:
        >>> buy = Transaction(
        ...     date=date(2024, 1, 10),
        ...     ticker="petr4",
        ...     kind=TransactionType.BUY,
        ...     quantity=100,
        ...     unit_price=32.50,
        ... )
        >>> buy.ticker, buy.gross_amount
        ('PETR4', 3250.0)
    """

    date: date
    ticker: str
    kind: TransactionType
    quantity: float
    unit_price: float
    costs: float = 0.0
    id: str = field(default_factory=generate_id)

    def __post_init__(self):
        """Validate and normalize transaction data."""
        if not isinstance(self.ticker, str) or not self.ticker.strip():
            raise TransactionValidationError(
                "Ticker cannot be empty",
                field="ticker",
                value=self.ticker,
                expected="non-empty symbol"
            )

        kind = self.kind
        if isinstance(kind, str):
            try:
                kind = TransactionType(kind.strip().upper())
            except ValueError as e:
                raise TransactionValidationError(
                    f"Unknown transaction kind: {self.kind!r}",
                    field="kind",
                    value=self.kind,
                    expected="BUY, SELL or DIVIDEND",
                    cause=e
                )
        elif not isinstance(kind, TransactionType):
            raise TransactionValidationError(
                f"Unknown transaction kind: {self.kind!r}",
                field="kind",
                value=self.kind,
                expected="BUY, SELL or DIVIDEND"
            )

        # frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "ticker", self.ticker.strip().upper())
        object.__setattr__(self, "kind", kind)
        object.__setattr__(self, "date", _coerce_date(self.date))
        object.__setattr__(self, "quantity", _check_amount("quantity", self.quantity))
        object.__setattr__(self, "unit_price", _check_amount("unit_price", self.unit_price))
        object.__setattr__(self, "costs", _check_amount("costs", self.costs))
        object.__setattr__(self, "id", str(self.id))

    @property
    def gross_amount(self) -> float:
        """
        Amount before costs.

        quantity * unit_price for BUY/SELL, the gross payment for DIVIDEND.
        """
        if self.kind == TransactionType.DIVIDEND:
            return self.unit_price
        return self.quantity * self.unit_price

    @property
    def net_amount(self) -> float:
        """
        Cash effect of the transaction seen from the investor.

        For BUY: (quantity * unit_price) + costs (amount paid)
        For SELL: (quantity * unit_price) - costs (proceeds)
        For DIVIDEND: unit_price - costs (net payment)
        """
        if self.kind == TransactionType.BUY:
            return self.gross_amount + self.costs
        return self.gross_amount - self.costs

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert transaction to a JSON-friendly dictionary.

        Example:
            >>> transaction.to_dict()
            {'id': 'a1b2c3d4e', 'date': '2024-01-10', 'ticker': 'PETR4', ...}
        """
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "ticker": self.ticker,
            "kind": self.kind.value,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "costs": self.costs,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        """
        Create a transaction from its dictionary form.

        Also accepts the ``type``/``price`` keys used by the browser
        localStorage export, and a missing ``costs``.
        """
        kind = data.get("kind", data.get("type"))
        unit_price = data.get("unit_price", data.get("price"))
        transaction_id = data.get("id")

        kwargs = {}
        if transaction_id:
            kwargs["id"] = transaction_id

        return cls(
            date=data["date"],
            ticker=data["ticker"],
            kind=kind,
            quantity=data.get("quantity", 0) or 0,
            unit_price=unit_price if unit_price is not None else 0,
            costs=data.get("costs") or 0,
            **kwargs
        )

    def __repr__(self) -> str:
        """String representation for debugging."""
        if self.kind == TransactionType.DIVIDEND:
            return (
                f"Transaction(id={self.id}, ticker={self.ticker}, type=DIVIDEND, "
                f"gross={self.unit_price:.2f}, withheld={self.costs:.2f}, date={self.date})"
            )
        return (
            f"Transaction(id={self.id}, ticker={self.ticker}, type={self.kind.value}, "
            f"quantity={self.quantity:g}, price={self.unit_price:.2f}, "
            f"costs={self.costs:.2f}, date={self.date})"
        )


def sort_by_date(transactions: Iterable[Transaction]) -> List[Transaction]:
    """
    Return transactions ordered by date ascending.

    Python's sort is stable, so entries sharing a date keep ledger order.
    """
    return sorted(transactions, key=lambda t: t.date)


def create_buy_transaction(
    ticker: str,
    quantity: float,
    unit_price: float,
    on_date: Union[date, datetime, str],
    costs: float = 0.0,
    transaction_id: Optional[str] = None
) -> Transaction:
    """
    Convenience function to create a BUY transaction.

    Example:
        >>> buy = create_buy_transaction("PETR4", 100, 32.50, date(2024, 1, 10))
    """
    return Transaction(
        date=on_date,
        ticker=ticker,
        kind=TransactionType.BUY,
        quantity=quantity,
        unit_price=unit_price,
        costs=costs,
        id=transaction_id or generate_id(),
    )


def create_sell_transaction(
    ticker: str,
    quantity: float,
    unit_price: float,
    on_date: Union[date, datetime, str],
    costs: float = 0.0,
    transaction_id: Optional[str] = None
) -> Transaction:
    """
    Convenience function to create a SELL transaction.

    Example:
        >>> sell = create_sell_transaction("PETR4", 60, 40.0, date(2024, 3, 1), costs=5.0)
    """
    return Transaction(
        date=on_date,
        ticker=ticker,
        kind=TransactionType.SELL,
        quantity=quantity,
        unit_price=unit_price,
        costs=costs,
        id=transaction_id or generate_id(),
    )


def create_dividend_transaction(
    ticker: str,
    gross_amount: float,
    on_date: Union[date, datetime, str],
    withheld_tax: float = 0.0,
    quantity: float = 0.0,
    transaction_id: Optional[str] = None
) -> Transaction:
    """
    Convenience function to create a DIVIDEND transaction.

    The gross payment is stored in ``unit_price`` and the withheld tax in
    ``costs``, so the net income is ``unit_price - costs``.

    Example:
        >>> div = create_dividend_transaction("ITSA4", 12.0, date(2024, 5, 2), withheld_tax=1.8)
    """
    return Transaction(
        date=on_date,
        ticker=ticker,
        kind=TransactionType.DIVIDEND,
        quantity=quantity,
        unit_price=gross_amount,
        costs=withheld_tax,
        id=transaction_id or generate_id(),
    )
