"""
Portfolio service: the stateful caller around the pure valuation engine.

The engine functions never mutate shared state. This service owns what the
engine deliberately does not: the ledger store, the previously displayed
assets (so prices survive a missing quote), and a cached recomputation keyed
on the ledger version. Every computation works on one ledger snapshot.
"""

from datetime import date, datetime
from typing import Dict, List, Mapping, Optional, Tuple
import structlog

from .aggregator import Asset, assets_by_ticker, build_portfolio
from .dividends import accumulated_dividends, dividends_by_ticker
from .history import HistoryPoint, historical_series
from .storage import LedgerStore
from .summary import PortfolioSummary, summarize
from .transaction import Transaction
from ..config import Config, config as default_config
from ..exceptions import TransactionNotFoundError

logger = structlog.get_logger(__name__)


class PortfolioService:
    """
    Ledger-backed portfolio with quote refresh.

    Example:
        >>> service = PortfolioService(InMemoryLedgerStore(), quote_provider=build_default_provider())
        >>> service.record(create_buy_transaction("PETR4", 100, 32.50, date(2024, 1, 10)))
        >>> await service.refresh_quotes()
        >>> service.summary().total_equity
    """

    def __init__(
        self,
        store: LedgerStore,
        quote_provider=None,
        date_format: Optional[str] = None,
        retry_attempts: int = 1
    ):
        """
        Initialize the service.

        Args:
            store: Ledger persistence
            quote_provider: Any QuoteProvider; without one prices come from
                the previous assets or the average cost
            date_format: strftime pattern for history labels
            retry_attempts: Quote fetch attempts per refresh while nothing
                comes back
        """
        self.store = store
        self.quote_provider = quote_provider
        self.date_format = date_format
        self.retry_attempts = max(1, int(retry_attempts))
        self._assets: List[Asset] = []
        self._version = 0
        self._computed_version: Optional[int] = None

        logger.info(
            "portfolio_service_initialized",
            store=type(store).__name__,
            quote_provider=getattr(quote_provider, "name", None)
        )

    @classmethod
    def from_config(cls, settings: Optional[Config] = None) -> "PortfolioService":
        """
        Build the service from environment settings: SQLite ledger at
        ``db_path`` and the brapi + yfinance quote chain.
        """
        from ..data.quotes import build_default_provider
        from .storage import SQLiteLedgerStore

        settings = settings or default_config
        provider = build_default_provider(
            brapi_token=settings.brapi_token or None,
            reporting_currency=settings.reporting_currency,
            timeout=settings.quote_timeout
        )
        return cls(
            SQLiteLedgerStore(settings.db_path),
            quote_provider=provider,
            date_format=settings.history_date_format,
            retry_attempts=settings.quote_retry_attempts
        )

    @property
    def assets(self) -> List[Asset]:
        """Current open assets, recomputed when the ledger changed."""
        if self._computed_version != self._version:
            self.recompute()
        return list(self._assets)

    def snapshot(self) -> Tuple[Transaction, ...]:
        """Immutable copy of the ledger for one computation pass."""
        return tuple(self.store.list_transactions())

    def record(self, transaction: Transaction) -> Transaction:
        """Append a transaction to the ledger."""
        self.store.append(transaction)
        self._version += 1

        logger.info(
            "transaction_recorded",
            transaction_id=transaction.id,
            ticker=transaction.ticker,
            kind=transaction.kind.value,
            quantity=transaction.quantity,
            unit_price=transaction.unit_price
        )
        return transaction

    def record_many(self, transactions: List[Transaction]) -> int:
        """Append several transactions at once (statement import)."""
        count = self.store.append_many(transactions)
        if count:
            self._version += 1
        logger.info("transactions_recorded", count=count)
        return count

    def import_statement(
        self,
        source,
        source_format: Optional[str] = None,
        on_date: Optional[date] = None
    ) -> List[Transaction]:
        """
        Extract holdings from a broker statement and record them as BUYs.

        Returns:
            The transactions that were recorded
        """
        from ..importers import candidates_to_transactions, extract_candidates

        candidates = extract_candidates(source, source_format)
        transactions = candidates_to_transactions(candidates, on_date=on_date)
        self.record_many(transactions)

        logger.info(
            "statement_imported",
            source_format=source_format,
            candidates=len(candidates),
            recorded=len(transactions)
        )
        return transactions

    def delete(self, transaction_id: str) -> None:
        """
        Remove a transaction by id.

        Raises:
            TransactionNotFoundError: If the id is not in the ledger
        """
        if not self.store.delete(transaction_id):
            raise TransactionNotFoundError(
                f"No transaction with id {transaction_id}",
                transaction_id=transaction_id
            )
        self._version += 1

        logger.info("transaction_deleted", transaction_id=transaction_id)

    def recompute(self, quotes: Optional[Mapping[str, float]] = None) -> List[Asset]:
        """
        Rebuild the assets from a ledger snapshot.

        Args:
            quotes: Optional fresh ticker -> price map (partial maps are fine)
        """
        ledger = self.snapshot()
        self._assets = build_portfolio(ledger, previous_assets=self._assets, quotes=quotes)
        self._computed_version = self._version

        logger.debug("portfolio_recomputed", version=self._version, assets=len(self._assets))
        return list(self._assets)

    async def refresh_quotes(self) -> List[Asset]:
        """
        Fetch quotes for the open tickers and recompute.

        Tickers the provider cannot price keep their last known price.
        """
        tickers = [asset.ticker for asset in self.assets]
        if self.quote_provider is None or not tickers:
            return list(self._assets)

        if self.retry_attempts > 1:
            quotes: Dict[str, float] = await self.quote_provider.fetch_with_retry(
                tickers, max_retries=self.retry_attempts
            )
        else:
            quotes = await self.quote_provider.fetch_with_timeout(tickers)

        logger.info(
            "quotes_refreshed",
            source=self.quote_provider.name,
            requested=len(tickers),
            received=len(quotes)
        )
        return self.recompute(quotes)

    def history(self) -> List[HistoryPoint]:
        """Invested-vs-equity points for the growth chart."""
        return historical_series(
            self.snapshot(),
            assets_by_ticker(self.assets),
            date_format=self.date_format
        )

    def dividends(self, ticker: Optional[str] = None):
        """Net dividends for one ticker, or a ticker -> total map when omitted."""
        ledger = self.snapshot()
        if ticker is None:
            return dividends_by_ticker(ledger)
        return accumulated_dividends(ticker, ledger)

    def summary(self, reference_date: Optional[date] = None) -> PortfolioSummary:
        return summarize(self.assets, self.snapshot(), reference_date=reference_date)

    def last_quote_time(self) -> Optional[datetime]:
        stamps = [a.last_updated for a in self._assets if a.last_updated is not None]
        return max(stamps) if stamps else None
