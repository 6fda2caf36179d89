"""
Persistence layer for the transaction ledger.

The valuation engine never touches storage: callers load a ledger snapshot
from a ``LedgerStore`` and pass it in. Two stores are provided, an
in-memory one and a SQLite one, plus CSV export/import of the ledger.
"""

import csv
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union
import structlog

from .transaction import Transaction
from ..exceptions import StorageError

logger = structlog.get_logger(__name__)

CSV_COLUMNS = ["id", "date", "ticker", "kind", "quantity", "unit_price", "costs"]


class LedgerStore(ABC):
    """
    Repository interface for the append-only ledger.

    ``list_transactions`` returns entries in insertion order; that order is
    the tie-breaker for same-day entries during replay.
    """

    @abstractmethod
    def list_transactions(self) -> List[Transaction]:
        """Return the full ledger in insertion order."""
        pass

    @abstractmethod
    def append(self, transaction: Transaction) -> None:
        """Append one transaction. Raises StorageError on a duplicate id."""
        pass

    @abstractmethod
    def delete(self, transaction_id: str) -> bool:
        """Delete by id. Returns False when the id is unknown."""
        pass

    def append_many(self, transactions: Iterable[Transaction]) -> int:
        """Append several transactions (bulk import). Returns the count."""
        count = 0
        for transaction in transactions:
            self.append(transaction)
            count += 1
        return count

    def get(self, transaction_id: str) -> Optional[Transaction]:
        for transaction in self.list_transactions():
            if transaction.id == transaction_id:
                return transaction
        return None


class InMemoryLedgerStore(LedgerStore):
    """Ledger held in process memory, mostly for tests and demos."""

    def __init__(self, transactions: Optional[Iterable[Transaction]] = None):
        self._transactions: Dict[str, Transaction] = {}
        if transactions:
            self.append_many(transactions)

    def list_transactions(self) -> List[Transaction]:
        return list(self._transactions.values())

    def append(self, transaction: Transaction) -> None:
        if transaction.id in self._transactions:
            raise StorageError(
                f"Transaction {transaction.id} already exists",
                details={"transaction_id": transaction.id}
            )
        self._transactions[transaction.id] = transaction

    def delete(self, transaction_id: str) -> bool:
        return self._transactions.pop(transaction_id, None) is not None

    def get(self, transaction_id: str) -> Optional[Transaction]:
        return self._transactions.get(transaction_id)


class SQLiteLedgerStore(LedgerStore):
    """
    Ledger persisted in a SQLite database.

    Example:
        >>> store = SQLiteLedgerStore("bolsamaster.db")
        >>> store.append(create_buy_transaction("PETR4", 100, 32.50, date(2024, 1, 10)))
        >>> len(store.list_transactions())
        1
    """

    def __init__(self, db_path: Union[str, Path] = "bolsamaster.db"):
        """
        Initialize ledger storage.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = str(db_path)
        self._connection: Optional[sqlite3.Connection] = None

        # For in-memory databases, keep persistent connection
        if self.db_path == ":memory:":
            self._connection = sqlite3.connect(self.db_path)

        self._init_database()

        logger.info("ledger_storage_initialized", db_path=self.db_path)

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection (reuse for in-memory DBs)."""
        if self._connection:
            return self._connection
        try:
            return sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(
                "Failed to open database",
                details={"db_path": self.db_path},
                cause=e
            )

    def _release(self, conn: sqlite3.Connection) -> None:
        if conn is not self._connection:
            conn.close()

    def _init_database(self) -> None:
        """Initialize database schema."""
        conn = self._get_connection()
        try:
            with conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS transactions (
                        seq INTEGER PRIMARY KEY AUTOINCREMENT,
                        id TEXT NOT NULL UNIQUE,
                        date TEXT NOT NULL,
                        ticker TEXT NOT NULL,
                        kind TEXT NOT NULL,
                        quantity REAL NOT NULL,
                        unit_price REAL NOT NULL,
                        costs REAL NOT NULL
                    )
                """)

                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_transactions_ticker
                    ON transactions(ticker)
                """)

                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_transactions_date
                    ON transactions(date)
                """)

            logger.debug("database_schema_initialized")

        except sqlite3.Error as e:
            raise StorageError(
                "Failed to initialize database",
                details={"db_path": self.db_path},
                cause=e
            )
        finally:
            self._release(conn)

    def list_transactions(self) -> List[Transaction]:
        conn = self._get_connection()
        try:
            rows = conn.execute("""
                SELECT id, date, ticker, kind, quantity, unit_price, costs
                FROM transactions ORDER BY seq ASC
            """).fetchall()
        except sqlite3.Error as e:
            raise StorageError(
                "Failed to load transactions",
                details={"db_path": self.db_path},
                cause=e
            )
        finally:
            self._release(conn)

        return [
            Transaction(
                id=transaction_id,
                date=on_date,
                ticker=ticker,
                kind=kind,
                quantity=quantity,
                unit_price=unit_price,
                costs=costs,
            )
            for transaction_id, on_date, ticker, kind, quantity, unit_price, costs in rows
        ]

    def append(self, transaction: Transaction) -> None:
        self.append_many([transaction])

    def append_many(self, transactions: Iterable[Transaction]) -> int:
        """Append transactions in a single database transaction."""
        batch = list(transactions)
        conn = self._get_connection()
        try:
            with conn:
                conn.executemany("""
                    INSERT INTO transactions (
                        id, date, ticker, kind, quantity, unit_price, costs
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """, [
                    (t.id, t.date.isoformat(), t.ticker, t.kind.value,
                     t.quantity, t.unit_price, t.costs)
                    for t in batch
                ])
        except sqlite3.IntegrityError as e:
            raise StorageError(
                "Duplicate transaction id",
                details={"transaction_ids": [t.id for t in batch]},
                cause=e
            )
        except sqlite3.Error as e:
            raise StorageError(
                "Failed to save transactions",
                details={"db_path": self.db_path, "count": len(batch)},
                cause=e
            )
        finally:
            self._release(conn)

        logger.debug("transactions_saved", count=len(batch), db_path=self.db_path)
        return len(batch)

    def delete(self, transaction_id: str) -> bool:
        conn = self._get_connection()
        try:
            with conn:
                cursor = conn.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))
                deleted = cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StorageError(
                "Failed to delete transaction",
                details={"transaction_id": transaction_id},
                cause=e
            )
        finally:
            self._release(conn)

        if deleted:
            logger.info("transaction_deleted", transaction_id=transaction_id)
        else:
            logger.warning("transaction_not_found_for_deletion", transaction_id=transaction_id)

        return deleted

    def close(self) -> None:
        if self._connection:
            self._connection.close()
            self._connection = None


def export_to_csv(transactions: Iterable[Transaction], path: Union[str, Path]) -> str:
    """
    Write the ledger to a CSV file.

    Args:
        transactions: Ledger snapshot (e.g. ``store.list_transactions()``)
        path: Output file; parent directories are created

    Returns:
        Path of the written file
    """
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with open(output, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        for transaction in transactions:
            writer.writerow(transaction.to_dict())
            count += 1

    logger.info("ledger_exported_to_csv", path=str(output), transactions=count)
    return str(output)


def import_from_csv(path: Union[str, Path]) -> List[Transaction]:
    """
    Read a ledger CSV written by ``export_to_csv``.

    Rows go through normal Transaction validation, so a bad row raises
    TransactionValidationError.
    """
    with open(path, "r", newline="") as f:
        reader = csv.DictReader(f)
        transactions = [Transaction.from_dict(row) for row in reader]

    logger.info("ledger_imported_from_csv", path=str(path), transactions=len(transactions))
    return transactions
