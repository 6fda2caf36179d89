"""
Custom exception hierarchy for BolsaMaster.

The valuation engine itself is total over validated input and never raises;
these exceptions live at the edges: transaction ingestion, ledger storage,
quote retrieval, statement import, and configuration.

Exception Hierarchy:
    BolsaMasterError (base)
    ├── LedgerError
    │   ├── TransactionValidationError
    │   └── TransactionNotFoundError
    ├── StorageError
    ├── QuoteError
    │   └── QuoteFetchError
    ├── ImportParsingError
    └── ConfigurationError
"""

from typing import Any, Optional, Dict


class BolsaMasterError(Exception):
    """
    Base exception for all BolsaMaster errors.

    Attributes:
        message: Human-readable error description
        details: Additional context (ticker, field, source, etc.)
        cause: Original exception if this wraps another error
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        self.message = message
        self.details = details or {}
        self.cause = cause
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the exception message with details."""
        msg = self.message
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg = f"{msg} [{detail_str}]"
        if self.cause:
            msg = f"{msg} (caused by: {type(self.cause).__name__}: {self.cause})"
        return msg


# =============================================================================
# Ledger Exceptions
# =============================================================================

class LedgerError(BolsaMasterError):
    """Base exception for ledger-related errors."""
    pass


class TransactionValidationError(LedgerError):
    """
    Raised when a transaction is rejected at the ingestion boundary.

    Examples:
        - NaN or infinite quantity/price
        - Negative quantity, price or costs
        - Empty ticker or unknown transaction kind
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        expected: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value
        if expected:
            details["expected"] = expected
        super().__init__(message, details=details, **kwargs)


class TransactionNotFoundError(LedgerError):
    """Raised when a transaction id is not present in the ledger."""

    def __init__(self, message: str, transaction_id: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if transaction_id:
            details["transaction_id"] = transaction_id
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# Storage Exceptions
# =============================================================================

class StorageError(BolsaMasterError):
    """Raised when the ledger store cannot read or write."""
    pass


# =============================================================================
# Quote Exceptions
# =============================================================================

class QuoteError(BolsaMasterError):
    """Base exception for market quote errors."""
    pass


class QuoteFetchError(QuoteError):
    """
    Raised when a quote source cannot be reached or answers garbage.

    Providers catch this internally and degrade to a partial price map.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        ticker: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if source:
            details["source"] = source
        if ticker:
            details["ticker"] = ticker
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# Import Exceptions
# =============================================================================

class ImportParsingError(BolsaMasterError):
    """Raised when a broker statement cannot be read at all."""

    def __init__(self, message: str, source_format: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if source_format:
            details["source_format"] = source_format
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# Configuration Exceptions
# =============================================================================

class ConfigurationError(BolsaMasterError):
    """
    Raised when configuration is invalid.

    Examples:
        - Non-numeric QUOTE_TIMEOUT
        - Unknown LOG_LEVEL
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected:
            details["expected"] = expected
        super().__init__(message, details=details, **kwargs)
