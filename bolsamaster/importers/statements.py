"""
Broker statement extraction.

Broker exports are loosely structured, so each source format has its own
extractor and they all converge on ``CandidateRecord``. Candidates are only
guesses: they become ledger transactions through
``candidates_to_transactions``, which validates them first.

Pipeline:
    CSV   -> header detection, or the text scan when no ticker column
    Excel -> rows joined with ';' -> text scan
    PDF   -> page text (pdfplumber) -> text scan
    text  -> per-line B3 ticker + first two numbers
"""

import csv
import io
import re
import zipfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import pandas as pd
import pdfplumber
import structlog

from ..exceptions import ImportParsingError, TransactionValidationError
from ..portfolio.transaction import Transaction, create_buy_transaction

logger = structlog.get_logger(__name__)

Source = Union[str, bytes, Path]

# B3 tickers in statements: 4 letters + share class 3/4/5/6 or unit 11
STATEMENT_TICKER = re.compile(r"^[A-Z]{4}(3|4|5|6|11)$")
TOKEN_SPLIT = re.compile(r"[\s;]+|,(?!\d)")
NUMBER = re.compile(r"^-?\d+(\.\d+)?$")

TICKER_HEADERS = ("ativo", "ticker", "código", "codigo", "papel")
QUANTITY_HEADERS = ("qtd", "quantidade")
PRICE_HEADERS = ("preço", "preco", "medio", "médio", "valor unitário", "valor unitario")


@dataclass(frozen=True)
class CandidateRecord:
    """
    A holding guessed from a statement, not yet validated.

    Attributes:
        ticker: Uppercased symbol
        quantity: Units guessed from the row
        unit_price: Price guessed from the row
        source: Format the record came from ("csv", "text", "excel", "pdf")
    """

    ticker: str
    quantity: float
    unit_price: float
    source: str


def parse_decimal(token: str) -> Optional[float]:
    """
    Parse a Brazilian or plain number: "R$ 1.234,56", "32,50", "32.50", "100".

    A comma marks the decimal separator (dots are then thousands separators);
    without a comma, several dots are thousands separators and a single dot
    is decimal. Returns None when the token is not a number.
    """
    cleaned = token.replace("R$", "").replace("$", "").replace(" ", "").strip()
    if not cleaned:
        return None
    if "," in cleaned:
        cleaned = cleaned.replace(".", "").replace(",", ".")
    elif cleaned.count(".") > 1:
        cleaned = cleaned.replace(".", "")
    if not NUMBER.match(cleaned):
        return None
    return float(cleaned)


def _find_column(headers: Sequence[str], needles: Sequence[str]) -> Optional[int]:
    for index, header in enumerate(headers):
        if any(needle in header for needle in needles):
            return index
    return None


def _is_file(candidate: str) -> bool:
    # Raw statement text is also passed as str; long or multi-line content is not a path
    if "\n" in candidate or len(candidate) > 1024:
        return False
    try:
        return Path(candidate).is_file()
    except (OSError, ValueError):
        return False


def _read_text(source: Source) -> str:
    if isinstance(source, bytes):
        return source.decode("utf-8-sig", errors="replace")
    if isinstance(source, Path):
        return source.read_text(encoding="utf-8-sig", errors="replace")
    return source


class StatementExtractor(ABC):
    """One extractor per statement format."""

    source_format = "base"

    @abstractmethod
    def extract(self, source: Source) -> List[CandidateRecord]:
        """Extract candidate holdings from raw statement content."""
        pass


class TextStatementExtractor(StatementExtractor):
    """
    Line scanner for unstructured text.

    A line yields a candidate when it holds a B3 ticker token and at least
    two non-zero numbers; the first is taken as quantity, the second as
    price.
    """

    source_format = "text"

    def __init__(self, source_label: Optional[str] = None):
        self.source_label = source_label or self.source_format

    def extract(self, source: Source) -> List[CandidateRecord]:
        return self.extract_lines(_read_text(source).splitlines())

    def extract_lines(self, lines: Iterable[str]) -> List[CandidateRecord]:
        results: List[CandidateRecord] = []
        for line in lines:
            parts = [p.strip() for p in TOKEN_SPLIT.split(line) if p and p.strip()]
            ticker = next((p for p in parts if STATEMENT_TICKER.match(p)), None)
            if ticker is None:
                continue

            numbers = []
            for part in parts:
                if part == ticker:
                    continue
                value = parse_decimal(part)
                if value is not None and value != 0:
                    numbers.append(value)

            if len(numbers) < 2:
                continue

            results.append(CandidateRecord(
                ticker=ticker,
                quantity=numbers[0],
                unit_price=numbers[1],
                source=self.source_label,
            ))

        logger.debug("text_statement_scanned", source=self.source_label, candidates=len(results))
        return results


class CsvStatementExtractor(StatementExtractor):
    """
    Broker CSV exports with a header row.

    Columns are found by keyword (ativo/ticker/código/papel,
    qtd/quantidade, preço/médio/valor unitário). When the header has no
    recognizable columns the whole file goes through the text scan.
    """

    source_format = "csv"

    def extract(self, source: Source) -> List[CandidateRecord]:
        lines = _read_text(source).splitlines()
        if len(lines) < 2:
            return []

        delimiter = ";" if ";" in lines[0] else ","
        rows = list(csv.reader(lines, delimiter=delimiter))
        headers = [h.strip().lower() for h in rows[0]]

        ticker_col = _find_column(headers, TICKER_HEADERS)
        quantity_col = _find_column(headers, QUANTITY_HEADERS)
        price_col = _find_column(headers, PRICE_HEADERS)

        if ticker_col is None or quantity_col is None or price_col is None:
            logger.info("csv_header_not_recognized", headers=headers)
            return TextStatementExtractor(self.source_format).extract_lines(
                ";".join(cells) for cells in rows
            )

        results: List[CandidateRecord] = []
        for cells in rows[1:]:
            if len(cells) <= max(ticker_col, quantity_col, price_col):
                continue

            ticker = cells[ticker_col].strip().upper()
            quantity = parse_decimal(cells[quantity_col])
            price = parse_decimal(cells[price_col])

            if ticker and quantity is not None and price is not None:
                results.append(CandidateRecord(
                    ticker=ticker,
                    quantity=quantity,
                    unit_price=price,
                    source=self.source_format,
                ))

        logger.debug("csv_statement_parsed", rows=len(rows) - 1, candidates=len(results))
        return results


class ExcelStatementExtractor(StatementExtractor):
    """First worksheet of an .xlsx/.xls file, flattened to text and scanned."""

    source_format = "excel"

    def extract(self, source: Source) -> List[CandidateRecord]:
        handle = io.BytesIO(source) if isinstance(source, bytes) else source
        try:
            frame = pd.read_excel(handle, sheet_name=0, header=None, dtype=str)
        except (ValueError, OSError, zipfile.BadZipFile) as e:
            raise ImportParsingError(
                "Could not read spreadsheet",
                source_format=self.source_format,
                cause=e
            )

        lines = [
            ";".join(str(cell) for cell in row if pd.notna(cell))
            for row in frame.itertuples(index=False)
        ]
        return TextStatementExtractor(self.source_format).extract_lines(lines)


class PdfStatementExtractor(StatementExtractor):
    """Brokerage notes and statements in PDF; page text is scanned line by line."""

    source_format = "pdf"

    def extract(self, source: Source) -> List[CandidateRecord]:
        handle = io.BytesIO(source) if isinstance(source, bytes) else source
        full_text = ""
        try:
            with pdfplumber.open(handle) as pdf:
                for page in pdf.pages:
                    full_text += (page.extract_text() or "") + "\n"
        except Exception as e:
            raise ImportParsingError(
                "Could not read PDF",
                source_format=self.source_format,
                cause=e
            )

        return TextStatementExtractor(self.source_format).extract_lines(full_text.split("\n"))


EXTRACTORS = {
    "csv": CsvStatementExtractor,
    "txt": TextStatementExtractor,
    "text": TextStatementExtractor,
    "xlsx": ExcelStatementExtractor,
    "xls": ExcelStatementExtractor,
    "excel": ExcelStatementExtractor,
    "pdf": PdfStatementExtractor,
}


def extract_candidates(source: Source, source_format: Optional[str] = None) -> List[CandidateRecord]:
    """
    Run the extractor for a statement.

    Args:
        source: File path, raw bytes, or text content
        source_format: csv, txt/text, xlsx/xls/excel or pdf; inferred from
            the file suffix when ``source`` is a path

    Raises:
        ImportParsingError: Unknown format or unreadable file
    """
    if isinstance(source, str) and _is_file(source):
        source = Path(source)

    if source_format is None:
        if not isinstance(source, Path) or not source.suffix:
            raise ImportParsingError("Statement format could not be inferred")
        source_format = source.suffix.lstrip(".")

    extractor_cls = EXTRACTORS.get(source_format.lower())
    if extractor_cls is None:
        raise ImportParsingError(
            f"Unsupported statement format: {source_format}",
            source_format=source_format
        )

    if isinstance(source, Path) and extractor_cls in (CsvStatementExtractor, TextStatementExtractor):
        try:
            source = source.read_bytes()
        except OSError as e:
            raise ImportParsingError(
                f"Could not read {source}",
                source_format=source_format,
                cause=e
            )

    candidates = extractor_cls().extract(source)
    logger.info("statement_extracted", source_format=source_format, candidates=len(candidates))
    return candidates


def candidates_to_transactions(
    candidates: Iterable[CandidateRecord],
    on_date: Optional[date] = None
) -> List[Transaction]:
    """
    Turn validated candidates into BUY transactions dated ``on_date`` (today by default).

    Candidates with a non-positive quantity or a value the ledger rejects are
    skipped with a warning.
    """
    trade_date = on_date or date.today()
    transactions: List[Transaction] = []

    for candidate in candidates:
        if candidate.quantity <= 0:
            logger.warning("candidate_skipped", ticker=candidate.ticker, reason="non_positive_quantity")
            continue
        try:
            transactions.append(create_buy_transaction(
                candidate.ticker,
                candidate.quantity,
                candidate.unit_price,
                trade_date,
            ))
        except TransactionValidationError as e:
            logger.warning("candidate_skipped", ticker=candidate.ticker, reason=e.message)

    return transactions
