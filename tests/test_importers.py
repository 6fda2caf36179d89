"""
Unit tests for broker statement importers.

Tests:
- Number parsing in Brazilian and plain formats
- Text line scanning
- CSV header detection with fallback to the text scan
- Excel and PDF extraction (PDF mocked)
- Dispatch and conversion into ledger transactions
"""

from datetime import date
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from bolsamaster.exceptions import ImportParsingError
from bolsamaster.importers import (
    CandidateRecord,
    CsvStatementExtractor,
    ExcelStatementExtractor,
    PdfStatementExtractor,
    TextStatementExtractor,
    candidates_to_transactions,
    extract_candidates,
    parse_decimal,
)
from bolsamaster.portfolio.transaction import TransactionType


class TestParseDecimal:
    """Test number parsing."""

    @pytest.mark.parametrize("token,expected", [
        ("100", 100.0),
        ("32,50", 32.5),
        ("32.50", 32.5),
        ("R$ 1.234,56", 1234.56),
        ("R$1.234.567", 1234567.0),
        ("$ 10.5", 10.5),
        ("-3,2", -3.2),
    ])
    def test_numbers(self, token, expected):
        assert parse_decimal(token) == pytest.approx(expected)

    @pytest.mark.parametrize("token", ["", "PETR4", "abc", "1,2,3", "R$"])
    def test_not_numbers(self, token):
        assert parse_decimal(token) is None


class TestTextStatementExtractor:
    """Test the line scanner."""

    def test_extracts_ticker_quantity_price(self):
        text = (
            "NOTA DE CORRETAGEM 12345\n"
            "C VISTA PETR4 PN 100 32,50 3.250,00 D\n"
            "C VISTA HGLG11 10 160,00 1.600,00 D\n"
            "Total 4.850,00\n"
        )

        candidates = TextStatementExtractor().extract(text)

        assert candidates == [
            CandidateRecord("PETR4", 100.0, 32.5, "text"),
            CandidateRecord("HGLG11", 10.0, 160.0, "text"),
        ]

    def test_requires_two_numbers(self):
        assert TextStatementExtractor().extract("PETR4 100\n") == []

    def test_zeros_skipped(self):
        candidates = TextStatementExtractor().extract("VALE3;0;50;61,20")

        assert candidates == [CandidateRecord("VALE3", 50.0, 61.2, "text")]

    def test_ignores_non_b3_symbols(self):
        assert TextStatementExtractor().extract("AAPL 10 200\nPETR 10 30\n") == []

    def test_bytes_input(self):
        candidates = TextStatementExtractor().extract("ITSA4 200 10,05".encode("utf-8"))

        assert candidates[0].ticker == "ITSA4"


class TestCsvStatementExtractor:
    """Test broker CSV exports."""

    def test_semicolon_with_decimal_comma(self):
        content = (
            "Ativo;Quantidade;Preço Médio\n"
            "PETR4;100;32,50\n"
            "hglg11;10;1.600,00\n"
            ";;\n"
        )

        candidates = CsvStatementExtractor().extract(content)

        assert candidates == [
            CandidateRecord("PETR4", 100.0, 32.5, "csv"),
            CandidateRecord("HGLG11", 10.0, 1600.0, "csv"),
        ]

    def test_comma_delimited(self):
        content = "Ticker,Qtd,Preco\nAAPL,5,190.10\n"

        assert CsvStatementExtractor().extract(content) == [CandidateRecord("AAPL", 5.0, 190.1, "csv")]

    def test_unknown_header_falls_back_to_text(self):
        content = "Produto;Movimento;Valor\nPETR4;100;32,50\n"

        candidates = CsvStatementExtractor().extract(content)

        assert candidates == [CandidateRecord("PETR4", 100.0, 32.5, "csv")]

    def test_unknown_header_comma_delimited(self):
        content = "foo,bar,baz\nPETR4,100,32.50\nVALE3,10,60.00\n"

        candidates = extract_candidates(content, "csv")

        assert candidates == [
            CandidateRecord("PETR4", 100.0, 32.5, "csv"),
            CandidateRecord("VALE3", 10.0, 60.0, "csv"),
        ]

    def test_header_only(self):
        assert CsvStatementExtractor().extract("Ativo;Qtd;Preço\n") == []

    def test_short_rows_skipped(self):
        content = "Ativo;Qtd;Preço\nPETR4;100\nVALE3;10;60\n"

        assert [c.ticker for c in CsvStatementExtractor().extract(content)] == ["VALE3"]


class TestExcelStatementExtractor:
    """Test spreadsheet statements."""

    def test_reads_first_sheet(self, tmp_path):
        path = tmp_path / "posicao.xlsx"
        pd.DataFrame(
            [["Ativo", "Qtd", "Preço"], ["BBAS3", "50", "27,80"], ["Total", None, "1390"]]
        ).to_excel(path, index=False, header=False)

        candidates = ExcelStatementExtractor().extract(path)

        assert candidates == [CandidateRecord("BBAS3", 50.0, 27.8, "excel")]

    def test_unreadable_file_raises(self, tmp_path):
        path = tmp_path / "broken.xlsx"
        path.write_bytes(b"not a spreadsheet")

        with pytest.raises(ImportParsingError):
            ExcelStatementExtractor().extract(path)


class TestPdfStatementExtractor:
    """Test PDF statements with pdfplumber mocked."""

    def test_extracts_page_text(self):
        pages = [MagicMock(), MagicMock()]
        pages[0].extract_text.return_value = "C VISTA PETR4 100 32,50"
        pages[1].extract_text.return_value = None

        pdf = MagicMock()
        pdf.pages = pages
        pdf.__enter__.return_value = pdf

        with patch("bolsamaster.importers.statements.pdfplumber.open", return_value=pdf) as mock_open:
            candidates = PdfStatementExtractor().extract(b"%PDF-1.4")

        assert candidates == [CandidateRecord("PETR4", 100.0, 32.5, "pdf")]
        assert mock_open.call_count == 1

    def test_open_failure_raises(self):
        with patch("bolsamaster.importers.statements.pdfplumber.open", side_effect=ValueError("bad pdf")):
            with pytest.raises(ImportParsingError):
                PdfStatementExtractor().extract(b"garbage")


class TestExtractCandidates:
    """Test format dispatch."""

    def test_explicit_format(self):
        candidates = extract_candidates("Ativo;Qtd;Preço\nPETR4;1;2\n", "csv")

        assert candidates[0].source == "csv"

    def test_format_from_suffix(self, tmp_path):
        path = tmp_path / "extrato.csv"
        path.write_text("Ativo;Qtd;Preço\nPETR4;1;2\n", encoding="utf-8")

        assert extract_candidates(path)[0].ticker == "PETR4"
        assert extract_candidates(str(path))[0].ticker == "PETR4"

    def test_unknown_format(self):
        with pytest.raises(ImportParsingError):
            extract_candidates("whatever", "docx")

    def test_format_not_inferable(self):
        with pytest.raises(ImportParsingError):
            extract_candidates(b"raw bytes")


class TestCandidatesToTransactions:
    """Test conversion into ledger entries."""

    def test_buys_created(self):
        candidates = [CandidateRecord("PETR4", 100.0, 32.5, "csv")]

        transactions = candidates_to_transactions(candidates, on_date=date(2024, 1, 10))

        assert len(transactions) == 1
        assert transactions[0].kind is TransactionType.BUY
        assert transactions[0].date == date(2024, 1, 10)
        assert transactions[0].unit_price == pytest.approx(32.5)

    def test_invalid_candidates_skipped(self):
        candidates = [
            CandidateRecord("PETR4", -100.0, 32.5, "text"),
            CandidateRecord("VALE3", 10.0, -1.0, "text"),
            CandidateRecord("ITSA4", 10.0, 10.0, "text"),
        ]

        transactions = candidates_to_transactions(candidates, on_date=date(2024, 1, 10))

        assert [t.ticker for t in transactions] == ["ITSA4"]

    def test_defaults_to_today(self):
        transactions = candidates_to_transactions([CandidateRecord("ITSA4", 1.0, 1.0, "text")])

        assert transactions[0].date == date.today()
