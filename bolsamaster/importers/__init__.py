"""
Broker statement importers.

Turns CSV, Excel, PDF or plain-text broker statements into candidate
holdings, then into BUY transactions for the ledger.

Usage:
    from bolsamaster.importers import extract_candidates, candidates_to_transactions

    candidates = extract_candidates("nota_corretagem.pdf")
    buys = candidates_to_transactions(candidates, on_date=date(2024, 1, 10))
"""

from bolsamaster.importers.statements import (
    CandidateRecord,
    StatementExtractor,
    TextStatementExtractor,
    CsvStatementExtractor,
    ExcelStatementExtractor,
    PdfStatementExtractor,
    EXTRACTORS,
    extract_candidates,
    candidates_to_transactions,
    parse_decimal,
)

__all__ = [
    'CandidateRecord',
    'StatementExtractor',
    'TextStatementExtractor',
    'CsvStatementExtractor',
    'ExcelStatementExtractor',
    'PdfStatementExtractor',
    'EXTRACTORS',
    'extract_candidates',
    'candidates_to_transactions',
    'parse_decimal',
]
