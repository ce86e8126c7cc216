"""File parsers for bank statement exports."""

from parish_ledger.ingestion.parsers.base import BaseParser, ParseResult, ParsedRecord, RecordType
from parish_ledger.ingestion.parsers.chase_csv import ChaseCSVParser, compute_transaction_hash

__all__ = [
    "BaseParser",
    "ParseResult",
    "ParsedRecord",
    "RecordType",
    "ChaseCSVParser",
    "compute_transaction_hash",
]
