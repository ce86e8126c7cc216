"""
Base parser interface for bank statement parsers.
All bank-specific parsers must implement this interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional
import csv
import io


class RecordType(Enum):
    """Types of records that can be parsed."""
    BANK_TRANSACTION = "bank_transaction"


@dataclass
class ParsedRecord:
    """A single parsed record with metadata."""
    record_type: RecordType
    data: dict[str, Any]
    source_row: int  # Row number in source file for debugging


@dataclass
class ParseResult:
    """Result of parsing a file."""
    success: bool
    source_name: str
    file_name: str
    records: list[ParsedRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)  # date range, row counts


class BaseParser(ABC):
    """
    Abstract base class for bank statement parsers.

    Each bank export layout gets its own parser. Parsers work on the raw
    uploaded bytes; nothing is written to disk.
    """

    @property
    @abstractmethod
    def source_name(self) -> str:
        """
        Unique identifier for this data source.
        Examples: 'chase_csv'
        """
        pass

    @property
    @abstractmethod
    def supported_extensions(self) -> list[str]:
        """
        File extensions this parser can handle.
        Examples: ['.csv']
        """
        pass

    @abstractmethod
    def can_parse(self, content: bytes, file_name: str = "") -> bool:
        """
        Check if this parser can handle the given upload by inspecting
        its headers.
        """
        pass

    @abstractmethod
    def parse(self, content: bytes, file_name: str = "") -> ParseResult:
        """
        Parse the upload and return structured records.

        Malformed rows are skipped and reported in ``warnings``; they never
        fail the whole parse.
        """
        pass

    def _decode(self, content: bytes) -> str:
        """Decode upload bytes, dropping a UTF-8 BOM if present."""
        return content.decode('utf-8-sig', errors='replace')

    def _read_csv_headers(self, content: bytes) -> set[str]:
        """
        Utility method to read CSV headers.
        Handles common edge cases like BOM, extra whitespace.
        """
        reader = csv.reader(io.StringIO(self._decode(content)))
        try:
            headers = next(reader)
            return {h.strip() for h in headers}
        except StopIteration:
            return set()

    def _normalize_amount(self, value: Optional[str]) -> Optional[Decimal]:
        """
        Utility method to normalize monetary amounts.
        Handles $, commas, parentheses for negatives.
        """
        if value is None or value.strip() == '':
            return None

        value = value.strip()

        is_negative = value.startswith('(') and value.endswith(')')
        if is_negative:
            value = value[1:-1]

        value = value.replace('$', '').replace(',', '').strip()

        try:
            amount = Decimal(value)
            if not amount.is_finite():
                return None
            # Raises for values too large for the decimal context (e.g. 1E+30)
            amount = amount.quantize(Decimal("0.01"))
        except InvalidOperation:
            return None
        return -amount if is_negative else amount
