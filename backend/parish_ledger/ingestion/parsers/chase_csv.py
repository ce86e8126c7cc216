"""
Chase Bank CSV activity export parser.

Chase "Download account activity" CSV layout:

    Details,Posting Date,Description,Amount,Type,Balance,Check or Slip #
    CREDIT,01/02/2025,Zelle payment from ALMAZ G TESFAY 27250625041,50.00,QUICKPAY_CREDIT,1520.13,,
    DEBIT,01/03/2025,ORIG CO NAME:RAYTHEON ... IND NAME:BERHE,SELAMAWIT ...,-25.00,ACH_DEBIT,,,

Extracts per line:
- Posting date, signed amount, running balance (often blank for pending lines)
- Payer name and Zelle reference id from Zelle descriptions
- Payer name from ACH "IND NAME:LAST,FIRST" descriptions
- Check number from the check column or a "CHECK 1234" description
"""

import csv
import hashlib
import io
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from parish_ledger.ingestion.parsers.base import BaseParser, ParseResult, ParsedRecord, RecordType
from parish_ledger.modules.bank.models import BankTransactionType


REQUIRED_HEADERS = {"Posting Date", "Description", "Amount"}
CHASE_HEADERS = {"Details", "Posting Date", "Description", "Amount", "Type", "Balance", "Check or Slip #"}

ZELLE_PATTERN = re.compile(r'^Zelle (?:payment|transfer) from (?P<name>.*?) (?P<id>\w+)$', re.IGNORECASE)
ACH_IND_NAME_PATTERN = re.compile(r'IND NAME:(?P<name>[^ ]+)', re.IGNORECASE)
CHECK_PATTERN = re.compile(r'^CHECK (?P<number>\d+)', re.IGNORECASE)

DEBIT_DETAILS = {"DEBIT", "CHKS P"}
DATE_FORMATS = ("%m/%d/%Y", "%m/%d/%y", "%Y-%m-%d")


def compute_transaction_hash(posting_date: date, description: str, amount: Decimal) -> str:
    """
    Dedup key for a statement line: SHA-256 of date|description|amount.

    Balance is not part of the key. Pending lines are exported without a
    balance and the same line carries one once posted; both must map to the
    same stored row so the balance can be backfilled.
    """
    payload = f"{posting_date.isoformat()}|{description.strip()}|{amount:.2f}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def parse_statement_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    value = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def normalize_ach_name(raw: str) -> str:
    """'BERHE,SELAMAWIT' -> 'SELAMAWIT BERHE'."""
    raw = raw.strip().strip(',')
    if ',' in raw:
        last, first = raw.split(',', 1)
        return f"{first.strip()} {last.strip()}".strip()
    return raw


def extract_payer_details(description: str) -> dict:
    """
    Pull payer name, reference id, check number and a type label out of a
    statement description. Anything that does not match is left as None.
    """
    details = {"payer_name": None, "external_ref_id": None, "check_number": None, "type": None}
    if not description:
        return details

    zelle = ZELLE_PATTERN.match(description.strip())
    if zelle:
        details["payer_name"] = zelle.group("name").strip() or None
        details["external_ref_id"] = zelle.group("id")
        details["type"] = BankTransactionType.ZELLE.value
        return details

    ach = ACH_IND_NAME_PATTERN.search(description)
    if ach:
        details["payer_name"] = normalize_ach_name(ach.group("name")) or None
        details["type"] = BankTransactionType.ACH.value
    elif "ORIG CO NAME:" in description.upper():
        details["type"] = BankTransactionType.ACH.value

    check = CHECK_PATTERN.match(description.strip())
    if check:
        details["check_number"] = check.group("number")
        details["type"] = BankTransactionType.CHECK.value

    return details


class ChaseCSVParser(BaseParser):
    """Parser for Chase checking account CSV exports."""

    source_name = "chase_csv"
    supported_extensions = [".csv"]

    def can_parse(self, content: bytes, file_name: str = "") -> bool:
        if file_name and not file_name.lower().endswith(tuple(self.supported_extensions)):
            return False
        headers = self._read_csv_headers(content)
        return REQUIRED_HEADERS.issubset(headers)

    def parse(self, content: bytes, file_name: str = "") -> ParseResult:
        records = []
        warnings = []
        errors = []
        metadata = {"file_type": "csv", "source": self.source_name}

        reader = csv.DictReader(io.StringIO(self._decode(content)))
        if reader.fieldnames is None:
            errors.append("File is empty")
            return ParseResult(False, self.source_name, file_name, records, warnings, errors, metadata)

        reader.fieldnames = [h.strip() for h in reader.fieldnames]
        missing = REQUIRED_HEADERS - set(reader.fieldnames)
        if missing:
            errors.append(f"Missing required columns: {', '.join(sorted(missing))}")
            return ParseResult(False, self.source_name, file_name, records, warnings, errors, metadata)

        # Header is row 1
        for row_num, row in enumerate(reader, start=2):
            row = {k: (v.strip() if isinstance(v, str) else v) for k, v in row.items() if k is not None}
            if not any(row.values()):
                continue

            record = self._parse_row(row, row_num, warnings)
            if record is not None:
                records.append(record)

        if records:
            dates = [r.data["date"] for r in records]
            metadata["start_date"] = min(dates).isoformat()
            metadata["end_date"] = max(dates).isoformat()
        metadata["rows_parsed"] = len(records)
        metadata["rows_skipped"] = len(warnings)

        return ParseResult(
            success=len(errors) == 0,
            source_name=self.source_name,
            file_name=file_name,
            records=records,
            warnings=warnings,
            errors=errors,
            metadata=metadata,
        )

    def _parse_row(self, row: dict, row_num: int, warnings: list[str]) -> Optional[ParsedRecord]:
        posting_date = parse_statement_date(row.get("Posting Date"))
        if posting_date is None:
            warnings.append(f"Row {row_num}: skipped, invalid posting date {row.get('Posting Date')!r}")
            return None

        description = row.get("Description") or ""
        amount = self._normalize_amount(row.get("Amount"))
        if amount is None:
            warnings.append(f"Row {row_num}: skipped, invalid amount {row.get('Amount')!r}")
            return None

        details_col = (row.get("Details") or "").upper()
        if details_col in DEBIT_DETAILS:
            amount = -abs(amount)

        balance = self._normalize_amount(row.get("Balance"))

        extracted = extract_payer_details(description)
        check_number = row.get("Check or Slip #") or extracted["check_number"]
        txn_type = extracted["type"]
        if txn_type is None and row.get("Check or Slip #"):
            txn_type = BankTransactionType.CHECK.value
        if txn_type is None:
            txn_type = self._fallback_type(row.get("Type"), amount)

        data = {
            "transaction_hash": compute_transaction_hash(posting_date, description, amount),
            "date": posting_date,
            "amount": amount,
            "balance": balance,
            "description": description,
            "type": txn_type,
            "payer_name": extracted["payer_name"],
            "external_ref_id": extracted["external_ref_id"],
            "check_number": check_number or None,
            "raw_data": dict(row),
        }
        return ParsedRecord(record_type=RecordType.BANK_TRANSACTION, data=data, source_row=row_num)

    @staticmethod
    def _fallback_type(bank_type: Optional[str], amount: Decimal) -> str:
        if bank_type:
            return bank_type.strip().upper()[:30]
        if amount > 0:
            return BankTransactionType.DEPOSIT.value
        if amount < 0:
            return BankTransactionType.WITHDRAWAL.value
        return BankTransactionType.UNKNOWN.value
