"""
Bank module database models.

One BankTransaction row per line of an uploaded bank statement.
"""

from enum import Enum

from sqlalchemy import Column, Integer, String, Numeric, Date, Text, JSON, ForeignKey, Index

from parish_ledger.shared.models.base import BaseModel


class BankTransactionStatus(str, Enum):
    PENDING = "PENDING"
    MATCHED = "MATCHED"
    IGNORED = "IGNORED"


class BankTransactionType(str, Enum):
    """Label derived from the statement line by the parser."""
    ZELLE = "ZELLE"
    ACH = "ACH"
    CHECK = "CHECK"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    UNKNOWN = "UNKNOWN"


class BankTransaction(BaseModel):
    """Imported bank statement line."""

    __tablename__ = "bank_transactions"

    # Dedup key, see parsers.chase_csv.compute_transaction_hash()
    transaction_hash = Column(String(64), nullable=False, unique=True)

    date = Column(Date, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)  # Positive for deposits, negative for withdrawals
    description = Column(Text, nullable=False)
    type = Column(String(30), nullable=False, default=BankTransactionType.UNKNOWN.value)
    status = Column(String(20), nullable=False, default=BankTransactionStatus.PENDING.value)

    payer_name = Column(String(200), nullable=True)
    external_ref_id = Column(String(100), nullable=True)
    check_number = Column(String(30), nullable=True)

    # Running balance as printed on the statement. Only ever backfilled null -> value.
    balance = Column(Numeric(12, 2), nullable=True)

    raw_data = Column(JSON, nullable=True)

    member_id = Column(Integer, ForeignKey("members.id"), nullable=True)

    # Provenance
    ingestion_id = Column(Integer, ForeignKey("ingestion_log.id"), nullable=True)

    __table_args__ = (
        Index('idx_bank_transaction_date', 'date'),
        Index('idx_bank_transaction_status', 'status'),
    )

    @property
    def is_processed(self) -> bool:
        return self.status in (BankTransactionStatus.MATCHED.value, BankTransactionStatus.IGNORED.value)
