"""
Finance module database models.

- Transaction: a confirmed payment attributable to a member (or anonymous)
- LedgerEntry: accounting-grade income/expense row keyed by GL code
- IncomeCategory / ExpenseCategory: GL code reference data
- LedgerOutbox: transactions whose ledger posting failed and still needs one
"""

from enum import Enum

from sqlalchemy import (
    Column, Integer, String, Numeric, Date, DateTime, Text, Boolean, ForeignKey, Index,
)

from parish_ledger.shared.models.base import BaseModel


class PaymentType(str, Enum):
    MEMBERSHIP_DUE = "membership_due"
    TITHE = "tithe"
    DONATION = "donation"
    OFFERING = "offering"
    VOW = "vow"
    BUILDING_FUND = "building_fund"
    EVENT = "event"
    RELIGIOUS_ITEM_SALES = "religious_item_sales"
    TIGRAY_HUNGER_FUNDRAISER = "tigray_hunger_fundraiser"
    OTHER = "other"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CHECK = "check"
    ZELLE = "zelle"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    ACH = "ach"
    OTHER = "other"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


class LedgerSource(str, Enum):
    MANUAL = "manual"
    ZELLE = "zelle"
    STRIPE = "stripe"
    BANK_CSV = "bank_csv"
    BACKFILL = "backfill"


PAYMENT_TYPES = {t.value for t in PaymentType}
PAYMENT_METHODS = {m.value for m in PaymentMethod}
RECEIPT_REQUIRED_METHODS = {PaymentMethod.CASH.value, PaymentMethod.CHECK.value}


class Transaction(BaseModel):
    """Member-facing payment record. Source of truth for dues and contributions."""

    __tablename__ = "transactions"

    member_id = Column(Integer, ForeignKey("members.id"), nullable=True)  # null = anonymous
    collected_by = Column(Integer, ForeignKey("members.id"), nullable=False)

    payment_date = Column(Date, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)  # Always > 0
    payment_type = Column(String(40), nullable=False)
    payment_method = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=TransactionStatus.SUCCEEDED.value)

    receipt_number = Column(String(50), nullable=True)  # Required for cash and check
    note = Column(Text, nullable=True)

    # Upstream dedup key: bank transaction hash, Zelle reference, Stripe id
    external_id = Column(String(100), nullable=True, unique=True)

    donation_id = Column(Integer, nullable=True)
    # Accrual year for dues; payment_date's year when null
    for_year = Column(Integer, nullable=True)
    income_category_id = Column(Integer, ForeignKey("income_categories.id"), nullable=True)

    __table_args__ = (
        Index('idx_transaction_member', 'member_id'),
        Index('idx_transaction_payment_date', 'payment_date'),
        Index('idx_transaction_type', 'payment_type'),
    )

    @property
    def allocation_year(self) -> int:
        return self.for_year or self.payment_date.year


class LedgerEntry(BaseModel):
    """General ledger row."""

    __tablename__ = "ledger_entries"

    type = Column(String(40), nullable=False)  # payment type for income, 'expense' for expenses
    category = Column(String(20), nullable=False)  # GL code, e.g. INC002 or EXP101
    amount = Column(Numeric(12, 2), nullable=False)
    entry_date = Column(Date, nullable=False)

    member_id = Column(Integer, ForeignKey("members.id"), nullable=True)
    collected_by = Column(Integer, ForeignKey("members.id"), nullable=True)
    payment_method = Column(String(20), nullable=True)
    memo = Column(Text, nullable=True)
    receipt_number = Column(String(50), nullable=True)
    external_id = Column(String(100), nullable=True)

    # One income entry per source transaction
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True, unique=True)
    source_system = Column(String(20), nullable=False, default=LedgerSource.MANUAL.value)

    __table_args__ = (
        Index('idx_ledger_entry_date', 'entry_date'),
        Index('idx_ledger_entry_category', 'category'),
    )


class IncomeCategory(BaseModel):
    """Income GL codes and the payment type each one books."""

    __tablename__ = "income_categories"

    gl_code = Column(String(20), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    payment_type_mapping = Column(String(40), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    display_order = Column(Integer, nullable=True)


class ExpenseCategory(BaseModel):
    """Expense GL codes."""

    __tablename__ = "expense_categories"

    gl_code = Column(String(20), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class LedgerOutbox(BaseModel):
    """
    Transactions recorded without their ledger entry.

    Written when posting fails after the Transaction commit; drained by
    backfill_ledger_entries().
    """

    __tablename__ = "ledger_outbox"

    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default="pending")  # pending, done
    attempts = Column(Integer, nullable=False, default=1)
    last_error = Column(Text, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
