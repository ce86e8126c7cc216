"""
Finance services: recording payments, posting them to the general ledger,
standalone expenses, and ledger backfill.

A payment is committed before its ledger entry is attempted. If posting
fails the payment stays recorded, the failure is logged, and the transaction
is queued in ledger_outbox for backfill_ledger_entries() to pick up.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from parish_ledger.core.errors import ConflictError, NotFoundError, ValidationError
from parish_ledger.modules.finance.gl_mapping import resolve_gl_code
from parish_ledger.modules.finance.models import (
    ExpenseCategory,
    IncomeCategory,
    LedgerEntry,
    LedgerOutbox,
    LedgerSource,
    PAYMENT_METHODS,
    PAYMENT_TYPES,
    RECEIPT_REQUIRED_METHODS,
    Transaction,
    TransactionStatus,
)
from parish_ledger.modules.members.models import Member
from parish_ledger.modules.members.services import learn_memo

logger = logging.getLogger(__name__)

EXPENSE_PAYMENT_METHODS = {"cash", "check"}


@dataclass
class TransactionResult:
    transaction: Transaction
    ledger_entry: Optional[LedgerEntry]
    memo_learned: bool = False


def to_amount(value: Any, field: str = "amount") -> Decimal:
    """Parse a money value and require it to be strictly positive."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{field} must be greater than zero", field=field)
    return amount.quantize(Decimal("0.01"))


def validate_payment_fields(
    payment_type: Optional[str],
    payment_method: Optional[str],
    receipt_number: Optional[str],
    for_year: Optional[int] = None,
) -> None:
    if not payment_type:
        raise ValidationError("payment_type is required", field="payment_type")
    if payment_type not in PAYMENT_TYPES:
        raise ValidationError(f"Invalid payment_type '{payment_type}'", field="payment_type")
    if not payment_method:
        raise ValidationError("payment_method is required", field="payment_method")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment_method '{payment_method}'", field="payment_method")
    if payment_method in RECEIPT_REQUIRED_METHODS and not (receipt_number or "").strip():
        raise ValidationError(
            f"receipt_number is required for {payment_method} payments", field="receipt_number"
        )
    if for_year is not None and not 1900 <= for_year <= 2200:
        raise ValidationError("for_year is out of range", field="for_year")


def find_transaction_by_external_id(db: Session, external_id: Optional[str]) -> Optional[Transaction]:
    if not external_id:
        return None
    return db.query(Transaction).filter(Transaction.external_id == external_id).first()


def build_ledger_entry(
    db: Session,
    txn: Transaction,
    source_system: str,
    memo: Optional[str] = None,
) -> LedgerEntry:
    """Create (flush, no commit) the income ledger entry for a transaction."""
    gl = resolve_gl_code(db, txn.payment_type)
    entry = LedgerEntry(
        type=txn.payment_type,
        category=gl.gl_code,
        amount=txn.amount,
        entry_date=txn.payment_date,
        member_id=txn.member_id,
        collected_by=txn.collected_by,
        payment_method=txn.payment_method,
        memo=memo or f"{gl.gl_code} - {txn.payment_type}",
        receipt_number=txn.receipt_number,
        external_id=txn.external_id,
        transaction_id=txn.id,
        source_system=source_system,
    )
    db.add(entry)
    db.flush()
    return entry


def queue_ledger_retry(db: Session, transaction_id: int, error: str) -> None:
    """Record that a transaction still needs its ledger entry."""
    try:
        row = db.query(LedgerOutbox).filter(LedgerOutbox.transaction_id == transaction_id).first()
        if row is None:
            db.add(LedgerOutbox(transaction_id=transaction_id, status="pending", attempts=1, last_error=error))
        else:
            row.status = "pending"
            row.attempts = (row.attempts or 0) + 1
            row.last_error = error
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(
            f"Could not queue transaction {transaction_id} for ledger backfill: {e}. "
            f"It will still be found by the backfill scan.",
            exc_info=True,
        )


def post_ledger_entry(
    db: Session,
    txn: Transaction,
    source_system: str,
    memo: Optional[str] = None,
) -> Optional[LedgerEntry]:
    """
    Best-effort ledger posting for an already committed transaction.
    Returns None on failure; never raises.
    """
    transaction_id = txn.id
    try:
        entry = build_ledger_entry(db, txn, source_system, memo)
        db.commit()
        return entry
    except Exception as e:
        db.rollback()
        logger.error(
            f"Ledger entry for transaction {transaction_id} failed, queued for backfill: {e}",
            exc_info=True,
        )
        queue_ledger_retry(db, transaction_id, str(e))
        return None


def create_transaction(
    db: Session,
    *,
    collected_by: Optional[int],
    amount: Any,
    payment_date: Optional[date],
    payment_type: Optional[str],
    payment_method: Optional[str],
    member_id: Optional[int] = None,
    receipt_number: Optional[str] = None,
    note: Optional[str] = None,
    external_id: Optional[str] = None,
    for_year: Optional[int] = None,
    donation_id: Optional[int] = None,
    status: str = TransactionStatus.SUCCEEDED.value,
    zelle_memo: Optional[str] = None,
    source_system: str = LedgerSource.MANUAL.value,
) -> TransactionResult:
    """
    Record a payment (manual entry, Zelle ingest, processor webhook).

    Validation happens before any write. The payment is committed on its
    own; the ledger entry and memo alias follow as best-effort steps.
    """
    if collected_by is None:
        raise ValidationError("collected_by is required", field="collected_by")
    amount = to_amount(amount)
    if payment_date is None:
        raise ValidationError("payment_date is required", field="payment_date")
    validate_payment_fields(payment_type, payment_method, receipt_number, for_year)
    if status not in {s.value for s in TransactionStatus}:
        raise ValidationError(f"Invalid status '{status}'", field="status")

    member = None
    if member_id is not None:
        member = db.get(Member, member_id)
        if member is None:
            raise NotFoundError(f"Member {member_id} not found", field="member_id")

    if find_transaction_by_external_id(db, external_id) is not None:
        raise ConflictError(f"Transaction with external_id {external_id} already exists", code="already_exists")

    # Unmapped payment types fail here, before anything is written
    gl = resolve_gl_code(db, payment_type)

    txn = Transaction(
        member_id=member_id,
        collected_by=collected_by,
        payment_date=payment_date,
        amount=amount,
        payment_type=payment_type,
        payment_method=payment_method,
        status=status,
        receipt_number=receipt_number or None,
        note=note,
        external_id=external_id or None,
        for_year=for_year,
        donation_id=donation_id,
        income_category_id=gl.income_category_id,
    )
    db.add(txn)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"Transaction with external_id {external_id} already exists", code="already_exists")

    logger.info(f"Recorded {payment_type} transaction {txn.id}: {amount} via {payment_method}")

    entry = None
    if txn.status == TransactionStatus.SUCCEEDED.value:
        entry = post_ledger_entry(db, txn, source_system)

    memo_learned = False
    if zelle_memo and member is not None:
        memo_learned = learn_memo(db, zelle_memo, member)

    return TransactionResult(transaction=txn, ledger_entry=entry, memo_learned=memo_learned)


def record_expense(
    db: Session,
    *,
    collected_by: Optional[int],
    gl_code: Optional[str],
    amount: Any,
    expense_date: Optional[date],
    payment_method: Optional[str],
    as_of: date,
    receipt_number: Optional[str] = None,
    memo: Optional[str] = None,
) -> LedgerEntry:
    """Record a standalone expense ledger entry."""
    if collected_by is None:
        raise ValidationError("collected_by is required", field="collected_by")
    if not gl_code:
        raise ValidationError("gl_code is required", field="gl_code")
    amount = to_amount(amount)
    if expense_date is None:
        raise ValidationError("expense_date is required", field="expense_date")
    if expense_date > as_of:
        raise ValidationError("expense_date cannot be in the future", field="expense_date")
    method = (payment_method or "").lower()
    if method not in EXPENSE_PAYMENT_METHODS:
        raise ValidationError('payment_method must be either "cash" or "check"', field="payment_method")

    category = (
        db.query(ExpenseCategory)
        .filter(ExpenseCategory.gl_code == gl_code.upper(), ExpenseCategory.is_active.is_(True))
        .first()
    )
    if category is None:
        raise ValidationError(f"Invalid or inactive GL code: {gl_code}", field="gl_code")

    entry = LedgerEntry(
        type="expense",
        category=category.gl_code,
        amount=amount,
        entry_date=expense_date,
        payment_method=method,
        receipt_number=receipt_number or None,
        memo=memo or f"{category.name} expense",
        collected_by=collected_by,
        source_system=LedgerSource.MANUAL.value,
    )
    db.add(entry)
    db.commit()
    logger.info(f"Recorded expense {entry.id}: {amount} to {category.gl_code}")
    return entry


def find_transactions_missing_ledger(db: Session) -> list[Transaction]:
    """Succeeded transactions with no ledger entry."""
    return (
        db.query(Transaction)
        .outerjoin(LedgerEntry, LedgerEntry.transaction_id == Transaction.id)
        .filter(LedgerEntry.id.is_(None))
        .filter(Transaction.status == TransactionStatus.SUCCEEDED.value)
        .order_by(Transaction.id)
        .all()
    )


def _mark_outbox_done(row: LedgerOutbox) -> None:
    row.status = "done"
    row.last_error = None
    row.resolved_at = datetime.utcnow()


def _resolve_outbox(db: Session, transaction_id: int) -> bool:
    row = db.query(LedgerOutbox).filter(LedgerOutbox.transaction_id == transaction_id).first()
    if row is None or row.status == "done":
        return False
    _mark_outbox_done(row)
    return True


def backfill_ledger_entries(db: Session, dry_run: bool = False) -> dict:
    """
    Create the missing ledger entry for every succeeded transaction.

    Idempotent: transactions that already have an entry are never touched,
    so a second run creates nothing. Outbox rows are marked done as their
    transactions get posted.
    """
    candidates = find_transactions_missing_ledger(db)
    result = {
        "candidates": len(candidates),
        "created": 0,
        "skipped": 0,
        "failed": 0,
        "outbox_resolved": 0,
        "dry_run": dry_run,
    }
    if dry_run:
        return result

    for txn in candidates:
        transaction_id = txn.id
        try:
            gl = resolve_gl_code(db, txn.payment_type)
            build_ledger_entry(
                db,
                txn,
                LedgerSource.BACKFILL.value,
                memo=f"{gl.gl_code} - Backfilled from transaction {transaction_id}",
            )
            resolved = _resolve_outbox(db, transaction_id)
            db.commit()
            result["created"] += 1
            result["outbox_resolved"] += int(resolved)
        except IntegrityError:
            # Posted concurrently since the scan
            db.rollback()
            result["skipped"] += 1
        except Exception as e:
            db.rollback()
            logger.error(f"Backfill failed for transaction {transaction_id}: {e}", exc_info=True)
            queue_ledger_retry(db, transaction_id, str(e))
            result["failed"] += 1

    # Outbox rows whose transaction got an entry some other way
    stale = (
        db.query(LedgerOutbox)
        .join(LedgerEntry, LedgerEntry.transaction_id == LedgerOutbox.transaction_id)
        .filter(LedgerOutbox.status == "pending")
        .all()
    )
    for row in stale:
        _mark_outbox_done(row)
    db.commit()
    result["outbox_resolved"] += len(stale)

    logger.info(
        f"Ledger backfill: {result['created']} created, {result['skipped']} skipped, "
        f"{result['failed']} failed of {result['candidates']} candidates"
    )
    return result


def list_transactions(
    db: Session,
    member_id: Optional[int] = None,
    payment_type: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Transaction], int]:
    query = db.query(Transaction)
    if member_id is not None:
        query = query.filter(Transaction.member_id == member_id)
    if payment_type:
        query = query.filter(Transaction.payment_type == payment_type)
    if start_date:
        query = query.filter(Transaction.payment_date >= start_date)
    if end_date:
        query = query.filter(Transaction.payment_date <= end_date)
    total = query.count()
    rows = (
        query.order_by(Transaction.payment_date.desc(), Transaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def list_ledger_entries(
    db: Session,
    entry_type: Optional[str] = None,
    category: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[LedgerEntry], int]:
    query = db.query(LedgerEntry)
    if entry_type:
        query = query.filter(LedgerEntry.type == entry_type)
    if category:
        query = query.filter(LedgerEntry.category == category.upper())
    if start_date:
        query = query.filter(LedgerEntry.entry_date >= start_date)
    if end_date:
        query = query.filter(LedgerEntry.entry_date <= end_date)
    total = query.count()
    rows = (
        query.order_by(LedgerEntry.entry_date.desc(), LedgerEntry.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def seed_categories(db: Session, income: list[dict], expense: list[dict]) -> dict:
    """Insert missing income/expense categories. Existing GL codes are left alone."""
    created = {"income": 0, "expense": 0}
    existing_income = {c for (c,) in db.query(IncomeCategory.gl_code).all()}
    for row in income:
        if row["gl_code"] not in existing_income:
            db.add(IncomeCategory(**row))
            created["income"] += 1
    existing_expense = {c for (c,) in db.query(ExpenseCategory.gl_code).all()}
    for row in expense:
        if row["gl_code"] not in existing_expense:
            db.add(ExpenseCategory(**row))
            created["expense"] += 1
    db.commit()
    return created


def transaction_to_dict(txn: Transaction) -> dict:
    return {
        "id": txn.id,
        "member_id": txn.member_id,
        "collected_by": txn.collected_by,
        "payment_date": txn.payment_date.isoformat() if txn.payment_date else None,
        "amount": float(txn.amount) if txn.amount is not None else None,
        "payment_type": txn.payment_type,
        "payment_method": txn.payment_method,
        "status": txn.status,
        "receipt_number": txn.receipt_number,
        "note": txn.note,
        "external_id": txn.external_id,
        "for_year": txn.for_year,
        "donation_id": txn.donation_id,
        "income_category_id": txn.income_category_id,
    }


def ledger_entry_to_dict(entry: LedgerEntry) -> dict:
    return {
        "id": entry.id,
        "type": entry.type,
        "category": entry.category,
        "amount": float(entry.amount) if entry.amount is not None else None,
        "entry_date": entry.entry_date.isoformat() if entry.entry_date else None,
        "member_id": entry.member_id,
        "collected_by": entry.collected_by,
        "payment_method": entry.payment_method,
        "memo": entry.memo,
        "receipt_number": entry.receipt_number,
        "transaction_id": entry.transaction_id,
        "source_system": entry.source_system,
    }
