"""
Bank transaction reconciliation.

Turns a PENDING bank row into a recorded payment (or links it to one that
was entered by hand), or marks it IGNORED. Each bank row can be processed
exactly once: the row is claimed with a conditional UPDATE (status must
still be PENDING) in the same database transaction that writes the payment,
and the payment's external_id is the bank row's hash, which is unique.

After that commit, and independent of it:
- the ledger entry is posted (queued for backfill on failure)
- the description is learned as a memo alias for the member
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from parish_ledger.core.errors import ConflictError, LedgerError, NotFoundError, ValidationError
from parish_ledger.modules.bank.models import BankTransaction, BankTransactionStatus
from parish_ledger.modules.finance.gl_mapping import resolve_gl_code
from parish_ledger.modules.finance.models import (
    LedgerEntry,
    LedgerSource,
    PaymentMethod,
    RECEIPT_REQUIRED_METHODS,
    Transaction,
    TransactionStatus,
)
from parish_ledger.modules.finance.services import (
    find_transaction_by_external_id,
    ledger_entry_to_dict,
    post_ledger_entry,
    transaction_to_dict,
    validate_payment_fields,
)
from parish_ledger.modules.members.models import Member
from parish_ledger.modules.members.services import learn_memo

logger = logging.getLogger(__name__)


class ReconcileAction(str, Enum):
    MATCH = "MATCH"
    IGNORE = "IGNORE"


@dataclass
class ReconciliationResult:
    bank_transaction: BankTransaction
    action: str
    transaction: Optional[Transaction] = None
    ledger_entry: Optional[LedgerEntry] = None
    linked: bool = False
    memo_learned: bool = False

    def to_dict(self) -> dict:
        bank = self.bank_transaction
        return {
            "action": self.action,
            "linked": self.linked,
            "bank_transaction": {
                "id": bank.id,
                "transaction_hash": bank.transaction_hash,
                "status": bank.status,
                "member_id": bank.member_id,
            },
            "transaction": transaction_to_dict(self.transaction) if self.transaction else None,
            "ledger_entry": ledger_entry_to_dict(self.ledger_entry) if self.ledger_entry else None,
            "ledger_posted": self.ledger_entry is not None,
            "memo_learned": self.memo_learned,
        }


def infer_payment_method(bank_type: Optional[str]) -> str:
    upper = (bank_type or "").upper()
    if "ZELLE" in upper:
        return PaymentMethod.ZELLE.value
    if "CHECK" in upper:
        return PaymentMethod.CHECK.value
    return PaymentMethod.ACH.value


def _claim_bank_row(db: Session, bank_txn_id: int, status: BankTransactionStatus, member_id: Optional[int]) -> bool:
    """Move a PENDING row to ``status``. False if someone processed it first."""
    result = db.execute(
        update(BankTransaction)
        .where(
            BankTransaction.id == bank_txn_id,
            BankTransaction.status == BankTransactionStatus.PENDING.value,
        )
        .values(status=status.value, member_id=member_id, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _already_processed(bank_txn: BankTransaction) -> ConflictError:
    return ConflictError(f"Bank transaction {bank_txn.id} is already {bank_txn.status}")


def reconcile_bank_transaction(
    db: Session,
    bank_transaction_id: int,
    *,
    collected_by: Optional[int],
    member_id: Optional[int] = None,
    existing_transaction_id: Optional[int] = None,
    payment_type: str = "donation",
    for_year: Optional[int] = None,
    action: str = ReconcileAction.MATCH.value,
) -> ReconciliationResult:
    """
    Reconcile one bank row.

    Raises NotFoundError, ValidationError, or ConflictError (row already
    MATCHED/IGNORED, or its hash already recorded as a payment). Nothing is
    written when it raises.
    """
    bank_txn = db.get(BankTransaction, bank_transaction_id)
    if bank_txn is None:
        raise NotFoundError(f"Bank transaction {bank_transaction_id} not found", field="transaction_id")
    if bank_txn.is_processed:
        raise _already_processed(bank_txn)

    action = (action or ReconcileAction.MATCH.value).upper()
    if action not in {a.value for a in ReconcileAction}:
        raise ValidationError(f"Invalid action '{action}'", field="action")

    if action == ReconcileAction.IGNORE.value:
        if not _claim_bank_row(db, bank_txn.id, BankTransactionStatus.IGNORED, bank_txn.member_id):
            db.rollback()
            db.refresh(bank_txn)
            raise _already_processed(bank_txn)
        db.commit()
        logger.info(f"Bank transaction {bank_txn.id} ignored")
        return ReconciliationResult(bank_transaction=bank_txn, action=action)

    if member_id is None and existing_transaction_id is None:
        raise ValidationError("member_id or existing_transaction_id is required", field="member_id")
    if collected_by is None:
        raise ValidationError("collected_by is required", field="collected_by")

    if existing_transaction_id is not None:
        return _link_existing(db, bank_txn, existing_transaction_id, member_id)
    return _create_from_bank_row(db, bank_txn, member_id, collected_by, payment_type, for_year)


def _link_existing(
    db: Session,
    bank_txn: BankTransaction,
    existing_transaction_id: int,
    member_id: Optional[int],
) -> ReconciliationResult:
    """The payment was already entered by hand; tie the bank row to it."""
    existing = db.get(Transaction, existing_transaction_id)
    if existing is None:
        raise NotFoundError(
            f"Transaction {existing_transaction_id} not found", field="existing_transaction_id"
        )
    if existing.external_id and existing.external_id != bank_txn.transaction_hash:
        raise ConflictError(
            f"Transaction {existing.id} is already linked to another payment reference",
            code="already_exists",
        )
    other = find_transaction_by_external_id(db, bank_txn.transaction_hash)
    if other is not None and other.id != existing.id:
        raise ConflictError(
            f"Bank transaction {bank_txn.id} is already recorded as transaction {other.id}",
            code="already_exists",
        )

    member = None
    resolved_member_id = existing.member_id or member_id
    if resolved_member_id is not None:
        member = db.get(Member, resolved_member_id)
        if member is None:
            raise NotFoundError(f"Member {resolved_member_id} not found", field="member_id")

    if not _claim_bank_row(db, bank_txn.id, BankTransactionStatus.MATCHED, resolved_member_id):
        db.rollback()
        db.refresh(bank_txn)
        raise _already_processed(bank_txn)

    existing.external_id = bank_txn.transaction_hash
    existing.status = TransactionStatus.SUCCEEDED.value
    if existing.member_id is None and member is not None:
        existing.member_id = member.id
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(
            f"Bank transaction {bank_txn.id} is already recorded", code="already_exists"
        )

    logger.info(f"Bank transaction {bank_txn.id} linked to existing transaction {existing.id}")

    memo_learned = False
    if member is not None:
        memo_learned = learn_memo(db, bank_txn.description, member)

    return ReconciliationResult(
        bank_transaction=bank_txn,
        action=ReconcileAction.MATCH.value,
        transaction=existing,
        linked=True,
        memo_learned=memo_learned,
    )


def _create_from_bank_row(
    db: Session,
    bank_txn: BankTransaction,
    member_id: int,
    collected_by: int,
    payment_type: str,
    for_year: Optional[int],
) -> ReconciliationResult:
    member = db.get(Member, member_id)
    if member is None:
        raise NotFoundError(f"Member {member_id} not found", field="member_id")

    payment_method = infer_payment_method(bank_txn.type)
    receipt_number = bank_txn.check_number
    if payment_method in RECEIPT_REQUIRED_METHODS and not receipt_number:
        receipt_number = f"BANK-{bank_txn.id}"
    validate_payment_fields(payment_type, payment_method, receipt_number, for_year)

    amount = abs(bank_txn.amount)
    if amount == 0:
        raise ValidationError("Bank transaction amount is zero", field="amount")

    if find_transaction_by_external_id(db, bank_txn.transaction_hash) is not None:
        raise ConflictError(
            f"Bank transaction {bank_txn.id} is already recorded as a payment", code="already_exists"
        )

    # Unmapped payment types fail here, before anything is written
    gl = resolve_gl_code(db, payment_type)

    if not _claim_bank_row(db, bank_txn.id, BankTransactionStatus.MATCHED, member.id):
        db.rollback()
        db.refresh(bank_txn)
        raise _already_processed(bank_txn)

    txn = Transaction(
        member_id=member.id,
        collected_by=collected_by,
        payment_date=bank_txn.date,
        amount=amount,
        payment_type=payment_type,
        payment_method=payment_method,
        status=TransactionStatus.SUCCEEDED.value,
        receipt_number=receipt_number,
        note=bank_txn.description,
        external_id=bank_txn.transaction_hash,
        for_year=for_year or bank_txn.date.year,
        income_category_id=gl.income_category_id,
    )
    db.add(txn)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(
            f"Bank transaction {bank_txn.id} is already recorded as a payment", code="already_exists"
        )

    logger.info(
        f"Bank transaction {bank_txn.id} reconciled as {payment_type} transaction {txn.id} "
        f"for member {member.id}"
    )

    entry = post_ledger_entry(
        db,
        txn,
        LedgerSource.BANK_CSV.value,
        memo=f"{gl.gl_code} - Bank reconciliation match {bank_txn.transaction_hash[:12]}",
    )
    memo_learned = learn_memo(db, bank_txn.description, member)

    return ReconciliationResult(
        bank_transaction=bank_txn,
        action=ReconcileAction.MATCH.value,
        transaction=txn,
        ledger_entry=entry,
        memo_learned=memo_learned,
    )


def reconcile_bulk(
    db: Session,
    bank_transaction_ids: list[int],
    *,
    collected_by: Optional[int],
    member_id: Optional[int] = None,
    payment_type: str = "donation",
    for_year: Optional[int] = None,
    action: str = ReconcileAction.MATCH.value,
) -> dict:
    """
    Reconcile several bank rows to the same member, one at a time.

    Each row commits on its own; a failure is reported for that row and the
    loop moves on. Earlier successes are not rolled back.
    """
    success = []
    errors = []

    for bank_id in bank_transaction_ids:
        try:
            reconcile_bank_transaction(
                db,
                bank_id,
                collected_by=collected_by,
                member_id=member_id,
                payment_type=payment_type,
                for_year=for_year,
                action=action,
            )
            success.append(bank_id)
        except LedgerError as e:
            db.rollback()
            errors.append({"transaction_id": bank_id, "message": e.message, "code": e.code})
        except Exception as e:
            db.rollback()
            logger.error(f"Bulk reconciliation failed for bank transaction {bank_id}: {e}", exc_info=True)
            errors.append({"transaction_id": bank_id, "message": str(e), "code": "error"})

    total = len(bank_transaction_ids)
    return {
        "message": f"Processed {total} items. Success: {len(success)}, Errors: {len(errors)}",
        "success": success,
        "errors": errors,
    }
