"""
Match suggestions for pending bank transactions.

Read-only: nothing here writes to the database.

Suggestion priority (first hit wins):
1. LEARNED_MEMO - the normalized description was confirmed for a member before (high)
2. EXACT_NAME - payer name equals a member's "first last" or "last first" (medium)
3. FUZZY_NAME - every name token matches exactly one member (medium)
"""

import logging
import re
from dataclasses import asdict, dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from parish_ledger.core.config import settings
from parish_ledger.modules.bank.models import BankTransaction, BankTransactionStatus
from parish_ledger.modules.finance.models import Transaction
from parish_ledger.modules.members.models import Member
from parish_ledger.modules.members.services import (
    find_member_by_memo,
    find_members_by_exact_name,
    search_members_by_name_tokens,
)

logger = logging.getLogger(__name__)

ZELLE_NAME_PATTERN = re.compile(r'^.*?Zelle\s+(?:payment|transfer)\s+from\s+', re.IGNORECASE)
TRAILING_ID_PATTERN = re.compile(r'\s+\w*\d\w*$')


class MatchBasis(str, Enum):
    LEARNED_MEMO = "LEARNED_MEMO"
    EXACT_NAME = "EXACT_NAME"
    FUZZY_NAME = "FUZZY_NAME"


CONFIDENCE = {
    MatchBasis.LEARNED_MEMO: "high",
    MatchBasis.EXACT_NAME: "medium",
    MatchBasis.FUZZY_NAME: "medium",
}


@dataclass
class MatchSuggestion:
    member_id: int
    first_name: str
    last_name: str
    basis: MatchBasis
    confidence: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["basis"] = self.basis.value
        return data


def extract_payer_name(description: Optional[str]) -> Optional[str]:
    """
    Best-effort payer name from a description when the parser did not set
    one. Returns None rather than raising.
    """
    if not description:
        return None
    upper = description.upper()

    if "ZELLE" in upper:
        cleaned = ZELLE_NAME_PATTERN.sub("", description)
        cleaned = TRAILING_ID_PATTERN.sub("", cleaned).strip()
        if cleaned and cleaned != description.strip():
            return cleaned

    idx = upper.find("IND NAME:")
    if idx >= 0:
        raw = description[idx + len("IND NAME:"):].strip().split(" ")[0]
        if "," in raw:
            last, first = raw.split(",", 1)
            return f"{first.strip()} {last.strip()}".strip() or None
        return raw or None

    return None


def _suggestion(member_id: int, first_name: str, last_name: str, basis: MatchBasis) -> MatchSuggestion:
    return MatchSuggestion(
        member_id=member_id,
        first_name=first_name,
        last_name=last_name,
        basis=basis,
        confidence=CONFIDENCE[basis],
    )


def suggest_match(db: Session, bank_txn: BankTransaction) -> Optional[MatchSuggestion]:
    """Propose at most one member for a bank transaction."""
    memo_match = find_member_by_memo(db, bank_txn.description)
    if memo_match is not None:
        return _suggestion(
            memo_match.member_id, memo_match.first_name, memo_match.last_name, MatchBasis.LEARNED_MEMO
        )

    payer_name = bank_txn.payer_name or extract_payer_name(bank_txn.description)
    if not payer_name or payer_name.lower() == "unknown":
        return None

    exact = find_members_by_exact_name(db, payer_name)
    if len(exact) == 1:
        m = exact[0]
        return _suggestion(m.id, m.first_name, m.last_name, MatchBasis.EXACT_NAME)
    if len(exact) > 1:
        logger.debug(f"Payer name '{payer_name}' matches {len(exact)} members, no suggestion")
        return None

    candidates = search_members_by_name_tokens(db, payer_name)
    if len(candidates) == 1:
        m = candidates[0]
        return _suggestion(m.id, m.first_name, m.last_name, MatchBasis.FUZZY_NAME)

    return None


def find_potential_duplicates(
    db: Session,
    bank_txn: BankTransaction,
    window_days: Optional[int] = None,
) -> list[Transaction]:
    """
    Already-recorded transactions that look like the same payment: same
    absolute amount, payment date within the window, not already linked to
    this bank row.
    """
    if bank_txn.amount is None or bank_txn.date is None:
        return []
    window = timedelta(days=window_days if window_days is not None else settings.POTENTIAL_DUPLICATE_WINDOW_DAYS)

    query = (
        db.query(Transaction)
        .filter(Transaction.amount == abs(bank_txn.amount))
        .filter(Transaction.payment_date >= bank_txn.date - window)
        .filter(Transaction.payment_date <= bank_txn.date + window)
    )
    if bank_txn.transaction_hash:
        query = query.filter(
            (Transaction.external_id.is_(None)) | (Transaction.external_id != bank_txn.transaction_hash)
        )
    return query.order_by(Transaction.payment_date).all()


def compute_current_balance(db: Session) -> Optional[float]:
    """
    Latest statement balance plus every amount imported after it.
    None when no row has a balance yet.
    """
    anchor = (
        db.query(BankTransaction)
        .filter(BankTransaction.balance.isnot(None))
        .order_by(BankTransaction.date.desc(), BankTransaction.id.desc())
        .first()
    )
    if anchor is None:
        return None

    newer = (
        db.query(BankTransaction.amount)
        .filter(
            (BankTransaction.date > anchor.date)
            | ((BankTransaction.date == anchor.date) & (BankTransaction.id > anchor.id))
        )
        .all()
    )
    return float(anchor.balance + sum((amount for (amount,) in newer), 0))


def bank_transaction_to_dict(txn: BankTransaction, member: Optional[Member] = None) -> dict:
    data = {
        "id": txn.id,
        "transaction_hash": txn.transaction_hash,
        "date": txn.date.isoformat() if txn.date else None,
        "amount": float(txn.amount) if txn.amount is not None else None,
        "balance": float(txn.balance) if txn.balance is not None else None,
        "description": txn.description,
        "type": txn.type,
        "status": txn.status,
        "payer_name": txn.payer_name,
        "external_ref_id": txn.external_ref_id,
        "check_number": txn.check_number,
        "member_id": txn.member_id,
    }
    if member is not None:
        data["member"] = {
            "id": member.id,
            "first_name": member.first_name,
            "last_name": member.last_name,
            "phone_number": member.phone_number,
        }
    return data


def enrich_bank_transaction(db: Session, txn: BankTransaction, member: Optional[Member] = None) -> dict:
    """Serialize a row, attaching suggestions when it is still pending."""
    data = bank_transaction_to_dict(txn, member)
    if txn.status == BankTransactionStatus.PENDING.value:
        suggestion = suggest_match(db, txn)
        if suggestion is not None:
            data["suggested_match"] = suggestion.to_dict()
        duplicates = find_potential_duplicates(db, txn)
        if duplicates:
            data["potential_matches"] = [
                {
                    "id": t.id,
                    "member_id": t.member_id,
                    "amount": float(t.amount),
                    "payment_date": t.payment_date.isoformat(),
                    "payment_type": t.payment_type,
                    "payment_method": t.payment_method,
                }
                for t in duplicates
            ]
    return data


def list_bank_transactions(
    db: Session,
    status: Optional[str] = None,
    txn_type: Optional[str] = None,
    search: Optional[str] = None,
    start_date=None,
    end_date=None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    """Paginated bank transactions with suggestions for pending rows."""
    query = db.query(BankTransaction)
    if status:
        query = query.filter(BankTransaction.status == status.upper())
    if txn_type:
        query = query.filter(BankTransaction.type == txn_type.upper())
    if search:
        query = query.filter(BankTransaction.description.ilike(f"%{search}%"))
    if start_date:
        query = query.filter(BankTransaction.date >= start_date)
    if end_date:
        query = query.filter(BankTransaction.date <= end_date)

    total = query.count()
    rows = (
        query.order_by(BankTransaction.date.desc(), BankTransaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    member_ids = {r.member_id for r in rows if r.member_id}
    members = {}
    if member_ids:
        members = {m.id: m for m in db.query(Member).filter(Member.id.in_(member_ids)).all()}

    return {
        "transactions": [enrich_bank_transaction(db, r, members.get(r.member_id)) for r in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "pages": (total + limit - 1) // limit if limit else 0,
        "current_balance": compute_current_balance(db),
    }
