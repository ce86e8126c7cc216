"""
Finance API routes.
Payments (transactions), expenses and the general ledger.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from parish_ledger.core.auth import CurrentUser, require_staff
from parish_ledger.core.database import get_db
from parish_ledger.core.errors import LedgerError, raise_http_error
from parish_ledger.core.timezone import today_parish
from parish_ledger.modules.finance.gl_mapping import GL_MAPPING_VERSION
from parish_ledger.modules.finance.services import (
    backfill_ledger_entries,
    create_transaction,
    ledger_entry_to_dict,
    list_ledger_entries,
    list_transactions,
    record_expense,
    transaction_to_dict,
)

router = APIRouter()


class TransactionCreate(BaseModel):
    """Request body for recording a payment."""
    member_id: Optional[int] = None  # None for anonymous gifts
    amount: Decimal
    payment_date: date
    payment_type: str
    payment_method: str
    receipt_number: Optional[str] = None  # Required for cash and check
    note: Optional[str] = None
    external_id: Optional[str] = None
    for_year: Optional[int] = None
    donation_id: Optional[int] = None
    status: str = "succeeded"
    zelle_memo: Optional[str] = None  # Learned as a memo alias for member_id


class ExpenseCreate(BaseModel):
    """Request body for recording an expense."""
    gl_code: str
    amount: Decimal
    expense_date: date
    payment_method: str  # cash or check
    receipt_number: Optional[str] = None
    memo: Optional[str] = None


@router.post("/transactions")
async def add_transaction(
    payload: TransactionCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_staff),
):
    """Record a payment and post it to the ledger."""
    try:
        result = create_transaction(
            db,
            collected_by=user.member_id,
            source_system="zelle" if payload.zelle_memo else "manual",
            **payload.model_dump(),
        )
    except LedgerError as e:
        db.rollback()
        raise_http_error(e)

    return {
        "success": True,
        "transaction": transaction_to_dict(result.transaction),
        "ledger_entry": ledger_entry_to_dict(result.ledger_entry) if result.ledger_entry else None,
        "ledger_posted": result.ledger_entry is not None,
        "memo_learned": result.memo_learned,
    }


@router.get("/transactions")
async def get_transactions(
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_staff),
    member_id: Optional[int] = None,
    payment_type: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
):
    rows, total = list_transactions(db, member_id, payment_type, start_date, end_date, page, limit)
    return {
        "transactions": [transaction_to_dict(t) for t in rows],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.post("/ledger/expenses")
async def add_expense(
    payload: ExpenseCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_staff),
):
    """Record an expense against an expense GL code."""
    try:
        entry = record_expense(
            db,
            collected_by=user.member_id,
            as_of=today_parish(),
            **payload.model_dump(),
        )
    except LedgerError as e:
        db.rollback()
        raise_http_error(e)
    return {"success": True, "ledger_entry": ledger_entry_to_dict(entry)}


@router.get("/ledger/entries")
async def get_ledger_entries(
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_staff),
    type: Optional[str] = None,
    category: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
):
    rows, total = list_ledger_entries(db, type, category, start_date, end_date, page, limit)
    return {
        "entries": [ledger_entry_to_dict(e) for e in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "gl_mapping_version": GL_MAPPING_VERSION,
    }


@router.post("/ledger/backfill")
async def run_ledger_backfill(
    dry_run: bool = False,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_staff),
):
    """Create missing ledger entries for recorded payments. Safe to run repeatedly."""
    return {"success": True, **backfill_ledger_entries(db, dry_run=dry_run)}
