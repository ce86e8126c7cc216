"""
Bank transaction API routes.
Lists imported statement lines with match suggestions and reconciles them.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from parish_ledger.core.auth import CurrentUser, require_staff
from parish_ledger.core.database import get_db
from parish_ledger.core.errors import LedgerError, NotFoundError, raise_http_error
from parish_ledger.modules.bank.matching import enrich_bank_transaction, list_bank_transactions
from parish_ledger.modules.bank.models import BankTransaction
from parish_ledger.modules.bank.reconciliation import reconcile_bank_transaction, reconcile_bulk

router = APIRouter()


class ReconcileRequest(BaseModel):
    """Request body for reconciling one bank transaction."""
    transaction_id: int
    action: str = "MATCH"  # MATCH or IGNORE
    member_id: Optional[int] = None
    existing_transaction_id: Optional[int] = None
    payment_type: str = "donation"
    for_year: Optional[int] = None


class BulkReconcileRequest(BaseModel):
    """Request body for reconciling several bank transactions to one member."""
    transaction_ids: list[int] = Field(..., min_length=1)
    action: str = "MATCH"
    member_id: Optional[int] = None
    payment_type: str = "donation"
    for_year: Optional[int] = None


@router.get("/transactions")
async def get_bank_transactions(
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_staff),
    status: Optional[str] = None,
    type: Optional[str] = None,
    search: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
):
    """
    List imported bank transactions.

    PENDING rows carry ``suggested_match`` (probable member) and
    ``potential_matches`` (payments that may already be recorded).
    """
    return list_bank_transactions(
        db,
        status=status,
        txn_type=type,
        search=search,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )


@router.get("/transactions/{transaction_id}")
async def get_bank_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_staff),
):
    txn = db.get(BankTransaction, transaction_id)
    if txn is None:
        raise_http_error(NotFoundError(f"Bank transaction {transaction_id} not found", field="transaction_id"))
    return enrich_bank_transaction(db, txn)


@router.post("/reconcile")
async def reconcile(
    request: ReconcileRequest,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_staff),
):
    """Match a bank transaction to a member (new or existing payment) or ignore it."""
    try:
        result = reconcile_bank_transaction(
            db,
            request.transaction_id,
            collected_by=user.member_id,
            member_id=request.member_id,
            existing_transaction_id=request.existing_transaction_id,
            payment_type=request.payment_type,
            for_year=request.for_year,
            action=request.action,
        )
    except LedgerError as e:
        db.rollback()
        raise_http_error(e)

    return {"success": True, **result.to_dict()}


@router.post("/reconcile-bulk")
async def reconcile_many(
    request: BulkReconcileRequest,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_staff),
):
    """Reconcile several bank transactions. Reports success or failure per item."""
    return reconcile_bulk(
        db,
        request.transaction_ids,
        collected_by=user.member_id,
        member_id=request.member_id,
        payment_type=request.payment_type,
        for_year=request.for_year,
        action=request.action,
    )
