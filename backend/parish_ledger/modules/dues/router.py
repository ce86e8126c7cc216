"""
Membership dues API routes.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from parish_ledger.core.auth import CurrentUser, get_current_user
from parish_ledger.core.database import get_db
from parish_ledger.core.errors import LedgerError, raise_http_error
from parish_ledger.modules.dues.services import get_household_dues

router = APIRouter()


@router.get("/me")
async def get_my_dues(
    year: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Dues for the caller's own household."""
    try:
        breakdown = get_household_dues(db, user.member_id, year=year, viewer=user)
    except LedgerError as e:
        raise_http_error(e)
    return {"success": True, "data": breakdown.to_dict()}


@router.get("/{member_id}")
async def get_member_dues(
    member_id: int,
    year: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """
    Dues for a member's household.
    Staff may view any household; members only their own.
    """
    try:
        breakdown = get_household_dues(db, member_id, year=year, viewer=user)
    except LedgerError as e:
        raise_http_error(e)
    return {"success": True, "data": breakdown.to_dict()}
