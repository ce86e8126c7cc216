"""
Dues services: load a household from the database and run the dues engine.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from parish_ledger.core.auth import CurrentUser
from parish_ledger.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from parish_ledger.core.timezone import today_parish
from parish_ledger.modules.dues.engine import DuesBreakdown, compute_dues, effective_family_id
from parish_ledger.modules.finance.models import Transaction
from parish_ledger.modules.members.models import Member

logger = logging.getLogger(__name__)


def load_household(db: Session, member_id: int) -> tuple[Member, list[Member]]:
    """The member and everyone sharing its effective family id."""
    member = db.get(Member, member_id)
    if member is None:
        raise NotFoundError(f"Member {member_id} not found", field="member_id")

    family_id = effective_family_id(member)
    members = (
        db.query(Member)
        .filter(or_(Member.family_id == family_id, Member.id == family_id))
        .order_by(Member.id)
        .all()
    )
    if member not in members:
        members.append(member)
    return member, members


def check_household_access(viewer: CurrentUser, household: list[Member]) -> None:
    """Staff see every household; members only their own."""
    if viewer.is_staff:
        return
    if viewer.member_id in {m.id for m in household}:
        return
    raise PermissionDeniedError("You can only view dues for your own household")


def get_household_dues(
    db: Session,
    member_id: int,
    year: Optional[int] = None,
    as_of: Optional[date] = None,
    viewer: Optional[CurrentUser] = None,
) -> DuesBreakdown:
    """
    Dues breakdown for ``member_id``'s household.

    ``as_of`` defaults to today in the parish timezone and ``year`` to the
    year of ``as_of``. When ``viewer`` is given the household access rule is
    enforced before anything is computed.
    """
    as_of = as_of or today_parish()
    year = year or as_of.year
    if not 1900 <= year <= 2200:
        raise ValidationError("year is out of range", field="year")

    _, household = load_household(db, member_id)
    if viewer is not None:
        check_household_access(viewer, household)

    member_ids = [m.id for m in household]
    transactions = (
        db.query(Transaction)
        .filter(Transaction.member_id.in_(member_ids))
        .order_by(Transaction.payment_date, Transaction.id)
        .all()
    )

    breakdown = compute_dues(household, transactions, year, as_of)
    logger.debug(
        f"Dues for household {breakdown.household.family_id} year {year}: "
        f"due {breakdown.total_amount_due}, collected {breakdown.dues_collected}"
    )
    return breakdown
