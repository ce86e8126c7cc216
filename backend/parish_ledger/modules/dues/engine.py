"""
Membership dues computation.

Pure functions: callers pass the household's members, its transactions, the
requested year and the ``as_of`` date. Nothing here reads the clock or the
database, so results are reproducible for any point in time.

Dues model:
- The head of household's yearly pledge is the household's obligation.
- Dues for a year = pledge * months_required / 12 (pro-rated in the join
  year, zero before it).
- membership_due payments count toward ``for_year`` if set, else the year
  they were paid.
- Surplus in a year rolls forward to the next; a shortfall does not.
- Within the requested year, payments plus rollover fill months January
  onward, one monthly obligation at a time.
"""

from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from parish_ledger.core.errors import AmbiguousHouseholdError


CENT = Decimal("0.01")
ZERO = Decimal("0.00")

MEMBERSHIP_DUE = "membership_due"
# Statuses that never count as money received
EXCLUDED_STATUSES = {"pending", "failed", "canceled"}

MONTH_NAMES = [
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
]

# Month statuses
PAID = "paid"
DUE = "due"
UPCOMING = "upcoming"
PRE_MEMBERSHIP = "pre-membership"
NO_PAYMENT = "no-payment"

OTHER_CONTRIBUTION_BUCKETS = {
    "donation": "donation",
    "vow": "pledge_payment",
    "tithe": "tithe",
    "offering": "offering",
}


def _money(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class MonthStatus:
    month: str
    month_index: int
    status: str
    amount_due: Decimal
    amount_paid: Decimal


@dataclass
class OtherContributions:
    donation: Decimal = ZERO
    pledge_payment: Decimal = ZERO
    tithe: Decimal = ZERO
    offering: Decimal = ZERO
    other: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.donation + self.pledge_payment + self.tithe + self.offering + self.other


@dataclass
class HouseholdInfo:
    family_id: int
    head_of_household_id: int
    head_of_household_name: str
    member_ids: list[int]
    member_names: list[str]

    @property
    def total_members(self) -> int:
        return len(self.member_ids)

    @property
    def is_household_view(self) -> bool:
        return self.total_members > 1


@dataclass
class DuesBreakdown:
    year: int
    as_of: date
    has_pledge: bool
    annual_pledge: Decimal
    monthly_payment: Decimal
    months_required: int
    total_amount_due: Decimal
    dues_paid_in_year: Decimal
    rollover_amount: Decimal
    dues_collected: Decimal  # paid in year + rollover
    outstanding_dues: Decimal
    rollover_out: Decimal
    dues_progress: int
    month_statuses: list[MonthStatus]
    other_contributions: OtherContributions
    household: HouseholdInfo
    transactions: list[dict] = field(default_factory=list)

    @property
    def balance_due(self) -> Decimal:
        return self.outstanding_dues

    @property
    def total_other_contributions(self) -> Decimal:
        return self.other_contributions.total

    @property
    def grand_total(self) -> Decimal:
        return self.dues_collected + self.total_other_contributions

    @property
    def future_dues(self) -> Decimal:
        """Obligation for months still upcoming and not yet covered."""
        return sum(
            (m.amount_due - m.amount_paid for m in self.month_statuses if m.status == UPCOMING),
            ZERO,
        )

    def to_dict(self) -> dict:
        def num(value: Decimal) -> float:
            return float(value)

        other = asdict(self.other_contributions)
        return {
            "year": self.year,
            "as_of": self.as_of.isoformat(),
            "has_pledge": self.has_pledge,
            "annual_pledge": num(self.annual_pledge),
            "monthly_payment": num(self.monthly_payment),
            "months_required": self.months_required,
            "total_amount_due": num(self.total_amount_due),
            "dues_paid_in_year": num(self.dues_paid_in_year),
            "rollover_amount": num(self.rollover_amount),
            "dues_collected": num(self.dues_collected),
            "outstanding_dues": num(self.outstanding_dues),
            "balance_due": num(self.balance_due),
            "future_dues": num(self.future_dues),
            "rollover_out": num(self.rollover_out),
            "dues_progress": self.dues_progress,
            "month_statuses": [
                {
                    "month": m.month,
                    "month_index": m.month_index,
                    "status": m.status,
                    "amount_due": num(m.amount_due),
                    "amount_paid": num(m.amount_paid),
                }
                for m in self.month_statuses
            ],
            "other_contributions": {k: num(v) for k, v in other.items()},
            "total_other_contributions": num(self.total_other_contributions),
            "grand_total": num(self.grand_total),
            "household": {
                "family_id": self.household.family_id,
                "is_household_view": self.household.is_household_view,
                "head_of_household": {
                    "id": self.household.head_of_household_id,
                    "name": self.household.head_of_household_name,
                },
                "member_ids": self.household.member_ids,
                "member_names": self.household.member_names,
                "total_members": self.household.total_members,
            },
            "transactions": self.transactions,
        }


# =============================================================================
# Household
# =============================================================================

def effective_family_id(member) -> int:
    return member.family_id or member.id


def resolve_head_of_household(members: list):
    """
    Pick the member whose pledge the household's dues are computed against.

    1. The member flagged ``is_head_of_household`` (more than one is an error)
    2. The member whose family_id is null or points at itself
    3. The member with the highest yearly pledge (a tie is an error)
    """
    if not members:
        raise AmbiguousHouseholdError("Household has no members")

    flagged = [m for m in members if getattr(m, "is_head_of_household", False)]
    if len(flagged) > 1:
        raise AmbiguousHouseholdError(
            f"Household has {len(flagged)} members flagged as head of household"
        )
    if flagged:
        return flagged[0]

    canonical = [m for m in members if m.family_id is None or m.family_id == m.id]
    if len(canonical) == 1:
        return canonical[0]

    top = max(_money(m.yearly_pledge) for m in members)
    leaders = [m for m in members if _money(m.yearly_pledge) == top]
    if len(leaders) > 1:
        raise AmbiguousHouseholdError(
            "Household has no head of household and several members share the highest pledge"
        )
    return leaders[0]


# =============================================================================
# Yearly obligation and rollover
# =============================================================================

def months_required(join_date: Optional[date], year: int) -> int:
    if join_date is None or year > join_date.year:
        return 12
    if year < join_date.year:
        return 0
    return 12 - (join_date.month - 1)


def yearly_dues(pledge: Decimal, join_date: Optional[date], year: int) -> Decimal:
    return (pledge * months_required(join_date, year) / 12).quantize(CENT, rounding=ROUND_HALF_UP)


def _counts(txn) -> bool:
    return (txn.status or "succeeded") not in EXCLUDED_STATUSES


def allocate_dues_payments(transactions: Iterable) -> dict[int, Decimal]:
    """Sum of membership_due payments per accrual year."""
    paid: dict[int, Decimal] = {}
    for txn in transactions:
        if txn.payment_type != MEMBERSHIP_DUE or not _counts(txn):
            continue
        year = txn.for_year or txn.payment_date.year
        paid[year] = paid.get(year, ZERO) + _money(txn.amount)
    return paid


def compute_rollover(
    pledge: Decimal,
    join_date: Optional[date],
    paid_by_year: dict[int, Decimal],
    year: int,
) -> Decimal:
    """Surplus carried into ``year`` from every earlier year."""
    start_candidates = list(paid_by_year)
    if join_date is not None:
        start_candidates.append(join_date.year)
    if not start_candidates:
        return ZERO

    rollover = ZERO
    for y in range(min(start_candidates), year):
        available = paid_by_year.get(y, ZERO) + rollover
        due = yearly_dues(pledge, join_date, y)
        rollover = available - due if available > due else ZERO
    return rollover


def _is_pre_membership(join_date: Optional[date], year: int, month_index: int) -> bool:
    if join_date is None:
        return False
    return year < join_date.year or (year == join_date.year and month_index < join_date.month - 1)


def _last_elapsed_month(year: int, as_of: date) -> int:
    """Index of the last month that has started as of ``as_of`` (-1 if none)."""
    if year < as_of.year:
        return 11
    if year > as_of.year:
        return -1
    return as_of.month - 1


# =============================================================================
# Month statuses
# =============================================================================

def waterfall_months(
    pledge: Decimal,
    join_date: Optional[date],
    year: int,
    pool: Decimal,
    as_of: date,
) -> list[MonthStatus]:
    monthly = (pledge / 12).quantize(CENT, rounding=ROUND_HALF_UP)
    # December absorbs the rounding so the months sum to yearly_dues()
    required = months_required(join_date, year)
    december = yearly_dues(pledge, join_date, year) - monthly * (required - 1) if required else monthly
    last_elapsed = _last_elapsed_month(year, as_of)
    remaining = pool
    months = []

    for i, name in enumerate(MONTH_NAMES):
        if _is_pre_membership(join_date, year, i):
            months.append(MonthStatus(name, i, PRE_MEMBERSHIP, ZERO, ZERO))
            continue

        amount_due = december if i == 11 else monthly
        applied = min(remaining, amount_due) if remaining > 0 else ZERO
        remaining -= applied
        if applied >= amount_due:
            status = PAID
        elif i <= last_elapsed:
            status = DUE
        else:
            status = UPCOMING
        months.append(MonthStatus(name, i, status, amount_due, applied))

    return months


def calendar_months(
    transactions: Iterable,
    join_date: Optional[date],
    year: int,
    as_of: date,
) -> list[MonthStatus]:
    """No-pledge households: status from what was actually paid each month."""
    sums = [ZERO] * 12
    for txn in transactions:
        if txn.payment_type != MEMBERSHIP_DUE or not _counts(txn):
            continue
        if txn.payment_date.year == year:
            sums[txn.payment_date.month - 1] += _money(txn.amount)

    last_elapsed = _last_elapsed_month(year, as_of)
    months = []
    for i, name in enumerate(MONTH_NAMES):
        if _is_pre_membership(join_date, year, i):
            status = PRE_MEMBERSHIP
        elif sums[i] > 0:
            status = PAID
        elif i > last_elapsed:
            status = UPCOMING
        else:
            status = NO_PAYMENT
        months.append(MonthStatus(name, i, status, ZERO, sums[i]))
    return months


# =============================================================================
# Other contributions
# =============================================================================

def bucket_other_contributions(transactions: Iterable, year: int) -> OtherContributions:
    """Non-dues giving paid during ``year``, bucketed by payment type."""
    buckets = OtherContributions()
    for txn in transactions:
        if txn.payment_type == MEMBERSHIP_DUE or not _counts(txn):
            continue
        if txn.payment_date.year != year:
            continue
        name = OTHER_CONTRIBUTION_BUCKETS.get(txn.payment_type, "other")
        setattr(buckets, name, getattr(buckets, name) + _money(txn.amount))
    return buckets


def _transaction_summary(txn) -> dict:
    return {
        "id": txn.id,
        "member_id": txn.member_id,
        "payment_date": txn.payment_date.isoformat(),
        "amount": float(_money(txn.amount)),
        "payment_type": txn.payment_type,
        "payment_method": txn.payment_method,
        "status": txn.status,
        "for_year": txn.for_year,
    }


# =============================================================================
# Entry point
# =============================================================================

def compute_dues(
    household_members: list,
    transactions: list,
    year: int,
    as_of: date,
) -> DuesBreakdown:
    """
    Full dues breakdown for a household and year.

    ``transactions`` must contain every transaction of every household
    member across all years, since rollover looks at prior years.
    """
    head = resolve_head_of_household(household_members)
    pledge = _money(head.yearly_pledge)
    join_date = head.date_joined_parish
    has_pledge = pledge > 0

    paid_by_year = allocate_dues_payments(transactions)
    paid_in_year = paid_by_year.get(year, ZERO)

    if has_pledge:
        total_due = yearly_dues(pledge, join_date, year)
        rollover_in = compute_rollover(pledge, join_date, paid_by_year, year)
        pool = paid_in_year + rollover_in
        month_statuses = waterfall_months(pledge, join_date, year, pool, as_of)
        outstanding = max(total_due - pool, ZERO)
        rollover_out = max(pool - total_due, ZERO)
        progress = 0
        if total_due > 0:
            ratio = min(Decimal(100), pool / total_due * 100)
            progress = int(ratio.to_integral_value(rounding=ROUND_HALF_UP))
        monthly = (pledge / 12).quantize(CENT, rounding=ROUND_HALF_UP)
    else:
        total_due = ZERO
        rollover_in = ZERO
        # Cash basis: totals come from the same calendar sums as the month rows, for_year is ignored
        month_statuses = calendar_months(transactions, join_date, year, as_of)
        paid_in_year = sum((m.amount_paid for m in month_statuses), ZERO)
        pool = paid_in_year
        outstanding = ZERO
        rollover_out = ZERO
        progress = 0
        monthly = ZERO

    family_id = effective_family_id(head)
    ordered = sorted(household_members, key=lambda m: (m.id != head.id, m.id))
    household = HouseholdInfo(
        family_id=family_id,
        head_of_household_id=head.id,
        head_of_household_name=f"{head.first_name} {head.last_name}".strip(),
        member_ids=[m.id for m in ordered],
        member_names=[f"{m.first_name} {m.last_name}".strip() for m in ordered],
    )

    in_year = sorted(
        (t for t in transactions if t.payment_date.year == year),
        key=lambda t: (t.payment_date, t.id or 0),
    )

    return DuesBreakdown(
        year=year,
        as_of=as_of,
        has_pledge=has_pledge,
        annual_pledge=pledge,
        monthly_payment=monthly,
        months_required=months_required(join_date, year),
        total_amount_due=total_due,
        dues_paid_in_year=paid_in_year,
        rollover_amount=rollover_in,
        dues_collected=pool,
        outstanding_dues=outstanding,
        rollover_out=rollover_out,
        dues_progress=progress,
        month_statuses=month_statuses,
        other_contributions=bucket_other_contributions(transactions, year),
        household=household,
        transactions=[_transaction_summary(t) for t in in_year],
    )
