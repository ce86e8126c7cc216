"""
Dues engine tests.

The engine is a pure function of (household, transactions, year, as_of), so
these run without a database.

Run with: pytest tests/test_dues_engine.py -v
"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from parish_ledger.core.errors import AmbiguousHouseholdError
from parish_ledger.modules.dues.engine import (
    compute_dues,
    compute_rollover,
    months_required,
    resolve_head_of_household,
    yearly_dues,
)


# ================================================================
# HELPERS
# ================================================================

def member(id, pledge="1200.00", joined=date(2023, 3, 1), family_id=None, head=False,
           first_name="Test", last_name="Member"):
    return SimpleNamespace(
        id=id,
        family_id=family_id,
        is_head_of_household=head,
        yearly_pledge=Decimal(pledge) if pledge is not None else None,
        date_joined_parish=joined,
        first_name=first_name,
        last_name=last_name,
    )


_next_id = iter(range(1, 10_000))


def txn(amount, paid_on, payment_type="membership_due", for_year=None, status="succeeded", member_id=1):
    return SimpleNamespace(
        id=next(_next_id),
        member_id=member_id,
        amount=Decimal(str(amount)),
        payment_date=paid_on,
        payment_type=payment_type,
        payment_method="zelle",
        status=status,
        for_year=for_year,
    )


def statuses(breakdown) -> list[str]:
    return [m.status for m in breakdown.month_statuses]


# ================================================================
# YEARLY OBLIGATION
# ================================================================

class TestYearlyObligation:

    @pytest.mark.parametrize("joined,year,expected", [
        (date(2023, 3, 1), 2022, 0),
        (date(2023, 3, 1), 2023, 10),
        (date(2023, 3, 1), 2024, 12),
        (date(2023, 1, 15), 2023, 12),
        (date(2023, 12, 1), 2023, 1),
        (None, 2023, 12),
    ])
    def test_months_required(self, joined, year, expected):
        assert months_required(joined, year) == expected

    def test_prorated_join_year(self):
        assert yearly_dues(Decimal("1200"), date(2023, 3, 1), 2023) == Decimal("1000.00")
        assert yearly_dues(Decimal("1200"), date(2023, 3, 1), 2024) == Decimal("1200.00")


# ================================================================
# WATERFALL AND ROLLOVER
# ================================================================

class TestWaterfall:
    """Head joined 2023-03-01 with a 1200 yearly pledge (100 a month)."""

    def test_join_year_partial_payment(self):
        household = [member(1)]
        payments = [txn(700, date(2023, 6, 1), for_year=2023)]

        result = compute_dues(household, payments, 2023, as_of=date(2023, 12, 31))

        assert result.months_required == 10
        assert result.total_amount_due == Decimal("1000.00")
        assert result.dues_collected == Decimal("700.00")
        assert result.outstanding_dues == Decimal("300.00")
        assert result.rollover_out == Decimal("0.00")
        assert result.dues_progress == 70
        assert statuses(result) == ["pre-membership"] * 2 + ["paid"] * 7 + ["due"] * 3

    def test_shortfall_does_not_carry_forward(self):
        household = [member(1)]
        payments = [
            txn(700, date(2023, 6, 1), for_year=2023),
            txn(1200, date(2024, 2, 1), for_year=2024),
        ]

        result = compute_dues(household, payments, 2024, as_of=date(2024, 12, 31))

        assert result.rollover_amount == Decimal("0.00")
        assert result.total_amount_due == Decimal("1200.00")
        assert statuses(result) == ["paid"] * 12
        assert result.rollover_out == Decimal("0.00")
        assert result.outstanding_dues == Decimal("0.00")
        assert result.dues_progress == 100

    def test_surplus_rolls_into_next_year(self):
        household = [member(1)]
        payments = [
            txn(1200, date(2023, 4, 1), for_year=2023),
            txn(1000, date(2024, 3, 1), for_year=2024),
        ]

        result = compute_dues(household, payments, 2024, as_of=date(2024, 12, 31))

        assert result.rollover_amount == Decimal("200.00")
        assert result.dues_paid_in_year == Decimal("1000.00")
        assert result.dues_collected == Decimal("1200.00")
        assert statuses(result) == ["paid"] * 12
        assert "due" not in statuses(result)

    def test_due_versus_upcoming_depends_on_as_of(self):
        household = [member(1, joined=date(2020, 1, 1))]
        payments = [txn(300, date(2025, 1, 5))]

        result = compute_dues(household, payments, 2025, as_of=date(2025, 5, 15))

        assert statuses(result) == ["paid"] * 3 + ["due"] * 2 + ["upcoming"] * 7
        assert result.future_dues == Decimal("700.00")

    def test_partial_month_is_not_paid(self):
        household = [member(1, joined=date(2020, 1, 1))]
        payments = [txn(150, date(2025, 1, 5))]

        result = compute_dues(household, payments, 2025, as_of=date(2025, 1, 31))

        assert statuses(result)[:2] == ["paid", "upcoming"]
        assert result.month_statuses[1].amount_paid == Decimal("50.00")

    @pytest.mark.parametrize("joined,total,december", [
        (date(2020, 1, 1), "1001.00", "83.38"),
        (date(2025, 3, 1), "834.17", "83.39"),
    ])
    def test_december_absorbs_rounding(self, joined, total, december):
        household = [member(1, pledge="1001.00", joined=joined)]
        payments = [txn(total, date(2025, 3, 5))]

        result = compute_dues(household, payments, 2025, as_of=date(2025, 12, 31))

        assert result.total_amount_due == Decimal(total)
        assert result.outstanding_dues == Decimal("0.00")
        assert result.month_statuses[11].amount_due == Decimal(december)
        assert sum((m.amount_due for m in result.month_statuses), Decimal("0")) == Decimal(total)
        assert "due" not in statuses(result)

    def test_excluded_statuses_do_not_count(self):
        household = [member(1, joined=date(2020, 1, 1))]
        payments = [
            txn(100, date(2025, 1, 5), status="pending"),
            txn(100, date(2025, 1, 6), status="failed"),
            txn(100, date(2025, 1, 7), status="canceled"),
        ]

        result = compute_dues(household, payments, 2025, as_of=date(2025, 12, 31))

        assert result.dues_collected == Decimal("0.00")

    def test_rollover_helper_walks_from_join_year(self):
        paid = {2023: Decimal("1500.00"), 2024: Decimal("1200.00")}
        assert compute_rollover(Decimal("1200"), date(2023, 3, 1), paid, 2025) == Decimal("500.00")


class TestAccrualYear:
    """Pledge of 120 (10 a month), member since 2020."""

    def household(self):
        return [member(1, pledge="120.00", joined=date(2020, 1, 1), family_id=1)]

    def test_no_prior_payments(self):
        result = compute_dues(self.household(), [], 2025, as_of=date(2025, 6, 1))

        assert result.total_amount_due == Decimal("120.00")
        assert result.dues_collected == Decimal("0.00")
        assert result.outstanding_dues == Decimal("120.00")

    def test_prior_year_surplus(self):
        payments = [txn(200, date(2024, 5, 1), for_year=2024)]

        result = compute_dues(self.household(), payments, 2025, as_of=date(2025, 6, 1))

        assert result.total_amount_due == Decimal("120.00")
        assert result.dues_collected == Decimal("80.00")
        assert result.outstanding_dues == Decimal("40.00")

    def test_payment_for_prior_year_counts_there(self):
        late = txn(120, date(2026, 2, 1), for_year=2025)

        result_2025 = compute_dues(self.household(), [late], 2025, as_of=date(2026, 3, 1))
        assert result_2025.dues_collected == Decimal("120.00")
        assert result_2025.outstanding_dues == Decimal("0.00")
        assert result_2025.transactions == []

        result_2026 = compute_dues(self.household(), [late], 2026, as_of=date(2026, 3, 1))
        assert result_2026.dues_collected == Decimal("0.00")
        assert result_2026.outstanding_dues == Decimal("120.00")
        assert [t["id"] for t in result_2026.transactions] == [late.id]


# ================================================================
# NO PLEDGE
# ================================================================

class TestNoPledge:

    @pytest.mark.parametrize("pledge", [None, "0.00"])
    def test_calendar_month_sums(self, pledge):
        household = [member(1, pledge=pledge, joined=date(2025, 2, 1))]
        payments = [
            txn(20, date(2025, 3, 4)),
            txn(15, date(2025, 3, 20)),
            txn(50, date(2024, 12, 1)),
        ]

        result = compute_dues(household, payments, 2025, as_of=date(2025, 4, 10))

        assert not result.has_pledge
        assert result.total_amount_due == Decimal("0.00")
        assert result.balance_due == Decimal("0.00")
        assert result.rollover_amount == Decimal("0.00")
        assert result.dues_collected == Decimal("35.00")
        assert statuses(result) == (
            ["pre-membership", "no-payment", "paid", "no-payment"] + ["upcoming"] * 8
        )
        assert result.month_statuses[2].amount_paid == Decimal("35.00")

    def test_for_year_override_ignored_for_calendar_totals(self):
        household = [member(1, pledge=None, joined=date(2020, 1, 1))]
        payments = [txn(20, date(2025, 1, 10), for_year=2024)]

        result_2025 = compute_dues(household, payments, 2025, as_of=date(2025, 6, 1))
        month_total = sum((m.amount_paid for m in result_2025.month_statuses), Decimal("0"))

        assert month_total == Decimal("20.00")
        assert result_2025.dues_collected == Decimal("20.00")
        assert result_2025.dues_paid_in_year == Decimal("20.00")
        assert statuses(result_2025)[0] == "paid"

        result_2024 = compute_dues(household, payments, 2024, as_of=date(2025, 6, 1))
        assert result_2024.dues_collected == Decimal("0.00")
        assert "paid" not in statuses(result_2024)


# ================================================================
# OTHER CONTRIBUTIONS
# ================================================================

class TestOtherContributions:

    def test_buckets_and_grand_total(self):
        household = [member(1, joined=date(2020, 1, 1))]
        payments = [
            txn(1200, date(2025, 1, 2)),
            txn(50, date(2025, 2, 1), payment_type="donation"),
            txn(30, date(2025, 2, 1), payment_type="vow"),
            txn(20, date(2025, 2, 1), payment_type="tithe"),
            txn(10, date(2025, 2, 1), payment_type="offering"),
            txn(5, date(2025, 2, 1), payment_type="building_fund"),
            txn(99, date(2024, 2, 1), payment_type="donation"),
        ]

        result = compute_dues(household, payments, 2025, as_of=date(2025, 12, 31))
        other = result.other_contributions

        assert other.donation == Decimal("50.00")
        assert other.pledge_payment == Decimal("30.00")
        assert other.tithe == Decimal("20.00")
        assert other.offering == Decimal("10.00")
        assert other.other == Decimal("5.00")
        assert result.total_other_contributions == Decimal("115.00")
        assert result.grand_total == Decimal("1315.00")


# ================================================================
# HEAD OF HOUSEHOLD
# ================================================================

class TestHeadOfHousehold:

    def test_flagged_head_wins(self):
        household = [member(1, pledge="600"), member(2, pledge="1200", family_id=1, head=True)]
        assert resolve_head_of_household(household).id == 2

    def test_canonical_member_without_flag(self):
        household = [member(1, pledge="600"), member(2, pledge="1200", family_id=1)]
        assert resolve_head_of_household(household).id == 1

    def test_highest_pledge_when_no_canonical_member(self):
        household = [member(2, pledge="600", family_id=1), member(3, pledge="1200", family_id=1)]
        assert resolve_head_of_household(household).id == 3

    def test_pledge_tie_is_ambiguous(self):
        household = [member(2, pledge="600", family_id=1), member(3, pledge="600", family_id=1)]
        with pytest.raises(AmbiguousHouseholdError):
            resolve_head_of_household(household)

    def test_two_flagged_heads_is_ambiguous(self):
        household = [member(1, head=True), member(2, family_id=1, head=True)]
        with pytest.raises(AmbiguousHouseholdError):
            resolve_head_of_household(household)

    def test_household_payments_pooled_under_head_pledge(self):
        household = [
            member(1, pledge="1200", joined=date(2020, 1, 1), first_name="Head"),
            member(2, pledge=None, joined=None, family_id=1, first_name="Spouse"),
        ]
        payments = [
            txn(600, date(2025, 1, 5), member_id=1),
            txn(600, date(2025, 2, 5), member_id=2),
        ]

        result = compute_dues(household, payments, 2025, as_of=date(2025, 12, 31))

        assert result.dues_collected == Decimal("1200.00")
        assert result.household.head_of_household_id == 1
        assert result.household.is_household_view
        assert result.household.member_names == ["Head Member", "Spouse Member"]

    def test_to_dict_is_json_friendly(self):
        result = compute_dues([member(1)], [txn(100, date(2024, 1, 1))], 2024, as_of=date(2024, 6, 1))
        data = result.to_dict()

        assert data["annual_pledge"] == 1200.0
        assert data["month_statuses"][0] == {
            "month": "january", "month_index": 0, "status": "paid", "amount_due": 100.0, "amount_paid": 100.0,
        }
        assert data["household"]["head_of_household"]["id"] == 1
