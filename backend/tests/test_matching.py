"""
Match suggestion tests.

Run with: pytest tests/test_matching.py -v
"""

from datetime import date
from decimal import Decimal

import pytest

from parish_ledger.modules.bank.matching import (
    MatchBasis,
    compute_current_balance,
    enrich_bank_transaction,
    extract_payer_name,
    find_potential_duplicates,
    list_bank_transactions,
    suggest_match,
)
from parish_ledger.modules.finance.models import Transaction
from parish_ledger.modules.members.models import ZelleMemoMatch
from parish_ledger.modules.members.services import normalize_memo


def add_payment(db, operator, amount, payment_date, external_id=None, member_id=None):
    txn = Transaction(
        member_id=member_id,
        collected_by=operator.id,
        payment_date=payment_date,
        amount=Decimal(amount),
        payment_type="donation",
        payment_method="zelle",
        external_id=external_id,
    )
    db.add(txn)
    db.commit()
    return txn


# ================================================================
# MEMO AND NAME EXTRACTION
# ================================================================

class TestNormalizeMemo:

    @pytest.mark.parametrize("text,expected", [
        ("Zelle payment from ALMAZ G TESFAY 27250625041", "almaz g tesfay"),
        ("Zelle payment from ALMAZ G TESFAY 99abc", "almaz g tesfay"),
        ("ORIG CO NAME:ACME IND NAME:BERHE,SELAMAWIT", "acme berhe,selamawit"),
        ("  Sunday   offering  ", "sunday offering"),
        ("", ""),
        (None, ""),
    ])
    def test_normalize(self, text, expected):
        assert normalize_memo(text) == expected


class TestExtractPayerName:

    @pytest.mark.parametrize("description,expected", [
        ("Zelle payment from JOHN DOE 12345", "JOHN DOE"),
        ("ORIG CO NAME:ACME IND NAME:DOE,JOHN TRN", "JOHN DOE"),
        ("ORIG CO NAME:ACME IND NAME:SMITH TRN", "SMITH"),
        ("REMOTE ONLINE DEPOSIT", None),
        (None, None),
    ])
    def test_extract(self, description, expected):
        assert extract_payer_name(description) == expected


# ================================================================
# SUGGESTIONS
# ================================================================

class TestSuggestMatch:

    def test_learned_memo_wins(self, db, make_member, make_bank_txn):
        almaz = make_member("Almaz", "Tesfay")
        # A second member with the exact payer name must not override the memo
        make_member("Almaz G", "Tesfay")
        db.add(ZelleMemoMatch(member_id=almaz.id, first_name="Almaz", last_name="Tesfay", memo="almaz g tesfay"))
        db.commit()

        bank = make_bank_txn(description="Zelle payment from ALMAZ G TESFAY 555", payer_name="ALMAZ G TESFAY")
        suggestion = suggest_match(db, bank)

        assert suggestion.member_id == almaz.id
        assert suggestion.basis == MatchBasis.LEARNED_MEMO
        assert suggestion.confidence == "high"

    @pytest.mark.parametrize("payer_name", ["SELAMAWIT BERHE", "BERHE SELAMAWIT", "selamawit  berhe"])
    def test_exact_name_either_order(self, db, make_member, make_bank_txn, payer_name):
        selam = make_member("Selamawit", "Berhe")
        bank = make_bank_txn(description="ORIG CO NAME:ACME IND NAME:BERHE,SELAMAWIT", payer_name=payer_name)

        suggestion = suggest_match(db, bank)

        assert suggestion.member_id == selam.id
        assert suggestion.basis == MatchBasis.EXACT_NAME
        assert suggestion.confidence == "medium"

    def test_fuzzy_name_ignores_middle_initial(self, db, make_member, make_bank_txn):
        almaz = make_member("Almaz", "Tesfay")
        bank = make_bank_txn(payer_name="ALMAZ G TESFAY")

        suggestion = suggest_match(db, bank)

        assert suggestion.member_id == almaz.id
        assert suggestion.basis == MatchBasis.FUZZY_NAME

    def test_payer_name_taken_from_description(self, db, make_member, make_bank_txn):
        john = make_member("John", "Doe")
        bank = make_bank_txn(description="Zelle payment from JOHN DOE 12345")

        suggestion = suggest_match(db, bank)

        assert suggestion.member_id == john.id
        assert suggestion.basis == MatchBasis.EXACT_NAME

    def test_ambiguous_name_gives_no_suggestion(self, db, make_member, make_bank_txn):
        make_member("John", "Doe")
        make_member("John", "Doe")
        bank = make_bank_txn(description="Zelle payment from JOHN DOE 12345")

        assert suggest_match(db, bank) is None

    def test_unknown_payer(self, db, make_member, make_bank_txn):
        make_member("John", "Doe")
        bank = make_bank_txn(description="REMOTE ONLINE DEPOSIT", txn_type="DEPOSIT")

        assert suggest_match(db, bank) is None

    def test_inactive_members_not_suggested(self, db, make_member, make_bank_txn):
        make_member("John", "Doe", is_active=False)
        bank = make_bank_txn(description="Zelle payment from JOHN DOE 12345")

        assert suggest_match(db, bank) is None

    def test_suggestions_are_read_only(self, db, make_member, make_bank_txn):
        make_member("John", "Doe")
        bank = make_bank_txn(description="Zelle payment from JOHN DOE 12345")

        enrich_bank_transaction(db, bank)

        assert db.query(ZelleMemoMatch).count() == 0
        db.refresh(bank)
        assert bank.status == "PENDING"
        assert bank.member_id is None


# ================================================================
# POTENTIAL DUPLICATES
# ================================================================

class TestPotentialDuplicates:

    def test_same_amount_within_window(self, db, operator, make_bank_txn):
        bank = make_bank_txn(amount="50.00", posting_date=date(2025, 1, 10))
        near = add_payment(db, operator, "50.00", date(2025, 1, 7))
        add_payment(db, operator, "50.00", date(2025, 1, 30))  # outside window
        add_payment(db, operator, "49.99", date(2025, 1, 10))  # different amount

        found = find_potential_duplicates(db, bank)

        assert [t.id for t in found] == [near.id]

    def test_withdrawal_compares_absolute_amount(self, db, operator, make_bank_txn):
        bank = make_bank_txn(description="CHECK 7", amount="-80.00", txn_type="CHECK")
        match = add_payment(db, operator, "80.00", date(2025, 1, 2))

        assert [t.id for t in find_potential_duplicates(db, bank)] == [match.id]

    def test_payment_already_linked_to_this_row_excluded(self, db, operator, make_bank_txn):
        bank = make_bank_txn()
        add_payment(db, operator, "50.00", bank.date, external_id=bank.transaction_hash)

        assert find_potential_duplicates(db, bank) == []

    def test_enrich_lists_candidates(self, db, operator, make_bank_txn):
        bank = make_bank_txn()
        add_payment(db, operator, "50.00", bank.date)

        data = enrich_bank_transaction(db, bank)

        assert len(data["potential_matches"]) == 1
        assert data["potential_matches"][0]["amount"] == 50.0

    def test_processed_rows_not_enriched(self, db, operator, make_bank_txn):
        bank = make_bank_txn(status="MATCHED")
        add_payment(db, operator, "50.00", bank.date)

        data = enrich_bank_transaction(db, bank)

        assert "potential_matches" not in data
        assert "suggested_match" not in data


# ================================================================
# LISTING
# ================================================================

class TestListBankTransactions:

    def test_filters_and_pagination(self, db, make_bank_txn):
        make_bank_txn(description="DEPOSIT 1", posting_date=date(2025, 1, 1), txn_type="DEPOSIT")
        make_bank_txn(description="DEPOSIT 2", posting_date=date(2025, 1, 2), txn_type="DEPOSIT")
        make_bank_txn(description="CHECK 3", posting_date=date(2025, 1, 3), txn_type="CHECK", status="IGNORED")

        result = list_bank_transactions(db, status="pending", page=1, limit=1)

        assert result["total"] == 2
        assert result["pages"] == 2
        assert result["transactions"][0]["description"] == "DEPOSIT 2"

    def test_current_balance_from_latest_known_balance(self, db, make_bank_txn):
        make_bank_txn(description="A", amount="100.00", posting_date=date(2025, 1, 1), balance=Decimal("1000.00"))
        make_bank_txn(description="B", amount="25.00", posting_date=date(2025, 1, 2))
        make_bank_txn(description="C", amount="-5.00", posting_date=date(2025, 1, 3))

        assert compute_current_balance(db) == pytest.approx(1020.0)

    def test_current_balance_unknown(self, db, make_bank_txn):
        make_bank_txn()
        assert compute_current_balance(db) is None
