"""
Payment recording and expense tests.

Run with: pytest tests/test_transactions.py -v
"""

from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest

from parish_ledger.core.errors import ConflictError, NotFoundError, ValidationError
from parish_ledger.modules.finance.models import LedgerEntry, LedgerOutbox, Transaction
from parish_ledger.modules.finance.services import create_transaction, record_expense
from parish_ledger.modules.members.models import ZelleMemoMatch


def payment(**overrides) -> dict:
    data = {
        "amount": "25.00",
        "payment_date": date(2025, 3, 2),
        "payment_type": "donation",
        "payment_method": "zelle",
    }
    data.update(overrides)
    return data


# ================================================================
# RECEIPT ENFORCEMENT AND VALIDATION
# ================================================================

class TestPaymentValidation:

    @pytest.mark.parametrize("method", ["cash", "check"])
    def test_cash_and_check_need_receipt(self, db, operator, method):
        with pytest.raises(ValidationError) as exc_info:
            create_transaction(db, collected_by=operator.id, **payment(payment_method=method))

        assert exc_info.value.field == "receipt_number"
        assert db.query(Transaction).count() == 0

    @pytest.mark.parametrize("method", ["zelle", "credit_card", "ach"])
    def test_electronic_methods_need_no_receipt(self, db, operator, method):
        result = create_transaction(db, collected_by=operator.id, **payment(payment_method=method))
        assert result.transaction.id is not None
        assert result.transaction.receipt_number is None

    def test_cash_with_receipt(self, db, operator):
        result = create_transaction(
            db, collected_by=operator.id, **payment(payment_method="cash", receipt_number="R-100")
        )
        assert result.transaction.receipt_number == "R-100"

    @pytest.mark.parametrize("overrides,field", [
        ({"amount": "0"}, "amount"),
        ({"amount": "-5.00"}, "amount"),
        ({"amount": "abc"}, "amount"),
        ({"payment_type": "raffle"}, "payment_type"),
        ({"payment_type": None}, "payment_type"),
        ({"payment_method": "bitcoin"}, "payment_method"),
        ({"payment_date": None}, "payment_date"),
        ({"for_year": 1492}, "for_year"),
        ({"status": "refunded"}, "status"),
    ])
    def test_invalid_fields(self, db, operator, overrides, field):
        with pytest.raises(ValidationError) as exc_info:
            create_transaction(db, collected_by=operator.id, **payment(**overrides))
        assert exc_info.value.field == field
        assert db.query(Transaction).count() == 0

    def test_collected_by_required(self, db):
        with pytest.raises(ValidationError):
            create_transaction(db, collected_by=None, **payment())

    def test_unknown_member(self, db, operator):
        with pytest.raises(NotFoundError):
            create_transaction(db, collected_by=operator.id, member_id=4242, **payment())

    def test_duplicate_external_id(self, db, operator):
        create_transaction(db, collected_by=operator.id, external_id="zelle-ref-1", **payment())
        with pytest.raises(ConflictError) as exc_info:
            create_transaction(db, collected_by=operator.id, external_id="zelle-ref-1", **payment())
        assert exc_info.value.code == "already_exists"
        assert db.query(Transaction).count() == 1


# ================================================================
# LEDGER POSTING
# ================================================================

class TestLedgerPosting:

    def test_succeeded_payment_posts_entry(self, db, operator, make_member):
        member = make_member()
        result = create_transaction(db, collected_by=operator.id, member_id=member.id, **payment())

        entry = result.ledger_entry
        assert entry.transaction_id == result.transaction.id
        assert entry.category == "INC004"
        assert entry.amount == Decimal("25.00")
        assert entry.member_id == member.id
        assert entry.source_system == "manual"
        assert entry.memo == "INC004 - donation"
        assert result.transaction.income_category_id is not None

    def test_pending_payment_posts_nothing(self, db, operator):
        result = create_transaction(db, collected_by=operator.id, status="pending", **payment())
        assert result.ledger_entry is None
        assert db.query(LedgerEntry).count() == 0

    def test_ledger_failure_keeps_payment(self, db, operator):
        with patch(
            "parish_ledger.modules.finance.services.build_ledger_entry",
            side_effect=RuntimeError("ledger unavailable"),
        ):
            result = create_transaction(db, collected_by=operator.id, **payment())

        assert result.ledger_entry is None
        assert db.query(Transaction).count() == 1
        outbox = db.query(LedgerOutbox).one()
        assert outbox.transaction_id == result.transaction.id
        assert outbox.attempts == 1

    def test_zelle_memo_learned(self, db, operator, make_member):
        member = make_member()
        result = create_transaction(
            db,
            collected_by=operator.id,
            member_id=member.id,
            zelle_memo="Zelle payment from ALMAZ TESFAY 123",
            source_system="zelle",
            **payment(),
        )

        assert result.memo_learned
        assert result.ledger_entry.source_system == "zelle"
        assert db.query(ZelleMemoMatch).one().memo == "almaz tesfay"


# ================================================================
# EXPENSES
# ================================================================

class TestRecordExpense:

    def expense(self, **overrides) -> dict:
        data = {
            "gl_code": "exp005",
            "amount": "120.50",
            "expense_date": date(2025, 3, 1),
            "payment_method": "check",
            "as_of": date(2025, 3, 10),
            "receipt_number": "CHK-88",
        }
        data.update(overrides)
        return data

    def test_records_expense(self, db, operator):
        entry = record_expense(db, collected_by=operator.id, **self.expense())

        assert entry.type == "expense"
        assert entry.category == "EXP005"
        assert entry.amount == Decimal("120.50")
        assert entry.memo == "Utility expense"
        assert entry.transaction_id is None

    @pytest.mark.parametrize("overrides,field", [
        ({"expense_date": date(2025, 3, 11)}, "expense_date"),
        ({"payment_method": "zelle"}, "payment_method"),
        ({"gl_code": "EXP404"}, "gl_code"),
        ({"gl_code": None}, "gl_code"),
        ({"amount": "0"}, "amount"),
    ])
    def test_invalid_expense(self, db, operator, overrides, field):
        with pytest.raises(ValidationError) as exc_info:
            record_expense(db, collected_by=operator.id, **self.expense(**overrides))
        assert exc_info.value.field == field
        assert db.query(LedgerEntry).count() == 0
