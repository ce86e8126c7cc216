"""
Payment type -> GL code resolution tests.

Run with: pytest tests/test_gl_mapping.py -v
"""

import pytest

from parish_ledger.core.errors import UnmappedPaymentTypeError
from parish_ledger.modules.finance.gl_mapping import (
    GL_MAPPING,
    GL_MAPPING_VERSION,
    UNCATEGORIZED_GL_CODE,
    resolve_gl_code,
)
from parish_ledger.modules.finance.models import IncomeCategory, PAYMENT_TYPES


class TestResolveGLCode:

    @pytest.mark.parametrize("payment_type,gl_code,matched_on", [
        ("membership_due", "INC001", "membership_due"),
        ("offering", "INC002", "offering"),
        ("event", "INC003", "event"),
        ("donation", "INC004", "donation"),
        ("vow", "INC008", "vow"),
        ("other", "INC999", "other"),
        # Fallbacks
        ("tithe", "INC002", "offering"),
        ("building_fund", "INC003", "event"),
        ("tigray_hunger_fundraiser", "INC003", "event"),
        ("religious_item_sales", "INC999", "other"),
    ])
    def test_seeded_categories(self, db, payment_type, gl_code, matched_on):
        gl = resolve_gl_code(db, payment_type)
        assert gl.gl_code == gl_code
        assert gl.matched_on == matched_on
        assert gl.income_category_id is not None
        assert gl.version == GL_MAPPING_VERSION

    def test_unmapped_type_raises(self, db):
        with pytest.raises(UnmappedPaymentTypeError) as exc_info:
            resolve_gl_code(db, "raffle")
        assert exc_info.value.status_code == 422

    def test_inactive_category_falls_through(self, db):
        db.query(IncomeCategory).filter(IncomeCategory.gl_code == "INC008").update({"is_active": False})
        db.commit()

        gl = resolve_gl_code(db, "vow")

        assert gl.gl_code == "INC004"
        assert gl.matched_on == "donation"

    def test_no_categories_books_uncategorized(self, session_factory):
        empty = session_factory()
        try:
            gl = resolve_gl_code(empty, "donation")
        finally:
            empty.close()

        assert gl.gl_code == UNCATEGORIZED_GL_CODE
        assert gl.income_category_id is None
        assert gl.matched_on is None

    def test_every_payment_type_is_mapped(self):
        assert set(GL_MAPPING) == PAYMENT_TYPES
