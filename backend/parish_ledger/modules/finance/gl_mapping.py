"""
Payment type -> income GL code resolution.

Every payment type the system accepts has an entry in GL_MAPPING listing the
``payment_type_mapping`` keys to look for in income_categories, in order.
The first active category found wins; if none exists the entry books to the
uncategorized code. A payment type missing from GL_MAPPING is a
configuration error and raises instead of booking silently.

Bump GL_MAPPING_VERSION whenever a rule changes so ledger reports can tell
which rule set produced an entry.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from parish_ledger.core.errors import UnmappedPaymentTypeError
from parish_ledger.modules.finance.models import IncomeCategory


GL_MAPPING_VERSION = 2
UNCATEGORIZED_GL_CODE = "INC999"

GL_MAPPING: dict[str, tuple[str, ...]] = {
    "membership_due": ("membership_due",),
    "offering": ("offering",),
    "donation": ("donation",),
    "event": ("event",),
    "vow": ("vow", "donation"),
    "other": ("other",),
    "tithe": ("tithe", "offering"),
    "building_fund": ("building_fund", "event"),
    "religious_item_sales": ("religious_item_sales", "other"),
    "tigray_hunger_fundraiser": ("tigray_hunger_fundraiser", "event"),
}


@dataclass
class GLResolution:
    gl_code: str
    income_category_id: Optional[int]
    matched_on: Optional[str]  # the mapping key that found the category, None if uncategorized
    version: int = GL_MAPPING_VERSION


def resolve_gl_code(db: Session, payment_type: str) -> GLResolution:
    """Resolve the income GL code for a payment type."""
    keys = GL_MAPPING.get(payment_type)
    if keys is None:
        raise UnmappedPaymentTypeError(
            f"No GL mapping for payment type '{payment_type}' (mapping v{GL_MAPPING_VERSION})",
            field="payment_type",
        )

    categories = (
        db.query(IncomeCategory)
        .filter(IncomeCategory.is_active.is_(True), IncomeCategory.payment_type_mapping.in_(keys))
        .all()
    )
    by_key = {c.payment_type_mapping: c for c in categories}
    for key in keys:
        category = by_key.get(key)
        if category is not None:
            return GLResolution(category.gl_code, category.id, key)

    uncategorized = db.query(IncomeCategory).filter(IncomeCategory.gl_code == UNCATEGORIZED_GL_CODE).first()
    return GLResolution(UNCATEGORIZED_GL_CODE, uncategorized.id if uncategorized else None, None)


# Reference data loaded by scripts/seed_categories.py
INCOME_CATEGORIES = [
    {"gl_code": "INC001", "name": "Membership", "payment_type_mapping": "membership_due", "display_order": 1,
     "description": "Monthly and annual membership dues"},
    {"gl_code": "INC002", "name": "Weekly Offering", "payment_type_mapping": "offering", "display_order": 2,
     "description": "Sunday and weekly offerings"},
    {"gl_code": "INC003", "name": "Fundraising", "payment_type_mapping": "event", "display_order": 3,
     "description": "Fundraising events and campaigns"},
    {"gl_code": "INC004", "name": "Special Donation", "payment_type_mapping": "donation", "display_order": 4,
     "description": "One-time and special donations"},
    {"gl_code": "INC005", "name": "Sacramental", "payment_type_mapping": None, "display_order": 5,
     "description": "Baptism, wedding and other sacramental services"},
    {"gl_code": "INC006", "name": "Newayat", "payment_type_mapping": None, "display_order": 6,
     "description": "Newayat offerings"},
    {"gl_code": "INC007", "name": "Rental", "payment_type_mapping": None, "display_order": 7,
     "description": "Hall and property rental income"},
    {"gl_code": "INC008", "name": "Vow", "payment_type_mapping": "vow", "display_order": 8,
     "description": "Vows and pledged gifts"},
    {"gl_code": "INC999", "name": "Other Income", "payment_type_mapping": "other", "display_order": 99,
     "description": "Uncategorized income"},
]

EXPENSE_CATEGORIES = [
    {"gl_code": "EXP001", "name": "Salary/Allowance"},
    {"gl_code": "EXP002", "name": "Mortgage"},
    {"gl_code": "EXP003", "name": "Loan Interest Payment"},
    {"gl_code": "EXP004", "name": "Monthly Lease Payments"},
    {"gl_code": "EXP005", "name": "Utility"},
    {"gl_code": "EXP006", "name": "Cable"},
    {"gl_code": "EXP007", "name": "Property Insurance"},
    {"gl_code": "EXP008", "name": "Rent Expense"},
    {"gl_code": "EXP009", "name": "Credit Card Payment"},
    {"gl_code": "EXP100", "name": "Building Renovation"},
    {"gl_code": "EXP101", "name": "Alarm Security"},
    {"gl_code": "EXP102", "name": "Building Repairs & Maintenance"},
    {"gl_code": "EXP103", "name": "Catering, Relief Assistance & Charitable Expenses"},
    {"gl_code": "EXP104", "name": "Office & Kitchen Equipment and Supplies"},
    {"gl_code": "EXP105", "name": "Parts & Fixtures"},
    {"gl_code": "EXP106", "name": "Bible, Miscellaneous Items & Teaching Fees"},
    {"gl_code": "EXP107", "name": "Sebket Wengel Service"},
    {"gl_code": "EXP108", "name": "State & City Taxes"},
    {"gl_code": "EXP109", "name": "Transfer from Other Account & Loan Payment"},
    {"gl_code": "EXP110", "name": "Visiting Priests Allowance & Travel Expenses"},
    {"gl_code": "EXP999", "name": "Other Expenses"},
]
