"""
Member models (household subset) and learned payment-memo aliases.
"""

from sqlalchemy import Column, Integer, String, Numeric, Date, Boolean, ForeignKey, Index, func

from parish_ledger.shared.models.base import BaseModel


class Member(BaseModel):
    """
    A registered parish member.

    Households are grouped by ``family_id``: the head of household has
    ``family_id`` null or equal to its own id, and everyone else in the
    family carries the head's id.
    """

    __tablename__ = "members"

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True)
    phone_number = Column(String(30), nullable=True)

    family_id = Column(Integer, ForeignKey("members.id"), nullable=True)
    is_head_of_household = Column(Boolean, nullable=False, default=False)

    yearly_pledge = Column(Numeric(12, 2), nullable=True)  # null/0 means no dues obligation
    date_joined_parish = Column(Date, nullable=True)

    role = Column(String(30), nullable=False, default="member")  # member, admin, treasurer, secretary, church_leadership
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index('idx_member_family', 'family_id'),
        Index('idx_member_name', 'last_name', 'first_name'),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


# At most one flagged head per household. coalesce() puts a head that leaves
# family_id null in the same group as dependents carrying its id.
_members = Member.__table__
Index(
    'uq_member_household_head',
    func.coalesce(_members.c.family_id, _members.c.id),
    unique=True,
    postgresql_where=_members.c.is_head_of_household.is_(True),
    sqlite_where=_members.c.is_head_of_household.is_(True),
)


class ZelleMemoMatch(BaseModel):
    """A payment memo an operator has confirmed as belonging to a member."""

    __tablename__ = "zelle_memo_matches"

    member_id = Column(Integer, ForeignKey("members.id"), nullable=False)
    # Snapshot of the member's name when the memo was confirmed
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    memo = Column(String(255), nullable=False, unique=True)  # normalized, see normalize_memo()

    __table_args__ = (
        Index('idx_zelle_memo_member', 'member_id'),
    )
