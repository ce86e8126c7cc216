"""
Member lookups and learned memo aliases.
"""

import logging
import re
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from parish_ledger.core.config import settings
from parish_ledger.modules.members.models import Member, ZelleMemoMatch

logger = logging.getLogger(__name__)


# Applied in order by normalize_memo()
MEMO_STRIP_PATTERNS = [
    re.compile(r'^.*?Zelle\s+(?:payment|transfer)\s+from\s+', re.IGNORECASE),
    re.compile(r'^CHECK\s+\d+\s*', re.IGNORECASE),
    re.compile(r'ORIG CO NAME:', re.IGNORECASE),
    re.compile(r'IND NAME:', re.IGNORECASE),
    re.compile(r'\d{1,2}/\d{1,2}/\d{2,4}'),
    # Trailing reference id (Zelle confirmation, ACH trace), any token with a digit
    re.compile(r'\s+\w*\d\w*$'),
]
MEMO_SEPARATORS = " -,:/*#.;"
NAME_TOKEN_PATTERN = re.compile(r'[A-Za-z]+')


def normalize_memo(text: Optional[str]) -> str:
    """
    Reduce a bank description to the memo key stored in ZelleMemoMatch.

    "Zelle payment from ALMAZ G TESFAY 27250625041" -> "almaz g tesfay"
    """
    if not text:
        return ""
    out = text.strip()
    for pattern in MEMO_STRIP_PATTERNS:
        out = pattern.sub(" ", out).strip()
    out = re.sub(r'\s+', ' ', out)
    return out.strip(MEMO_SEPARATORS).lower()


def get_member(db: Session, member_id: int) -> Optional[Member]:
    return db.get(Member, member_id)


def find_member_by_memo(db: Session, description: Optional[str]) -> Optional[ZelleMemoMatch]:
    memo = normalize_memo(description)
    if not memo:
        return None
    return db.query(ZelleMemoMatch).filter(ZelleMemoMatch.memo == memo).first()


def find_members_by_exact_name(db: Session, name: str) -> list[Member]:
    """Members whose 'first last' or 'last first' equals the name, ignoring case."""
    wanted = re.sub(r'\s+', ' ', name.strip()).lower()
    if not wanted:
        return []
    first_last = func.lower(Member.first_name + ' ' + Member.last_name)
    last_first = func.lower(Member.last_name + ' ' + Member.first_name)
    return (
        db.query(Member)
        .filter(Member.is_active.is_(True))
        .filter(or_(first_last == wanted, last_first == wanted))
        .all()
    )


def search_members_by_name_tokens(db: Session, name: str) -> list[Member]:
    """
    Members matching every alphabetic token (longer than two letters) of the
    name against first or last name. Middle initials and punctuation drop out.
    """
    tokens = [t for t in NAME_TOKEN_PATTERN.findall(name or "") if len(t) > 2]
    if not tokens:
        return []
    query = db.query(Member).filter(Member.is_active.is_(True))
    for token in tokens:
        pattern = f"%{token}%"
        query = query.filter(or_(Member.first_name.ilike(pattern), Member.last_name.ilike(pattern)))
    return query.limit(5).all()


def upsert_memo_match(db: Session, description: Optional[str], member: Member) -> Optional[ZelleMemoMatch]:
    """
    Remember that this memo belongs to ``member``. Last write wins.

    Memos shorter than MEMO_MIN_LENGTH after normalization are ignored.
    Flushes but does not commit.
    """
    memo = normalize_memo(description)
    if len(memo) < settings.MEMO_MIN_LENGTH:
        return None

    match = db.query(ZelleMemoMatch).filter(ZelleMemoMatch.memo == memo).first()
    if match is None:
        match = ZelleMemoMatch(memo=memo)
        db.add(match)
    elif match.member_id != member.id:
        logger.info(f"Memo '{memo}' reassigned from member {match.member_id} to {member.id}")

    match.member_id = member.id
    match.first_name = member.first_name
    match.last_name = member.last_name
    db.flush()
    return match


def learn_memo(db: Session, description: Optional[str], member: Member) -> bool:
    """
    Best-effort upsert_memo_match() in its own commit. Failures are logged,
    never raised.
    """
    try:
        match = upsert_memo_match(db, description, member)
        db.commit()
        return match is not None
    except Exception as e:
        db.rollback()
        logger.warning(f"Failed to save memo match for member {member.id}: {e}", exc_info=True)
        return False
