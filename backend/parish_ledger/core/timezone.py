"""
Parish calendar helpers.

Dues statuses ("due" vs "upcoming") and the default reporting year depend on
what day it is at the parish, not on the server clock's zone. The dues engine
itself never reads the clock; callers resolve ``as_of`` here and pass it in.
"""

from datetime import date, datetime
from typing import Optional

import pytz

from parish_ledger.core.config import settings

UTC = pytz.UTC


def parish_timezone():
    return pytz.timezone(settings.PARISH_TIMEZONE)


def now_parish() -> datetime:
    """Current time in the parish timezone."""
    return datetime.now(UTC).astimezone(parish_timezone())


def today_parish() -> date:
    """Today's date at the parish."""
    return now_parish().date()


def format_datetime_for_api(dt: Optional[datetime]) -> Optional[str]:
    """
    Convert a naive-UTC (``datetime.utcnow``) or aware datetime to an ISO
    string with a 'Z' suffix.
    """
    if dt is None:
        return None
    if dt.tzinfo is not None:
        return dt.astimezone(UTC).isoformat().replace('+00:00', 'Z')
    return dt.isoformat() + 'Z'
