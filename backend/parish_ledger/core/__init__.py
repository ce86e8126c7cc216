"""Core application components."""

from parish_ledger.core.config import settings
from parish_ledger.core.database import Base, get_db, engine

__all__ = ["settings", "Base", "get_db", "engine"]
