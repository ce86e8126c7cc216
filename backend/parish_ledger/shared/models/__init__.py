"""Shared database models."""

from parish_ledger.shared.models.base import BaseModel, TimestampMixin
from parish_ledger.shared.models.ingestion import IngestionLog

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "IngestionLog",
]
