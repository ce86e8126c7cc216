"""
Upload tracking models.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime

from parish_ledger.shared.models.base import BaseModel


class IngestionLog(BaseModel):
    """One row per bank statement upload."""

    __tablename__ = "ingestion_log"

    file_name = Column(String(255), nullable=False)
    file_hash = Column(String(64), nullable=True)  # SHA256 of the uploaded bytes

    source = Column(String(50), nullable=False)  # parser source_name, e.g. 'chase_csv'
    uploaded_by = Column(Integer, nullable=True)  # member id of the operator

    status = Column(String(20), nullable=False, default="pending")  # pending, processing, success, partial, failed

    records_in_file = Column(Integer, default=0)
    records_created = Column(Integer, default=0)
    records_updated = Column(Integer, default=0)
    records_skipped = Column(Integer, default=0)

    error_message = Column(Text, nullable=True)
    warnings = Column(Text, nullable=True)  # JSON array of warnings

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
