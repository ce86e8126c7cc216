"""
Bank statement upload API routes.
"""

import json
import logging

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.orm import Session

from parish_ledger.core.auth import CurrentUser, require_staff
from parish_ledger.core.database import get_db
from parish_ledger.core.errors import LedgerError, raise_http_error
from parish_ledger.core.timezone import format_datetime_for_api
from parish_ledger.ingestion.services import import_bank_statement
from parish_ledger.shared.models.ingestion import IngestionLog

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/upload")
async def upload_bank_statement(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_staff),
):
    """
    Upload a bank statement CSV.

    New lines are stored as PENDING, lines already imported are skipped, and
    lines that were imported without a running balance get it filled in.
    """
    content = await file.read()
    try:
        result = import_bank_statement(db, content, file.filename or "upload.csv", uploaded_by=user.member_id)
    except LedgerError as e:
        raise_http_error(e)

    return {
        "success": True,
        "message": (
            f"Imported {result['imported']} new transactions, updated {result['updated']} balances, "
            f"skipped {result['skipped']}"
        ),
        **result,
    }


@router.get("/uploads")
async def get_upload_history(
    db: Session = Depends(get_db),
    limit: int = Query(default=20, le=100),
    user: CurrentUser = Depends(require_staff),
):
    """Recent statement uploads, newest first."""
    logs = db.query(IngestionLog).order_by(IngestionLog.id.desc()).limit(limit).all()
    return {
        "uploads": [
            {
                "id": log.id,
                "file_name": log.file_name,
                "source": log.source,
                "status": log.status,
                "records_in_file": log.records_in_file,
                "records_created": log.records_created,
                "records_updated": log.records_updated,
                "records_skipped": log.records_skipped,
                "error_message": log.error_message,
                "warnings": json.loads(log.warnings) if log.warnings else [],
                "started_at": format_datetime_for_api(log.started_at),
                "completed_at": format_datetime_for_api(log.completed_at),
            }
            for log in logs
        ],
        "count": len(logs),
    }
