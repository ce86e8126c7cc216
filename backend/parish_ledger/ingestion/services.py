"""
Ingestion services for saving parsed bank statements to the database.

Upload flow:
1. Pick the parser that recognizes the file and parse it
2. Fetch every stored row whose hash appears in the file (one query)
3. Partition rows into create / balance-backfill / skip (resolve_upload)
4. Bulk insert the creates
5. Backfill balances in bounded, independent batches
"""

import hashlib
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from parish_ledger.core.config import settings
from parish_ledger.core.errors import ValidationError
from parish_ledger.ingestion.parsers.base import BaseParser, RecordType
from parish_ledger.modules.bank.models import BankTransaction
from parish_ledger.shared.models.ingestion import IngestionLog

logger = logging.getLogger(__name__)


@dataclass
class UploadPlan:
    """Partition of one upload's rows."""
    to_create: list[dict] = field(default_factory=list)
    balance_updates: list[tuple[str, Decimal]] = field(default_factory=list)  # (hash, balance)
    skipped: int = 0
    duplicates_in_file: int = 0


def get_all_parsers() -> list[BaseParser]:
    """Get all available bank statement parsers."""
    from parish_ledger.ingestion.parsers.chase_csv import ChaseCSVParser

    return [
        ChaseCSVParser(),
    ]


def resolve_upload(
    parsed_rows: list[dict],
    existing_balances: dict[str, Optional[Decimal]],
) -> UploadPlan:
    """
    Decide what to do with each parsed row.

    ``existing_balances`` maps the hash of every already-stored row to its
    stored balance. For each row, in file order:
    - hash already seen earlier in this file -> skip (first occurrence wins)
    - hash not stored -> create
    - stored balance is null and the row has one -> balance backfill only
    - otherwise -> skip
    """
    plan = UploadPlan()
    seen: set[str] = set()

    for row in parsed_rows:
        tx_hash = row["transaction_hash"]
        if tx_hash in seen:
            plan.duplicates_in_file += 1
            plan.skipped += 1
            continue
        seen.add(tx_hash)

        if tx_hash not in existing_balances:
            plan.to_create.append(row)
        elif existing_balances[tx_hash] is None and row.get("balance") is not None:
            plan.balance_updates.append((tx_hash, row["balance"]))
        else:
            plan.skipped += 1

    return plan


def fetch_existing_balances(db: Session, hashes: list[str]) -> dict[str, Optional[Decimal]]:
    """Stored balance per hash for the hashes that already exist."""
    if not hashes:
        return {}
    rows = (
        db.query(BankTransaction.transaction_hash, BankTransaction.balance)
        .filter(BankTransaction.transaction_hash.in_(set(hashes)))
        .all()
    )
    return {tx_hash: balance for tx_hash, balance in rows}


def create_ingestion_log(
    db: Session,
    file_name: str,
    file_hash: Optional[str],
    source: str,
    uploaded_by: Optional[int] = None,
) -> IngestionLog:
    """Create a new ingestion log entry."""
    log = IngestionLog(
        file_name=file_name,
        file_hash=file_hash,
        source=source,
        uploaded_by=uploaded_by,
        status="processing",
        started_at=datetime.utcnow(),
    )
    db.add(log)
    db.flush()
    return log


def complete_ingestion_log(
    db: Session,
    log: IngestionLog,
    status: str,
    records_in_file: int = 0,
    records_created: int = 0,
    records_updated: int = 0,
    records_skipped: int = 0,
    error_message: Optional[str] = None,
    warnings: Optional[list[str]] = None,
):
    """Update ingestion log with completion status."""
    log.status = status
    log.records_in_file = records_in_file
    log.records_created = records_created
    log.records_updated = records_updated
    log.records_skipped = records_skipped
    log.error_message = error_message
    log.warnings = json.dumps(warnings) if warnings else None
    log.completed_at = datetime.utcnow()
    db.flush()


def insert_new_rows(db: Session, parsed_rows: list[dict], ingestion_id: Optional[int] = None) -> UploadPlan:
    """
    Resolve the upload against the database and bulk insert the new rows.

    A concurrent upload of the same statement can insert some of our hashes
    between the snapshot and the insert. The unique constraint rejects the
    batch; we roll back, take a fresh snapshot (those rows now resolve as
    skips) and try once more. Any other failure propagates.
    """
    hashes = [row["transaction_hash"] for row in parsed_rows]

    for attempt in (1, 2):
        plan = resolve_upload(parsed_rows, fetch_existing_balances(db, hashes))
        if not plan.to_create:
            return plan

        db.add_all([BankTransaction(**row, ingestion_id=ingestion_id) for row in plan.to_create])
        try:
            db.commit()
            return plan
        except IntegrityError:
            db.rollback()
            if attempt == 2:
                raise
            logger.warning(
                f"Bulk insert of {len(plan.to_create)} bank rows hit a duplicate hash, "
                f"retrying against a fresh snapshot"
            )
    return plan


def _apply_balance_batch(db: Session, batch: list[tuple[str, Decimal]]) -> int:
    updated = 0
    for tx_hash, balance in batch:
        result = db.execute(
            update(BankTransaction)
            .where(
                BankTransaction.transaction_hash == tx_hash,
                # Never overwrite a balance that is already known
                BankTransaction.balance.is_(None),
            )
            .values(balance=balance, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        updated += result.rowcount or 0
    db.commit()
    return updated


def apply_balance_updates(
    db: Session,
    updates: list[tuple[str, Decimal]],
    batch_size: Optional[int] = None,
    concurrency: Optional[int] = None,
) -> dict:
    """
    Backfill null balances in independent batches.

    At most ``concurrency`` batches run at once, each on its own session, so
    a large statement cannot exhaust the connection pool. A failed batch is
    logged and counted; the others still apply.
    """
    batch_size = batch_size or settings.BANK_BALANCE_BATCH_SIZE
    concurrency = concurrency or settings.BANK_BALANCE_CONCURRENCY

    batches = [updates[i:i + batch_size] for i in range(0, len(updates), batch_size)]
    if not batches:
        return {"updated": 0, "failed": 0, "failed_batches": 0}

    updated = 0
    failed = 0
    failed_batches = 0

    if len(batches) == 1 or concurrency <= 1:
        for batch in batches:
            try:
                updated += _apply_balance_batch(db, batch)
            except Exception as e:
                db.rollback()
                logger.error(f"Balance backfill batch of {len(batch)} rows failed: {e}", exc_info=True)
                failed += len(batch)
                failed_batches += 1
        return {"updated": updated, "failed": failed, "failed_batches": failed_batches}

    batch_session = sessionmaker(bind=db.get_bind(), autocommit=False, autoflush=False)

    def run(batch: list[tuple[str, Decimal]]) -> int:
        session = batch_session()
        try:
            return _apply_balance_batch(session, batch)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=concurrency) as executor:
        futures = [(executor.submit(run, batch), batch) for batch in batches]
        for future, batch in futures:
            try:
                updated += future.result()
            except Exception as e:
                logger.error(f"Balance backfill batch of {len(batch)} rows failed: {e}", exc_info=True)
                failed += len(batch)
                failed_batches += 1

    return {"updated": updated, "failed": failed, "failed_batches": failed_batches}


def import_bank_statement(
    db: Session,
    content: bytes,
    file_name: str,
    uploaded_by: Optional[int] = None,
) -> dict:
    """
    Parse an uploaded statement and persist its lines.

    Raises ValidationError when no parser recognizes the file or it yields
    no valid rows.
    """
    parser = next((p for p in get_all_parsers() if p.can_parse(content, file_name)), None)
    if parser is None:
        raise ValidationError("Unrecognized bank statement format", field="file")

    log = create_ingestion_log(
        db,
        file_name=file_name,
        file_hash=hashlib.sha256(content).hexdigest(),
        source=parser.source_name,
        uploaded_by=uploaded_by,
    )
    db.commit()
    log_id = log.id

    result = parser.parse(content, file_name)
    rows = [r.data for r in result.records if r.record_type == RecordType.BANK_TRANSACTION]

    if result.errors or not rows:
        message = "; ".join(result.errors) or "No valid transactions found in file"
        complete_ingestion_log(db, log, "failed", error_message=message, warnings=result.warnings)
        db.commit()
        raise ValidationError(message, field="file")

    try:
        plan = insert_new_rows(db, rows, ingestion_id=log_id)
    except Exception as e:
        db.rollback()
        logger.error(f"Bank statement import failed for {file_name}: {e}", exc_info=True)
        log = db.get(IngestionLog, log_id)
        complete_ingestion_log(db, log, "failed", records_in_file=len(rows), error_message=str(e))
        db.commit()
        raise

    balance_result = apply_balance_updates(db, plan.balance_updates)

    log = db.get(IngestionLog, log_id)
    complete_ingestion_log(
        db,
        log,
        "partial" if balance_result["failed"] else "success",
        records_in_file=len(rows),
        records_created=len(plan.to_create),
        records_updated=balance_result["updated"],
        records_skipped=plan.skipped,
        warnings=result.warnings,
    )
    db.commit()

    logger.info(
        f"Imported {file_name}: {len(plan.to_create)} new, {balance_result['updated']} balances "
        f"backfilled, {plan.skipped} skipped ({plan.duplicates_in_file} repeated in file)"
    )

    return {
        "ingestion_id": log_id,
        "source": parser.source_name,
        "total_rows": len(rows),
        "imported": len(plan.to_create),
        "updated": balance_result["updated"],
        "skipped": plan.skipped,
        "duplicates_in_file": plan.duplicates_in_file,
        "failed_updates": balance_result["failed"],
        "warnings": result.warnings,
    }
