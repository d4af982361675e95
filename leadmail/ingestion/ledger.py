import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from leadmail.models import IMPORT_STATUSES, EmailImportLog

logger = logging.getLogger("leadmail.ingestion.ledger")


def has_been_processed(db: Session, source_id: int, gmail_message_id: str) -> bool:
    """True once any outcome has been recorded for this message on this source."""
    return (
        db.query(EmailImportLog.id)
        .filter(
            EmailImportLog.source_id == source_id,
            EmailImportLog.gmail_message_id == gmail_message_id,
        )
        .first()
        is not None
    )


def record_import(
    db: Session,
    *,
    agency_id: str,
    source_id: int,
    gmail_message_id: str,
    status: str,
    gmail_thread_id: Optional[str] = None,
    email_subject: Optional[str] = None,
    email_from: Optional[str] = None,
    email_date: Optional[datetime] = None,
    parsed_data: Optional[Dict[str, Any]] = None,
    lead_id: Optional[str] = None,
    duplicate_of_lead_id: Optional[str] = None,
    duplicate_reason: Optional[str] = None,
    error_message: Optional[str] = None,
) -> EmailImportLog:
    if status not in IMPORT_STATUSES:
        raise ValueError(f"Unknown import status {status!r}")

    entry = EmailImportLog(
        agency_id=agency_id,
        source_id=source_id,
        gmail_message_id=gmail_message_id,
        gmail_thread_id=gmail_thread_id,
        email_subject=(email_subject or "")[:512] or None,
        email_from=(email_from or "")[:255] or None,
        email_date=email_date,
        status=status,
        parsed_data=parsed_data,
        lead_id=lead_id,
        duplicate_of_lead_id=duplicate_of_lead_id,
        duplicate_reason=duplicate_reason,
        error_message=error_message,
    )
    db.add(entry)
    db.flush()

    logger.debug(
        "Recorded %s for message %s (source=%s)",
        status,
        gmail_message_id,
        source_id,
    )
    return entry


def list_import_logs(
    db: Session,
    *,
    agency_id: Optional[str] = None,
    source_id: Optional[int] = None,
    status: Optional[str] = None,
    limit: int = 200,
) -> List[EmailImportLog]:
    """Most recent ledger entries first."""
    limit = max(1, min(limit, 500))

    query = db.query(EmailImportLog).order_by(
        desc(EmailImportLog.created_at), desc(EmailImportLog.id)
    )
    if agency_id:
        query = query.filter(EmailImportLog.agency_id == agency_id)
    if source_id is not None:
        query = query.filter(EmailImportLog.source_id == source_id)
    if status:
        query = query.filter(EmailImportLog.status == status)

    return query.limit(limit).all()
