# leadmail/ingestion/services.py
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from leadmail.db import SessionLocal, session_scope
from leadmail.errors import AuthError
from leadmail.gmail.client import GmailClient, MailMessage
from leadmail.ingestion.cursor import advance_cursor
from leadmail.ingestion.dedup import check_duplicate
from leadmail.ingestion.leads import create_lead_from_email
from leadmail.ingestion.ledger import has_been_processed, record_import
from leadmail.models import (
    STATUS_DUPLICATE,
    STATUS_PARSE_ERROR,
    STATUS_SUCCESS,
    EmailSource,
)
from leadmail.parsers import ParserRegistry, ParserStrategy, default_registry

logger = logging.getLogger("leadmail.ingestion.services")

NO_NAME_ERROR = "No contact name could be extracted from the email"


@dataclass
class ImportTotals:
    """Outcome counts for one source, agency or whole cycle."""

    imported: int = 0
    duplicates: int = 0
    errors: int = 0
    skipped: int = 0

    def count(self, status: str) -> None:
        if status == STATUS_SUCCESS:
            self.imported += 1
        elif status == STATUS_DUPLICATE:
            self.duplicates += 1
        else:
            self.errors += 1

    def merge(self, other: "ImportTotals") -> "ImportTotals":
        self.imported += other.imported
        self.duplicates += other.duplicates
        self.errors += other.errors
        self.skipped += other.skipped
        return self

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _message_fields(message_id: str, message: Optional[MailMessage]) -> Dict[str, Any]:
    fields: Dict[str, Any] = {"gmail_message_id": message_id}
    if message is not None:
        fields.update(
            gmail_thread_id=message.thread_id,
            email_subject=message.subject,
            email_from=message.from_address,
            email_date=_naive_utc(message.date),
        )
    return fields


def _import_message(
    db: Session,
    source: EmailSource,
    parser: ParserStrategy,
    message: MailMessage,
) -> str:
    """Parse, dedup and persist one fetched message; returns the ledger status."""
    fields = _message_fields(message.id, message)

    candidate = parser.parse(message.body, message.subject)
    if candidate is None:
        record_import(
            db,
            agency_id=source.agency_id,
            source_id=source.id,
            status=STATUS_PARSE_ERROR,
            error_message=NO_NAME_ERROR,
            **fields,
        )
        logger.info("Could not parse message %s (source=%s)", message.id, source.id)
        return STATUS_PARSE_ERROR

    duplicate = check_duplicate(db, source.agency_id, candidate)
    if duplicate.is_duplicate:
        record_import(
            db,
            agency_id=source.agency_id,
            source_id=source.id,
            status=STATUS_DUPLICATE,
            parsed_data=candidate.to_dict(),
            duplicate_of_lead_id=duplicate.matched_lead_id,
            duplicate_reason=duplicate.reason,
            **fields,
        )
        logger.info(
            "Message %s is a duplicate of lead %s (%s)",
            message.id,
            duplicate.matched_lead_id,
            duplicate.reason,
        )
        return STATUS_DUPLICATE

    lead_id = create_lead_from_email(db, source.agency_id, source, candidate)
    record_import(
        db,
        agency_id=source.agency_id,
        source_id=source.id,
        status=STATUS_SUCCESS,
        parsed_data=candidate.to_dict(),
        lead_id=lead_id,
        **fields,
    )
    return STATUS_SUCCESS


def process_source(
    db: Session,
    source: EmailSource,
    mail_client: GmailClient,
    *,
    registry: Optional[ParserRegistry] = None,
) -> ImportTotals:
    """Import new messages for one email source.

    Each message is committed on its own, so a crash mid-source loses at most
    the message in flight and a rerun resumes through the ledger. The cursor
    moves once, at the end, to the newest message listed in this run.
    """
    source_id = source.id
    agency_id = source.agency_id
    totals = ImportTotals()

    senders = [s.strip() for s in (source.sender_emails or []) if s and s.strip()]
    if not senders:
        logger.warning("Email source %s has no sender addresses configured; skipping", source_id)
        return totals

    parser = (registry or default_registry).resolve(source.provider)
    message_ids: List[str] = mail_client.list_candidate_messages(
        senders, stop_at=source.last_sync_message_id
    )
    logger.info(
        "Found %d candidate message(s) for source %s (agency=%s, provider=%s)",
        len(message_ids),
        source_id,
        agency_id,
        source.provider,
    )
    newest_seen = message_ids[0] if message_ids else None

    try:
        for message_id in message_ids:
            if has_been_processed(db, source_id, message_id):
                totals.skipped += 1
                continue

            message: Optional[MailMessage] = None
            try:
                message = mail_client.fetch_message(message_id)
                status = _import_message(db, source, parser, message)
                db.commit()
            except AuthError:
                db.rollback()
                raise
            except Exception as exc:
                db.rollback()
                if isinstance(exc, IntegrityError) and has_been_processed(db, source_id, message_id):
                    logger.warning("Message %s was recorded by a concurrent cycle", message_id)
                    totals.skipped += 1
                    continue
                logger.exception("Failed to import message %s (source=%s)", message_id, source_id)
                record_import(
                    db,
                    agency_id=agency_id,
                    source_id=source_id,
                    status=STATUS_PARSE_ERROR,
                    error_message=str(exc) or exc.__class__.__name__,
                    **_message_fields(message_id, message),
                )
                db.commit()
                status = STATUS_PARSE_ERROR
            totals.count(status)
    except Exception:
        # Keep the watermark so unvisited messages are listed again next cycle.
        advance_cursor(db, source_id, None, totals.imported, totals.duplicates, totals.errors)
        db.commit()
        raise

    advance_cursor(db, source_id, newest_seen, totals.imported, totals.duplicates, totals.errors)
    db.commit()

    logger.info(
        "Source %s done: %d imported, %d duplicate(s), %d error(s), %d already processed",
        source_id,
        totals.imported,
        totals.duplicates,
        totals.errors,
        totals.skipped,
    )
    return totals


def _active_source_ids(db: Session, agency_id: Optional[str] = None) -> List[int]:
    query = db.query(EmailSource.id).filter(EmailSource.is_active.is_(True))
    if agency_id is not None:
        query = query.filter(EmailSource.agency_id == agency_id)
    return [row[0] for row in query.order_by(EmailSource.id).all()]


def _run_sources(
    source_ids: List[int],
    session_factory: Callable[[], Session],
    mail_client: GmailClient,
) -> ImportTotals:
    totals = ImportTotals()
    for source_id in source_ids:
        try:
            with session_scope(session_factory) as db:
                source = db.get(EmailSource, source_id)
                if source is None or not source.is_active:
                    continue
                totals.merge(process_source(db, source, mail_client))
        except AuthError:
            raise
        except Exception:
            logger.exception("Email import failed for source %s; continuing", source_id)
            totals.errors += 1
            try:
                with session_scope(session_factory) as db:
                    advance_cursor(db, source_id, None, errors=1)
            except Exception:
                logger.exception("Could not record the failure for source %s", source_id)
    return totals


def run_email_import_for_agency(
    agency_id: str,
    *,
    session_factory: Callable[[], Session] = SessionLocal,
    mail_client: Optional[GmailClient] = None,
) -> ImportTotals:
    """Run one import pass over the agency's active email sources."""
    with session_scope(session_factory) as db:
        source_ids = _active_source_ids(db, agency_id)

    if not source_ids:
        logger.info("No active email sources for agency %s", agency_id)
        return ImportTotals()

    totals = _run_sources(source_ids, session_factory, mail_client or GmailClient())
    logger.info(
        "Email import for agency %s: %d imported, %d duplicate(s), %d error(s)",
        agency_id,
        totals.imported,
        totals.duplicates,
        totals.errors,
    )
    return totals


def run_email_import_for_all_agencies(
    *,
    session_factory: Callable[[], Session] = SessionLocal,
    mail_client: Optional[GmailClient] = None,
) -> ImportTotals:
    """One full import cycle across every active email source."""
    with session_scope(session_factory) as db:
        source_ids = _active_source_ids(db)

    if not source_ids:
        logger.info("No active email sources configured; nothing to import")
        return ImportTotals()

    logger.info("Starting email import cycle for %d source(s)", len(source_ids))
    totals = _run_sources(source_ids, session_factory, mail_client or GmailClient())
    logger.info(
        "Email import cycle complete: %d imported, %d duplicate(s), %d error(s), %d skipped",
        totals.imported,
        totals.duplicates,
        totals.errors,
        totals.skipped,
    )
    return totals


def check_gmail_connection(mail_client: Optional[GmailClient] = None) -> Dict[str, Any]:
    """Probe the connected mailbox; never raises."""
    client = mail_client or GmailClient()
    try:
        address = client.get_profile_address()
    except Exception as exc:
        logger.warning("Gmail connection check failed: %s", exc)
        return {"connected": False, "email_address": None, "error": str(exc)}

    logger.info("Gmail connection OK (mailbox=%s)", address)
    return {"connected": True, "email_address": address, "error": None}
