import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from leadmail.models import EmailSource

logger = logging.getLogger("leadmail.ingestion.cursor")


def advance_cursor(
    db: Session,
    source_id: int,
    newest_seen_message_id: Optional[str],
    imported: int = 0,
    duplicates: int = 0,
    errors: int = 0,
    *,
    now: Optional[datetime] = None,
) -> None:
    """Move the source's watermark and bump its running totals.

    Counters are relative SQL increments so overlapping writers cannot lose
    updates. The watermark stays put when no message was observed.
    """
    if min(imported, duplicates, errors) < 0:
        raise ValueError("Import counters can only increase")

    now = now or datetime.utcnow()
    values = {
        "last_sync_at": now,
        "updated_at": now,
        "total_imported": EmailSource.total_imported + imported,
        "total_duplicates": EmailSource.total_duplicates + duplicates,
        "total_errors": EmailSource.total_errors + errors,
    }
    if newest_seen_message_id:
        values["last_sync_message_id"] = newest_seen_message_id

    db.execute(
        update(EmailSource)
        .where(EmailSource.id == source_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    logger.debug(
        "Advanced cursor for source %s (watermark=%s, +%d/+%d/+%d)",
        source_id,
        newest_seen_message_id,
        imported,
        duplicates,
        errors,
    )
