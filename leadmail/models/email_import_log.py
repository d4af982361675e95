import datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from leadmail.db import Base

STATUS_SUCCESS = "success"
STATUS_DUPLICATE = "duplicate"
STATUS_PARSE_ERROR = "parse_error"

IMPORT_STATUSES = (STATUS_SUCCESS, STATUS_DUPLICATE, STATUS_PARSE_ERROR)


class EmailImportLog(Base):
    """One immutable ledger row per (source, Gmail message)."""

    __tablename__ = "email_import_logs"

    id: int = Column(Integer, primary_key=True, index=True)
    agency_id: str = Column(String(64), index=True, nullable=False)
    source_id: int = Column(
        Integer, ForeignKey("email_import_sources.id"), index=True, nullable=False
    )
    gmail_message_id: str = Column(String(64), nullable=False)
    gmail_thread_id: Optional[str] = Column(String(64), nullable=True)
    email_subject: Optional[str] = Column(String(512), nullable=True)
    email_from: Optional[str] = Column(String(255), nullable=True)
    email_date: Optional[datetime.datetime] = Column(DateTime, nullable=True)

    status: str = Column(String(16), index=True, nullable=False)
    parsed_data: Optional[Dict[str, Any]] = Column(JSON, nullable=True)
    lead_id: Optional[str] = Column(String(36), ForeignKey("leads.id"), nullable=True)
    duplicate_of_lead_id: Optional[str] = Column(
        String(36), ForeignKey("leads.id"), nullable=True
    )
    duplicate_reason: Optional[str] = Column(String(32), nullable=True)
    error_message: Optional[str] = Column(Text, nullable=True)

    created_at: datetime.datetime = Column(
        DateTime, default=datetime.datetime.utcnow, nullable=False, index=True
    )

    __table_args__ = (
        UniqueConstraint(
            "source_id", "gmail_message_id", name="uq_email_import_logs_source_message"
        ),
        Index("ix_email_import_logs_agency_created", "agency_id", "created_at"),
    )
