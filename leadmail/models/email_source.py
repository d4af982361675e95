import datetime
from typing import List, Optional

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String

from leadmail.db import Base


class EmailSource(Base):
    """
    Per-agency inbound mail channel: which senders to trust, which parser to
    use, and the defaults applied to leads created from it.

    Only the sync cursor step writes to a source after creation
    (`last_sync_message_id`, `last_sync_at` and the running totals).
    """

    __tablename__ = "email_import_sources"

    id: int = Column(Integer, primary_key=True, index=True)
    agency_id: str = Column(String(64), index=True, nullable=False)
    provider: str = Column(String(32), nullable=False, default="other")
    provider_name: Optional[str] = Column(String(128), nullable=True)
    sender_emails: List[str] = Column(JSON, nullable=False, default=list)

    default_seller_id: Optional[str] = Column(String(64), nullable=True)
    default_registration_type: Optional[str] = Column(String(32), nullable=True)
    default_source: Optional[str] = Column(String(64), nullable=True)

    last_sync_message_id: Optional[str] = Column(String(64), nullable=True)
    last_sync_at: Optional[datetime.datetime] = Column(DateTime, nullable=True)
    total_imported: int = Column(Integer, nullable=False, default=0)
    total_duplicates: int = Column(Integer, nullable=False, default=0)
    total_errors: int = Column(Integer, nullable=False, default=0)

    is_active: bool = Column(Boolean, nullable=False, default=True, index=True)
    created_at: datetime.datetime = Column(
        DateTime, default=datetime.datetime.utcnow, nullable=False
    )
    updated_at: datetime.datetime = Column(
        DateTime, default=datetime.datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"EmailSource(id={self.id}, agency_id={self.agency_id}, "
            f"provider={self.provider})"
        )
