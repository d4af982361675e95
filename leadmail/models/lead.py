import datetime
import uuid
from typing import Optional

from sqlalchemy import Column, DateTime, Index, String, Text

from leadmail.db import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class Lead(Base):
    """Agency lead record. The import pipeline only ever inserts these."""

    __tablename__ = "leads"

    id: str = Column(String(36), primary_key=True, default=_new_id)
    agency_id: str = Column(String(64), index=True, nullable=False)
    registration_type: str = Column(String(32), nullable=False, default="seller")
    first_name: str = Column(String(100), nullable=False)
    last_name: str = Column(String(100), nullable=False, default="")
    email: Optional[str] = Column(String(255), index=True, nullable=True)
    phone: Optional[str] = Column(String(64), nullable=True)
    phone_last4: Optional[str] = Column(String(4), index=True, nullable=True)
    source: Optional[str] = Column(String(64), index=True, nullable=True)
    notes: Optional[str] = Column(Text, nullable=True)
    desired_property: Optional[str] = Column(String(255), nullable=True)
    seller_id: Optional[str] = Column(String(64), index=True, nullable=True)
    status: str = Column(String(32), index=True, nullable=False, default="nuevo_lead")
    valid_until: Optional[datetime.datetime] = Column(DateTime, nullable=True)
    first_contact_date: Optional[datetime.datetime] = Column(DateTime, nullable=True)
    created_by: Optional[str] = Column(String(64), nullable=True)
    created_at: datetime.datetime = Column(
        DateTime, default=datetime.datetime.utcnow, nullable=False, index=True
    )
    updated_at: datetime.datetime = Column(
        DateTime,
        default=datetime.datetime.utcnow,
        onupdate=datetime.datetime.utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_leads_agency_phone_last4", "agency_id", "phone_last4"),
        Index("ix_leads_agency_email", "agency_id", "email"),
    )
