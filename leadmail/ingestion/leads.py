import logging
from datetime import datetime
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from leadmail.ingestion.config import email_import_settings
from leadmail.models import EmailSource, Lead
from leadmail.parsers import ParsedLead

logger = logging.getLogger("leadmail.ingestion.leads")

DEFAULT_REGISTRATION_TYPE = "seller"
DEFAULT_LEAD_SOURCE = "email_import"
NEW_LEAD_STATUS = "nuevo_lead"
NOTES_PREFIX = "Mensaje original: "


def create_lead_from_email(
    db: Session,
    agency_id: str,
    source: EmailSource,
    candidate: ParsedLead,
    *,
    now: Optional[datetime] = None,
) -> str:
    """Insert a new lead for `candidate` using the source's defaults; returns its id."""
    now = now or datetime.utcnow()
    valid_until = now + relativedelta(months=email_import_settings.lead_validity_months)

    lead = Lead(
        agency_id=agency_id,
        registration_type=source.default_registration_type or DEFAULT_REGISTRATION_TYPE,
        first_name=candidate.first_name,
        last_name=candidate.last_name,
        email=candidate.email,
        phone=candidate.phone,
        phone_last4=candidate.phone[-4:] if candidate.phone else None,
        source=candidate.source or source.default_source or DEFAULT_LEAD_SOURCE,
        notes=f"{NOTES_PREFIX}{candidate.message}" if candidate.message else None,
        desired_property=(candidate.property_interest or "")[:255] or None,
        seller_id=source.default_seller_id,
        status=NEW_LEAD_STATUS,
        valid_until=valid_until,
        first_contact_date=now,
        created_by=source.default_seller_id,
    )
    db.add(lead)
    db.flush()  # assign PK for the ledger entry

    logger.info(
        "Created lead from email (id=%s, agency=%s, source=%s, email=%s)",
        lead.id,
        agency_id,
        lead.source,
        lead.email,
    )
    return lead.id
