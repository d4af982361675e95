"""
Duplicate detection for leads parsed from email.

Two ordered checks, first match wins:

1. phone: last 10 digits of the stored phone, or the stored last-4 field;
2. email (case-insensitive) together with the normalized full name.

A phone match is the stronger signal, so it is checked first.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from leadmail.models import Lead
from leadmail.parsers import ParsedLead
from leadmail.parsers.base import digits_only

logger = logging.getLogger("leadmail.ingestion.dedup")

REASON_MATCHING_PHONE = "matching_phone"
REASON_MATCHING_EMAIL_NAME = "matching_email_name"


@dataclass(frozen=True)
class DuplicateCheck:
    is_duplicate: bool
    matched_lead_id: Optional[str] = None
    reason: Optional[str] = None


NOT_DUPLICATE = DuplicateCheck(is_duplicate=False)


def normalize_phone_for_comparison(phone: Optional[str]) -> Optional[str]:
    """Last 10 digits; last 4 for shorter numbers; None under 4 digits."""
    digits = digits_only(phone)
    if len(digits) >= 10:
        return digits[-10:]
    return digits[-4:] if len(digits) >= 4 else None


def normalize_name_for_comparison(first_name: Optional[str], last_name: Optional[str]) -> str:
    return re.sub(r"\s+", " ", f"{first_name or ''} {last_name or ''}").strip().casefold()


def _find_by_phone(db: Session, agency_id: str, normalized_phone: str) -> Optional[Lead]:
    last4 = normalized_phone[-4:]
    # Stored phones may carry separators; narrow in SQL on the last four
    # digits in order, then compare digits exactly here.
    loose = "%" + "%".join(last4) + "%"
    candidates = (
        db.query(Lead)
        .filter(
            Lead.agency_id == agency_id,
            or_(Lead.phone_last4 == last4, Lead.phone.like(loose)),
        )
        .order_by(Lead.created_at.asc())
        .all()
    )
    for lead in candidates:
        if lead.phone_last4 == last4:
            return lead
        stored = digits_only(lead.phone)
        if len(stored) >= 10 and stored[-10:] == normalized_phone:
            return lead
    return None


def _find_by_email_and_name(db: Session, agency_id: str, candidate: ParsedLead) -> Optional[Lead]:
    wanted_name = normalize_name_for_comparison(candidate.first_name, candidate.last_name)
    candidates = (
        db.query(Lead)
        .filter(
            Lead.agency_id == agency_id,
            func.lower(Lead.email) == candidate.email.strip().lower(),
        )
        .order_by(Lead.created_at.asc())
        .all()
    )
    for lead in candidates:
        if normalize_name_for_comparison(lead.first_name, lead.last_name) == wanted_name:
            return lead
    return None


def check_duplicate(db: Session, agency_id: str, candidate: ParsedLead) -> DuplicateCheck:
    normalized_phone = normalize_phone_for_comparison(candidate.phone)
    if normalized_phone:
        existing = _find_by_phone(db, agency_id, normalized_phone)
        if existing is not None:
            logger.debug("Lead %s matches candidate by phone", existing.id)
            return DuplicateCheck(True, existing.id, REASON_MATCHING_PHONE)

    if candidate.email:
        existing = _find_by_email_and_name(db, agency_id, candidate)
        if existing is not None:
            logger.debug("Lead %s matches candidate by email + name", existing.id)
            return DuplicateCheck(True, existing.id, REASON_MATCHING_EMAIL_NAME)

    return NOT_DUPLICATE
