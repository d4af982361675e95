"""EasyBroker contact notifications."""
from __future__ import annotations

import re

from .base import NAME_PATTERN, PROPERTY_RULE, LabelRule, TemplateParser, accent_insensitive

_LISTING_ID_RE = re.compile(r"\bEB-[A-Z0-9]+\b", re.IGNORECASE)


class EasyBrokerParser(TemplateParser):
    provider = "easybroker"
    source_label = "EasyBroker"

    announcement_patterns = (
        re.compile(
            rf"(?P<name>{NAME_PATTERN})\s+te\s+ha\s+contactado",
            re.IGNORECASE,
        ),
        re.compile(
            rf"{accent_insensitive('nuevo mensaje de')}\b\s*:?\s*(?P<name>{NAME_PATTERN})?",
            re.IGNORECASE,
        ),
        re.compile(
            rf"{accent_insensitive('nuevo contacto')}\s*:\s*(?P<name>{NAME_PATTERN})?",
            re.IGNORECASE,
        ),
    )
    property_rules = (
        PROPERTY_RULE,
        LabelRule(("interesado en", "interesada en", "interested in"), anchored=False, allow_next_line=False),
    )
    excluded_domains = ("easybroker.com",)
    subject_prefixes = (
        re.compile(
            rf"^\s*(?:{accent_insensitive('nuevo mensaje')}|{accent_insensitive('nuevo contacto')})"
            r"\s*(?:de\s+contacto\s+)?(?:para|por|sobre)?\s*(?:la\s+)?(?:propiedad)?\s*:?\s*",
            re.IGNORECASE,
        ),
    )

    def property_from_subject(self, subject: str) -> str | None:
        # Keep the portal's listing id: agents search by it.
        listing = _LISTING_ID_RE.search(subject or "")
        label = super().property_from_subject(subject)
        if listing and label and listing.group(0).lower() not in label.lower():
            return f"{listing.group(0).upper()} {label}"
        return label or (listing.group(0).upper() if listing else None)
