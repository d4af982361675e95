"""Tokko Broker consultation notifications ("Hay una nueva consulta de ...")."""
from __future__ import annotations

import re

from .base import NAME_PATTERN, TemplateParser, accent_insensitive

_CONSULTA = accent_insensitive("nueva consulta")


class TokkoParser(TemplateParser):
    provider = "tokko"
    source_label = "Tokko Broker"

    announcement_patterns = (
        re.compile(
            rf"(?:hay\s+una\s+)?{_CONSULTA}\s+(?:de|from)\b\s*:?\s*(?P<name>{NAME_PATTERN})?",
            re.IGNORECASE,
        ),
        re.compile(
            rf"(?P<name>{NAME_PATTERN})\s+{accent_insensitive('realizó una consulta')}",
            re.IGNORECASE,
        ),
    )
    excluded_domains = ("tokkobroker.com", "tokko.com")
    subject_prefixes = (
        re.compile(rf"^\s*(?:{_CONSULTA}|consulta)\s*(?:por|sobre|de)?\s*:?\s*", re.IGNORECASE),
        re.compile(r"^\s*(?:propiedad|property|inmueble)\s*[:#]\s*", re.IGNORECASE),
    )
