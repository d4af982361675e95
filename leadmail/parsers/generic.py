"""Fallback parser for portals without a dedicated template."""
from __future__ import annotations

import re
from typing import Optional

from .base import (
    NAME_WORD,
    NAME_PATTERN,
    ParsedLead,
    ParserStrategy,
    accent_insensitive,
    clean_name,
    find_email_fallback,
    find_phone_fallback,
)

# (pattern, capitalized): names found in running text must be capitalized.
NAME_HEURISTICS = (
    (re.compile(rf"\b(?:nombre|name)\s*:\s*(?P<name>{NAME_PATTERN})", re.IGNORECASE), False),
    (
        re.compile(
            rf"(?P<name>{NAME_WORD}(?:[ \t]+{NAME_WORD}){{0,3}})[ \t]+"
            rf"(?:quiere|desea|consulta|{accent_insensitive('está interesad')}[oa])",
            re.IGNORECASE,
        ),
        True,
    ),
)


class GenericParser(ParserStrategy):
    provider = "other"
    source_label = "Email Import"

    def __init__(self, provider: str = "other") -> None:
        self.provider = provider

    def find_name(self, body: str) -> Optional[str]:
        for pattern, capitalized in NAME_HEURISTICS:
            for line in body.splitlines():
                match = pattern.search(line)
                if match:
                    name = clean_name(match.group("name"), capitalized=capitalized)
                    if name:
                        return name
        return None

    def _parse(self, body: str, subject: str) -> Optional[ParsedLead]:
        name = self.find_name(body)
        if not name:
            return None
        return self._build(
            name,
            email=find_email_fallback(body),
            phone=find_phone_fallback(body),
        )
