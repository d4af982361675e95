"""
Portal notification parsers and the registry that picks one per email source.

Adding a portal means writing a ParserStrategy and registering it under the
source's provider key; dispatch itself never changes.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .base import ParsedLead, ParserStrategy  # noqa: F401
from .easybroker import EasyBrokerParser
from .generic import GenericParser
from .tokko import TokkoParser

logger = logging.getLogger("leadmail.parsers.registry")

FALLBACK_PROVIDER = "other"


class ParserRegistry:
    """Maps provider identifiers to parser strategies, with a generic fallback."""

    def __init__(self, fallback: Optional[ParserStrategy] = None) -> None:
        self._parsers: Dict[str, ParserStrategy] = {}
        self._fallback = fallback or GenericParser(FALLBACK_PROVIDER)

    @staticmethod
    def _key(provider: Optional[str]) -> str:
        return (provider or "").strip().lower()

    def register(self, provider: str, parser: ParserStrategy) -> None:
        key = self._key(provider)
        if not key:
            raise ValueError("Parser provider key must be a non-empty string")
        if key in self._parsers:
            logger.info("Replacing parser registered for provider %r", key)
        self._parsers[key] = parser

    def resolve(self, provider: Optional[str]) -> ParserStrategy:
        parser = self._parsers.get(self._key(provider))
        if parser is None:
            logger.debug("No parser for provider %r; using generic parser", provider)
            return self._fallback
        return parser

    def providers(self) -> List[str]:
        return sorted(self._parsers)


def build_default_registry() -> ParserRegistry:
    registry = ParserRegistry()
    registry.register("tokko", TokkoParser())
    registry.register("easybroker", EasyBrokerParser())
    for provider in ("inmuebles24", "mercadolibre", FALLBACK_PROVIDER):
        registry.register(provider, GenericParser(provider))
    return registry


default_registry = build_default_registry()


def resolve_parser(provider: Optional[str]) -> ParserStrategy:
    return default_registry.resolve(provider)


__all__ = [
    "EasyBrokerParser",
    "GenericParser",
    "ParsedLead",
    "ParserRegistry",
    "ParserStrategy",
    "TokkoParser",
    "build_default_registry",
    "default_registry",
    "resolve_parser",
]
