"""Ingestion package for the lead mail import service.

Contains configuration, deduplication, lead persistence, the import ledger,
the sync cursor and the per-source import orchestration.
"""

from .config import email_import_settings  # noqa: F401
