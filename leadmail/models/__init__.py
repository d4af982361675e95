"""
Models package for the lead mail import service.

Imports and exposes ORM models so they are registered with Base.metadata.
"""

from leadmail.db import Base
from .email_import_log import (  # noqa: F401
    IMPORT_STATUSES,
    STATUS_DUPLICATE,
    STATUS_PARSE_ERROR,
    STATUS_SUCCESS,
    EmailImportLog,
)
from .email_source import EmailSource  # noqa: F401
from .lead import Lead  # noqa: F401

__all__ = [
    "Base",
    "EmailImportLog",
    "EmailSource",
    "IMPORT_STATUSES",
    "Lead",
    "STATUS_DUPLICATE",
    "STATUS_PARSE_ERROR",
    "STATUS_SUCCESS",
]
