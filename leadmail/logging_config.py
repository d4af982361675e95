from __future__ import annotations

import logging
from typing import Optional

from leadmail.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Chatty third-party loggers that drown out import cycle output at INFO.
_NOISY_LOGGERS = (
    "googleapiclient.discovery",
    "googleapiclient.discovery_cache",
    "apscheduler.executors.default",
    "urllib3.connectionpool",
)


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for the API process and the import job."""
    resolved = (level or settings.log_level or "INFO").upper()

    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    logging.getLogger().setLevel(resolved)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("leadmail.logging").debug("Logging configured at %s", resolved)
