from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

from leadmail.db import init_db
from leadmail.errors import EmailImportError
from leadmail.ingestion.services import (
    run_email_import_for_agency,
    run_email_import_for_all_agencies,
)
from leadmail.logging_config import configure_logging

logger = logging.getLogger("leadmail.import_job")


def run_import(agency_id: Optional[str] = None) -> int:
    """Run one import pass; returns a process exit code."""
    init_db()
    try:
        if agency_id:
            totals = run_email_import_for_agency(agency_id)
        else:
            totals = run_email_import_for_all_agencies()
    except EmailImportError as exc:
        logger.error("Email import job failed: %s", exc, exc_info=True)
        return 1

    logger.info(
        "Email import job done: %d imported, %d duplicate(s), %d error(s), %d skipped",
        totals.imported,
        totals.duplicates,
        totals.errors,
        totals.skipped,
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Run one Gmail lead import cycle outside the web process."
    )
    parser.add_argument(
        "--agency",
        metavar="ID",
        default=None,
        help="Only import sources belonging to this agency.",
    )
    args = parser.parse_args(argv)

    configure_logging()
    return run_import(agency_id=args.agency)


if __name__ == "__main__":
    sys.exit(main())
