"""
Background worker that runs the email lead import on a fixed interval.

The first cycle starts after a short delay so the database and connector are
ready; after that the interval job fires every EMAIL_IMPORT_INTERVAL_MINUTES.
A fire that lands while a cycle is still running is skipped, not queued.
"""
import logging
import threading
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from leadmail.ingestion.config import EmailImportSettings, email_import_settings
from leadmail.ingestion.services import check_gmail_connection, run_email_import_for_all_agencies

logger = logging.getLogger("leadmail.worker")

IMPORT_JOB_ID = "email_lead_import"
CONNECTION_CHECK_JOB_ID = "email_import_connection_check"


class EmailImportWorker:
    def __init__(
        self,
        settings: Optional[EmailImportSettings] = None,
        *,
        cycle: Optional[Callable[[], Any]] = None,
        connection_check: Optional[Callable[[], Dict[str, Any]]] = None,
    ) -> None:
        self._settings = settings or email_import_settings
        self._cycle = cycle or run_email_import_for_all_agencies
        self._connection_check = connection_check or check_gmail_connection
        # Non-blocking acquire only: a held lock means a cycle is in flight.
        self._cycle_lock = threading.Lock()
        self._scheduler: Optional[BackgroundScheduler] = None

    @property
    def is_running(self) -> bool:
        return self._cycle_lock.locked()

    @property
    def interval_ms(self) -> int:
        return self._settings.interval_seconds * 1000

    @property
    def started(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def run_import_cycle(self) -> bool:
        """Run one cycle unless another is in flight; True when this call ran it."""
        if not self._cycle_lock.acquire(blocking=False):
            logger.info("Previous import cycle still running, skipping")
            return False

        started_at = datetime.now(timezone.utc)
        try:
            logger.info("Email import cycle started")
            self._cycle()
        except Exception:
            # Next fire retries; the worker itself must stay up.
            logger.exception("Email import cycle failed")
        finally:
            self._cycle_lock.release()
            logger.info(
                "Email import cycle finished in %.1fs",
                (datetime.now(timezone.utc) - started_at).total_seconds(),
            )
        return True

    def _log_connection(self) -> None:
        result = self._connection_check()
        if result.get("connected"):
            logger.info("Gmail connected (mailbox=%s)", result.get("email_address"))
        else:
            logger.warning("Gmail not connected: %s", result.get("error"))

    def start(self) -> None:
        if self.started:
            logger.info("Email import worker already started")
            return

        first_run = datetime.now(timezone.utc) + timedelta(
            seconds=self._settings.initial_delay_seconds
        )
        scheduler = BackgroundScheduler(timezone="UTC")
        scheduler.add_job(
            self.run_import_cycle,
            trigger=IntervalTrigger(seconds=self._settings.interval_seconds),
            id=IMPORT_JOB_ID,
            next_run_time=first_run,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        scheduler.add_job(
            self._log_connection,
            id=CONNECTION_CHECK_JOB_ID,
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler

        logger.info(
            "Email import worker started (interval=%d min, first cycle at %s)",
            self._settings.interval_minutes,
            first_run.isoformat(),
        )

    def stop(self) -> None:
        """Stop scheduling; an in-flight cycle is left to finish on its own."""
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Email import worker stopped")

    def trigger_manual_import(self) -> bool:
        logger.info("Manual email import triggered")
        return self.run_import_cycle()

    def next_run_at(self) -> Optional[datetime]:
        if not self.started:
            return None
        job = self._scheduler.get_job(IMPORT_JOB_ID)
        return job.next_run_time if job is not None else None

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "interval_ms": self.interval_ms,
            "enabled": self.started,
            "next_run_at": self.next_run_at(),
        }


@lru_cache(maxsize=1)
def get_worker() -> EmailImportWorker:
    return EmailImportWorker()


def start_email_import_worker() -> None:
    get_worker().start()


def stop_email_import_worker() -> None:
    get_worker().stop()


def trigger_manual_import() -> bool:
    return get_worker().trigger_manual_import()


def get_worker_status() -> Dict[str, Any]:
    return get_worker().get_status()
