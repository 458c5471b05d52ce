"""Daily background run of the recurring materializer."""

import asyncio
from typing import Optional

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from family_ledger.config import AppSettings, get_settings
from family_ledger.recurring.materializer import (
    RecurringMaterializer,
    RecurringProcessingError,
)


logger = structlog.get_logger(__name__)

JOB_ID = "recurring_materializer"


class RecurringScheduler:
    """
    Runs RecurringMaterializer.process_due once a day.

    The cron trigger fires at APP_RECURRING_RUN_HOUR in the configured
    timezone. Each run executes in the scheduler's worker thread with its
    own event loop.
    """

    def __init__(
        self,
        materializer: RecurringMaterializer,
        settings: Optional[AppSettings] = None,
    ):
        self._materializer = materializer
        self._settings = settings or get_settings().app
        self._scheduler: Optional[BackgroundScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def start(self) -> None:
        """Start the background scheduler."""
        if self._scheduler is not None:
            logger.warning("scheduler_already_running")
            return

        scheduler = BackgroundScheduler(timezone=self._settings.timezone)
        scheduler.add_job(
            func=self.run_once,
            trigger=CronTrigger(
                hour=self._settings.recurring_run_hour,
                minute=0,
                timezone=self._settings.timezone,
            ),
            id=JOB_ID,
            name="Recurring transactions",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(
            "scheduler_started",
            hour=self._settings.recurring_run_hour,
            timezone=self._settings.timezone,
        )

    def stop(self) -> None:
        """Stop the background scheduler gracefully."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=True)
            self._scheduler = None
            logger.info("scheduler_stopped")

    def run_once(self) -> None:
        """Job body. Failures are logged; the next day's run retries."""
        try:
            result = asyncio.run(self._materializer.process_due())
        except RecurringProcessingError as e:
            logger.error("scheduled_run_failed", error=str(e))
            return

        logger.info(
            "scheduled_run_completed",
            run_date=result.run_date.isoformat(),
            processed=result.processed,
            skipped=result.skipped,
            failed=result.failed,
        )
