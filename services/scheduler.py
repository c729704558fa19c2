"""Background scheduler for appointment reminders and missed-call recovery."""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from .appointment_service import AppointmentService
from .missed_call_recovery import MissedCallRecovery
from .supabase_client import get_supabase_client
from .telnyx_service import get_telnyx_service

logger = logging.getLogger(__name__)


class JobScheduler:
    """
    Background scheduler for the periodic SMS jobs.

    Reminders run every REMINDER_INTERVAL_MINUTES and text customers whose
    appointments fall in a reminder window. Missed-call recovery runs every
    MISSED_CALL_INTERVAL_MINUTES and texts back callers from the last hour.
    """

    def __init__(self):
        self.scheduler = AsyncIOScheduler()
        self._running = False

    async def send_due_reminders(self):
        """Send appointment reminders that have come due."""
        try:
            db = get_supabase_client()
            service = AppointmentService(db, get_telnyx_service())
            await service.process_due_reminders()
        except Exception as e:
            logger.error(f"Error sending appointment reminders: {e}")

    async def recover_missed_calls(self):
        """Text back callers whose calls were missed."""
        try:
            recovery = MissedCallRecovery(get_supabase_client(), get_telnyx_service())
            await recovery.process_missed_calls()
        except Exception as e:
            logger.error(f"Error recovering missed calls: {e}")

    def start(self):
        """Start the background scheduler."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        settings = get_settings()
        self.scheduler.add_job(
            self.send_due_reminders,
            trigger=IntervalTrigger(minutes=settings.reminder_interval_minutes),
            id="send_appointment_reminders",
            name="Send appointment reminders",
            replace_existing=True
        )
        self.scheduler.add_job(
            self.recover_missed_calls,
            trigger=IntervalTrigger(minutes=settings.missed_call_interval_minutes),
            id="recover_missed_calls",
            name="Recover missed calls",
            replace_existing=True
        )

        self.scheduler.start()
        self._running = True
        logger.info(
            f"Job scheduler started (reminders every {settings.reminder_interval_minutes} min, "
            f"missed calls every {settings.missed_call_interval_minutes} min)"
        )

    def stop(self):
        """Stop the background scheduler."""
        if not self._running:
            return

        self.scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Job scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if the scheduler is running."""
        return self._running


# Singleton instance
_scheduler: Optional[JobScheduler] = None


def get_job_scheduler() -> JobScheduler:
    """Get or create the job scheduler singleton."""
    global _scheduler
    if _scheduler is None:
        _scheduler = JobScheduler()
    return _scheduler
