import logging
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from database import session_scope
from services import expire_stale_invitations


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def expire_invitations_job(source: str = "manual", now: Optional[datetime] = None) -> int:
    with session_scope() as session:
        count = expire_stale_invitations(session, now)
    logger.info(f"invitation_expiry: source={source} expired={count}")
    return count


class SchedulerManager:
    """Runs partner-invitation housekeeping in a background thread.

    Expiry runs once at startup, nightly at 03:15 local time, and hourly so
    a missed nightly run never leaves stale invitations around for long.
    """

    def __init__(self) -> None:
        self.scheduler = BackgroundScheduler(timezone=get_settings().timezone)

    def _register(self) -> None:
        self.scheduler.add_job(
            expire_invitations_job,
            CronTrigger(hour=3, minute=15),
            args=["nightly"],
            id="invitation_expiry_nightly",
            replace_existing=True,
            misfire_grace_time=3600,
        )
        self.scheduler.add_job(
            expire_invitations_job,
            IntervalTrigger(hours=1),
            args=["hourly"],
            id="invitation_expiry_hourly",
            replace_existing=True,
            misfire_grace_time=300,
        )

    def start(self) -> None:
        expire_invitations_job("startup")
        self._register()
        self.scheduler.start()
        logger.info(
            f"scheduler_started: jobs={[job.id for job in self.scheduler.get_jobs()]}"
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("scheduler_stopped")
