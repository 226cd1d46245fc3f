import asyncio
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from core.config import settings as default_settings, Settings
from core.exceptions import SyncException, SyncInProgress
from ingestion.history import RunHistory
from ingestion.service import run_sync

logger = logging.getLogger(__name__)


class SyncScheduler:
    def __init__(self, settings: Settings = None, history: RunHistory = None, lock: asyncio.Lock = None):
        self.settings = settings or default_settings
        self.history = history if history is not None else RunHistory()
        # Shared with the /sync route when running inside the API
        self.lock = lock if lock is not None else asyncio.Lock()
        self.scheduler = AsyncIOScheduler()

    async def run_sync_job(self):
        """Job to run one sync pass"""
        logger.info("Scheduler: Starting sync job")
        try:
            summary = await run_sync(self.settings, history=self.history, lock=self.lock)
            logger.info(f"Scheduler: Sync job finished with status {summary.status.value}")
        except SyncInProgress:
            logger.warning("Scheduler: Another sync run is in progress, skipping this one")
        except SyncException as e:
            logger.error(f"Scheduler: Sync job aborted - {e}", extra={"error_context": e.to_dict()})
        except Exception:
            logger.exception("Scheduler: Sync job failed unexpectedly")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_sync_job,
            trigger=CronTrigger.from_crontab(self.settings.SYNC_CRON),
            id="search_console_sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.scheduler.start()
        logger.info(f"Sync Scheduler started ({self.settings.SYNC_CRON})")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Sync Scheduler stopped")
