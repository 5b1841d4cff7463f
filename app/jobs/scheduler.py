"""
Background Jobs - scheduled roadmap sync
"""
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from datetime import datetime, timedelta, timezone

import structlog

logger = structlog.get_logger('jobs')


class JobScheduler:
    """Runs the startup sync and the periodic staleness check in background threads"""

    def __init__(self, sync_service, settings):
        self.sync_service = sync_service
        self.settings = settings
        self.scheduler = BackgroundScheduler(timezone=timezone.utc)
        self._jobs_registered = False

    def init_app(self, app):
        """Register jobs, start the scheduler and attach it to the Flask app"""
        self._register_jobs()
        self.scheduler.start()
        app.extensions['job_scheduler'] = self
        logger.info("Job scheduler initialized")

    def _register_jobs(self):
        """Register all scheduled jobs"""
        if self._jobs_registered:
            return

        sync_settings = self.settings['sync']

        # One-shot sync shortly after startup, so queries are served immediately
        if sync_settings.get('on_startup', True):
            self.scheduler.add_job(
                func=self._sync_if_needed_job,
                trigger=DateTrigger(run_date=datetime.now(timezone.utc) + timedelta(seconds=1)),
                id='startup_sync',
                name='Startup Sync',
            )

        self.scheduler.add_job(
            func=self._sync_if_needed_job,
            trigger=IntervalTrigger(minutes=sync_settings['interval_minutes']),
            id='periodic_sync',
            name='Periodic Sync',
            max_instances=1,
            coalesce=True,
        )

        self._jobs_registered = True
        logger.info("Background jobs registered", interval_minutes=sync_settings['interval_minutes'])

    def _sync_if_needed_job(self):
        """Sync when the checkpoint is stale; never raises into the scheduler"""
        staleness_hours = self.settings['sync']['staleness_hours']
        try:
            if not self.sync_service.is_sync_needed(staleness_hours):
                logger.debug("Data is fresh, skipping scheduled sync", staleness_hours=staleness_hours)
                return None

            result = self.sync_service.perform_sync()
            if result.success:
                logger.info(
                    "Scheduled sync completed",
                    records_processed=result.records_processed,
                    not_modified=result.not_modified,
                )
            elif result.skipped:
                logger.info("Scheduled sync skipped", reason=result.error)
            else:
                logger.warning("Scheduled sync failed", error=result.error)
            return result
        except Exception as e:
            logger.error("Scheduled sync job crashed", error=str(e), exc_info=True)
            return None

    @property
    def running(self):
        return self.scheduler.running

    def get_jobs(self):
        return [
            {
                'id': job.id,
                'name': job.name,
                'next_run_time': job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in self.scheduler.get_jobs()
        ]

    def shutdown(self):
        """Stop the scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Job scheduler shutdown")
