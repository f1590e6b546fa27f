"""
Background jobs for MFL League Analytics.

Two recurring jobs run on an APScheduler BackgroundScheduler:
- current_season_refresh: nightly forced refresh of the season in progress,
  so the first requests of the day hit a warm cache
- cache_cleanup: periodic eviction of entries too old to serve even as
  stale fallbacks (CACHE_MAX_ENTRY_AGE_DAYS)

Settings come from the Flask config (SCHEDULER_* keys). Jobs can be called
directly, which is how the tests exercise them.
"""

import logging
import os
import time
from typing import Any, Dict, List, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MISSED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


REFRESH_JOB_ID = 'current_season_refresh'
CLEANUP_JOB_ID = 'cache_cleanup'


class SchedulerService:
    """
    Owns the BackgroundScheduler and the job functions it runs.

    Usage:
        jobs = SchedulerService()
        jobs.init_app(app)
        jobs.start()
    """

    def __init__(self):
        self._app = None
        self._scheduler: Optional[BackgroundScheduler] = None

    def init_app(self, app):
        """Bind to an application and build (but do not start) the scheduler."""
        self._app = app
        timezone = app.config.get('SCHEDULER_TIMEZONE', 'America/New_York')

        self._scheduler = BackgroundScheduler(
            timezone=timezone,
            job_defaults={
                'coalesce': True,
                'max_instances': 1,
                'misfire_grace_time': 3600,
            },
        )
        self._scheduler.add_listener(
            self._on_job_event,
            EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED,
        )
        logger.info(f"Job scheduler ready (timezone={timezone})")

    def start(self):
        if self._scheduler is None:
            raise RuntimeError("SchedulerService.init_app() must run before start()")

        config = self._app.config
        if not config.get('SCHEDULER_ENABLED', True):
            logger.info("Background jobs disabled (SCHEDULER_ENABLED=false)")
            return
        if self._scheduler.running:
            return

        self._scheduler.add_job(
            self.current_season_refresh_job,
            CronTrigger(
                hour=config.get('SCHEDULER_REFRESH_HOUR', 3),
                minute=config.get('SCHEDULER_REFRESH_MINUTE', 0),
                timezone=config.get('SCHEDULER_TIMEZONE', 'America/New_York'),
            ),
            id=REFRESH_JOB_ID,
            name='Current season refresh',
            replace_existing=True,
        )
        self._scheduler.add_job(
            self.cache_cleanup_job,
            IntervalTrigger(hours=config.get('CACHE_CLEANUP_INTERVAL_HOURS', 6)),
            id=CLEANUP_JOB_ID,
            name='Stale cache eviction',
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(f"Background jobs started: {[job['id'] for job in self.get_jobs()]}")

    def shutdown(self, wait: bool = True):
        if self.is_running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Background jobs stopped")

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    # =========================================================================
    # Jobs
    # =========================================================================

    def current_season_refresh_job(self) -> Dict[str, Any]:
        """
        Force-refresh the season in progress.

        Failures are reported in the returned dict rather than raised; a
        stale entry stays cached for requests in the meantime. A season cut
        short by rate limiting counts as a failure.

        Returns:
            {'success', 'cache_status', 'errors'}
        """
        started = time.monotonic()
        outcome: Dict[str, Any] = {'success': False, 'cache_status': None, 'errors': []}

        try:
            result = self._app.extensions['league_stats'].refresh_current_season()
        except Exception as e:
            logger.exception(f"Current season refresh failed: {e}")
            outcome['errors'].append(str(e))
        else:
            outcome['cache_status'] = result.metadata.get('cache_status')
            outcome['success'] = not (result.is_stale or result.is_partial)
            if result.is_stale:
                outcome['errors'].append(result.metadata.get('error'))
            elif result.is_partial:
                outcome['errors'].extend(result.metadata.get('warnings', []))

        logger.info(
            f"Current season refresh finished in {time.monotonic() - started:.1f}s "
            f"(cache_status={outcome['cache_status']}, errors={len(outcome['errors'])})"
        )
        return outcome

    def cache_cleanup_job(self) -> int:
        """Evict cache entries older than the configured maximum age."""
        removed = self._app.extensions['stats_cache'].cleanup()
        logger.debug(f"Cache cleanup evicted {removed} entries")
        return removed

    def _on_job_event(self, event):
        if event.code == EVENT_JOB_MISSED:
            logger.warning(f"Job {event.job_id} missed its run time")
        elif event.exception is not None:
            logger.error(f"Job {event.job_id} raised {event.exception!r}", exc_info=event.traceback)
        else:
            logger.debug(f"Job {event.job_id} completed")

    def get_jobs(self) -> List[Dict[str, Any]]:
        """Scheduled jobs with their next run times, for the status endpoint."""
        if self._scheduler is None:
            return []
        return [
            {
                'id': job.id,
                'name': job.name,
                'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
                'trigger': str(job.trigger),
            }
            for job in self._scheduler.get_jobs()
        ]


# =============================================================================
# Process-wide instance
# =============================================================================

_scheduler_instance: Optional[SchedulerService] = None


def get_scheduler() -> SchedulerService:
    global _scheduler_instance
    if _scheduler_instance is None:
        _scheduler_instance = SchedulerService()
    return _scheduler_instance


def init_scheduler(app) -> SchedulerService:
    """
    Bind the process-wide scheduler to `app` and start it.

    Under the debug reloader only the child process starts jobs.
    """
    scheduler = get_scheduler()
    scheduler.init_app(app)
    if not app.debug or os.environ.get('WERKZEUG_RUN_MAIN') == 'true':
        scheduler.start()
    return scheduler


def shutdown_scheduler():
    global _scheduler_instance
    if _scheduler_instance is not None:
        _scheduler_instance.shutdown()
        _scheduler_instance = None
