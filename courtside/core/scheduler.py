"""
Automated task scheduler for the ingestion pipeline.

This module provides:
- TaskScheduler: the deferred-work interface the pipeline services call
  (schedule_at / schedule_after, fire-and-forget)
- APSchedulerTaskScheduler: TaskScheduler backed by one-off DateTrigger jobs
- AutomationScheduler: the daily/recurring jobs (discovery per league, the
  optional game queue, daily player reconciliation)

Jobs reference their callables by text ("courtside.tasks:check_game_status")
so they can live in a persistent job store and survive restarts.

Scheduler: APScheduler (lightweight, FastAPI-compatible)
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from courtside.core.config import settings
from courtside.core.leagues import LEAGUE_KEYS
from courtside.utils.timezone import utc_now

logger = logging.getLogger(__name__)

CHECK_GAME_TASK = "courtside.tasks:check_game_status"

# Daily discovery times (UTC), staggered per league
DISCOVERY_TIMES = {
    "nba": (15, 0),
    "wnba": (15, 5),
    "gleague": (15, 10),
}

# Daily player season-line reconciliation times (UTC), staggered per league
RECONCILE_TIMES = {
    "nba": (18, 0),
    "wnba": (18, 20),
    "gleague": (18, 40),
}


def check_job_id(league: str, game_event_id: str) -> str:
    """One pending status check per game; rescheduling replaces it."""
    return f"check_game:{league}:{game_event_id}"


class TaskScheduler:
    """Deferred task interface: enqueue a task reference to run later."""

    def schedule_at(
        self,
        run_at: datetime,
        task_ref: str,
        kwargs: Dict[str, Any],
        job_id: Optional[str] = None,
    ) -> None:
        raise NotImplementedError

    def schedule_after(
        self,
        delay: timedelta,
        task_ref: str,
        kwargs: Dict[str, Any],
        job_id: Optional[str] = None,
    ) -> None:
        self.schedule_at(utc_now() + delay, task_ref, kwargs, job_id=job_id)


class APSchedulerTaskScheduler(TaskScheduler):
    """TaskScheduler that adds one-off DateTrigger jobs to an APScheduler."""

    def __init__(self, scheduler: AsyncIOScheduler):
        self.scheduler = scheduler

    def schedule_at(
        self,
        run_at: datetime,
        task_ref: str,
        kwargs: Dict[str, Any],
        job_id: Optional[str] = None,
    ) -> None:
        # Stored datetimes are naive UTC
        if run_at.tzinfo is None:
            run_at = run_at.replace(tzinfo=timezone.utc)
        self.scheduler.add_job(
            task_ref,
            trigger=DateTrigger(run_date=run_at),
            kwargs=kwargs,
            id=job_id,
            replace_existing=job_id is not None,
            misfire_grace_time=None,  # a late check is still useful
        )
        logger.debug(f"Scheduled {task_ref} {kwargs} at {run_at.isoformat()}")


_task_scheduler: Optional[TaskScheduler] = None


def set_task_scheduler(task_scheduler: Optional[TaskScheduler]) -> None:
    global _task_scheduler
    _task_scheduler = task_scheduler


def get_task_scheduler() -> Optional[TaskScheduler]:
    """The process-wide TaskScheduler, None while the automation scheduler is stopped."""
    return _task_scheduler


class AutomationScheduler:
    """
    Main scheduler for automated background tasks.

    All recurring jobs are defined here with clear schedules. Job bodies live
    in courtside.tasks and contain their own error handling.
    """

    def __init__(self, app_settings=settings):
        self.settings = app_settings
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.running = False

    def _build_scheduler(self) -> AsyncIOScheduler:
        jobstores = {}
        if self.settings.SCHEDULER_JOBSTORE_URL:
            jobstores["default"] = SQLAlchemyJobStore(url=self.settings.SCHEDULER_JOBSTORE_URL)
        return AsyncIOScheduler(
            jobstores=jobstores,
            timezone=self.settings.SCHEDULER_TIMEZONE,
            job_defaults={
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,  # Only one instance of each job
                'misfire_grace_time': 300  # 5 minutes grace for misfires
            }
        )

    async def start(self):
        """Start the scheduler."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting automation scheduler...")

        self.scheduler = self._build_scheduler()

        if self.settings.GAME_QUEUE_ENABLED:
            self._schedule_game_queue()
        else:
            self._schedule_discovery()
        self._schedule_player_reconciliation()

        self.scheduler.start()
        set_task_scheduler(APSchedulerTaskScheduler(self.scheduler))
        self.running = True
        logger.info("✅ Scheduler started with %d jobs", len(self.scheduler.get_jobs()))

        self._log_scheduled_jobs()

    async def stop(self):
        """Stop the scheduler."""
        if not self.running:
            return

        logger.info("Stopping scheduler...")
        set_task_scheduler(None)
        self.scheduler.shutdown(wait=False)
        self.running = False
        logger.info("✅ Scheduler stopped")

    def _schedule_discovery(self):
        """
        Schedule: Discover each league's games for today.

        Frequency: Daily, 15:00 / 15:05 / 15:10 UTC (nba / wnba / gleague)
        Purpose: Upsert teams, standings and games; seed per-game status checks
        """
        for league in LEAGUE_KEYS:
            hour, minute = DISCOVERY_TIMES[league]
            self.scheduler.add_job(
                "courtside.tasks:discover_games",
                trigger=CronTrigger(hour=hour, minute=minute, timezone="UTC"),
                kwargs={"league": league},
                id=f"discover_{league}",
                name=f"Discover {league.upper()} Games",
                replace_existing=True,
                misfire_grace_time=3600,
            )

        logger.info("📅 Scheduled: Daily discovery (15:00/15:05/15:10 UTC)")

    def _schedule_game_queue(self):
        """
        Schedule: Batch polling through the game queue.

        Frequency: populate daily 15:00 UTC, process every 15 minutes,
                   cleanup daily 06:00 UTC
        Purpose: Drive every league's games from queue rows instead of
                 per-game self-rescheduling checks
        """
        self.scheduler.add_job(
            "courtside.tasks:populate_game_queue",
            trigger=CronTrigger(hour=15, minute=0, timezone="UTC"),
            id="game_queue_populate",
            name="Populate Game Queue",
            replace_existing=True,
            misfire_grace_time=3600,
        )
        self.scheduler.add_job(
            "courtside.tasks:process_game_queue",
            trigger=IntervalTrigger(minutes=15),
            id="game_queue_process",
            name="Process Game Queue",
            replace_existing=True,
        )
        self.scheduler.add_job(
            "courtside.tasks:cleanup_game_queue",
            trigger=CronTrigger(hour=6, minute=0, timezone="UTC"),
            id="game_queue_cleanup",
            name="Clean Up Game Queue",
            replace_existing=True,
        )

        logger.info("🎯 Scheduled: Game queue (populate daily, process every 15 min)")

    def _schedule_player_reconciliation(self):
        """
        Schedule: Reconcile player season lines with the core API.

        Frequency: Daily, 18:00 / 18:20 / 18:40 UTC (nba / wnba / gleague)
        Purpose: Patch player averages left short by games the pipeline missed
        """
        for league in LEAGUE_KEYS:
            hour, minute = RECONCILE_TIMES[league]
            self.scheduler.add_job(
                "courtside.tasks:reconcile_player_stats",
                trigger=CronTrigger(hour=hour, minute=minute, timezone="UTC"),
                kwargs={"league": league},
                id=f"reconcile_{league}_player_stats",
                name=f"Reconcile {league.upper()} Player Stats",
                replace_existing=True,
                misfire_grace_time=3600,
            )

        logger.info("📊 Scheduled: Daily player reconciliation (18:00/18:20/18:40 UTC)")

    def get_jobs_status(self) -> List[Dict[str, Any]]:
        if self.scheduler is None:
            return []
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in self.scheduler.get_jobs()
        ]

    def _log_scheduled_jobs(self):
        """Log all scheduled jobs for visibility."""
        jobs = self.scheduler.get_jobs()

        logger.info("=" * 60)
        logger.info("SCHEDULED AUTOMATION JOBS")
        logger.info("=" * 60)

        for job in jobs:
            next_run = job.next_run_time
            next_run_str = next_run.strftime('%Y-%m-%d %H:%M %Z') if next_run else 'Pending'
            logger.info(f"  • {job.name}")
            logger.info(f"    ID: {job.id}")
            logger.info(f"    Next run: {next_run_str}")

        logger.info("=" * 60)
        logger.info(f"Total jobs scheduled: {len(jobs)}")
        logger.info("=" * 60)


# Global scheduler instance
_scheduler: Optional[AutomationScheduler] = None


async def start_scheduler() -> AutomationScheduler:
    """Start the global scheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AutomationScheduler()
        await _scheduler.start()
    return _scheduler


async def stop_scheduler():
    """Stop the global scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None


def get_scheduler() -> Optional[AutomationScheduler]:
    """Get the global scheduler instance."""
    return _scheduler
