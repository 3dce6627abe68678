#!/usr/bin/env python3
"""
Background runner for the Courtside automation scheduler.

Runs the scheduler as a standalone service (systemd, supervisor, or
directly), or runs one pipeline task by hand and exits.

Usage:
    python run_scheduler.py                                   # Run in foreground
    python run_scheduler.py --list-jobs                       # Show the jobs that would be scheduled
    python run_scheduler.py --trigger discover --league nba --date 20250110
    python run_scheduler.py --trigger backfill --league wnba --bootstrap
    python run_scheduler.py --trigger recalculate --league gleague --season 2024-25
    python run_scheduler.py --trigger reconcile --league nba --limit 50 --dry-run
    python run_scheduler.py --trigger queue-process
"""
import argparse
import asyncio
import json
import logging
import signal
import sys

from courtside.core.config import settings
from courtside.core.database import init_db
from courtside.core.leagues import LEAGUE_KEYS
from courtside.core.logging import configure_logging
from courtside.core.scheduler import AutomationScheduler
from courtside import tasks

configure_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)
logger = logging.getLogger(__name__)

TRIGGERS = ("discover", "queue-populate", "queue-process", "queue-cleanup", "recalculate", "backfill", "reconcile")


class SchedulerRunner:
    """Runner for the automation scheduler."""

    def __init__(self):
        self.scheduler: AutomationScheduler = None
        self.shutdown = False

    async def start(self):
        """Start the scheduler and run until shutdown."""
        logger.info("🚀 Starting scheduler runner...")

        init_db()
        self.scheduler = AutomationScheduler()
        await self.scheduler.start()

        logger.info("✅ Scheduler is now running")
        logger.info("Press Ctrl+C to stop")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._set_shutdown)

        while not self.shutdown:
            await asyncio.sleep(1)

        await self.scheduler.stop()
        logger.info("✅ Scheduler runner stopped")

    def _set_shutdown(self):
        logger.info("⏹️  Shutdown signal received")
        self.shutdown = True


async def _list_jobs() -> None:
    scheduler = AutomationScheduler()
    await scheduler.start()
    try:
        for job in scheduler.get_jobs_status():
            print(f"   • {job['id']}")
            print(f"     Next run: {job['next_run_time'] or 'Pending'}")
    finally:
        await scheduler.stop()


async def run_trigger(args: argparse.Namespace) -> dict:
    """Run one task by hand and return its summary."""
    init_db()
    leagues = [args.league] if args.league else list(LEAGUE_KEYS)

    if args.trigger == "queue-populate":
        return await tasks.populate_game_queue(args.date)
    if args.trigger == "queue-process":
        return await tasks.process_game_queue()
    if args.trigger == "queue-cleanup":
        return await tasks.cleanup_game_queue()

    results = {}
    for league in leagues:
        if args.trigger == "discover":
            results[league] = await tasks.discover_games(league, args.date)
        elif args.trigger == "recalculate":
            results[league] = await tasks.recalculate_league(league, args.season)
        elif args.trigger == "backfill":
            results[league] = await tasks.backfill_league(
                league,
                start_date=args.start_date,
                end_date=args.end_date,
                team=args.team,
                bootstrap=args.bootstrap,
            )
        elif args.trigger == "reconcile":
            results[league] = await tasks.reconcile_player_stats(
                league, season=args.season, limit=args.limit, dry_run=args.dry_run,
            )
    return results


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Run the Courtside automation scheduler, or one pipeline task'
    )
    parser.add_argument('--list-jobs', action='store_true', help='List all scheduled jobs and exit')
    parser.add_argument('--trigger', choices=TRIGGERS, help='Run one task now and exit')
    parser.add_argument('--league', choices=LEAGUE_KEYS, help='League for the task (default: all)')
    parser.add_argument('--date', help='YYYYMMDD league date for discovery')
    parser.add_argument('--season', help='Season for recalculation or reconciliation, e.g. 2024-25 or 2025')
    parser.add_argument('--start-date', help='YYYYMMDD first backfill date')
    parser.add_argument('--end-date', help='YYYYMMDD last backfill date')
    parser.add_argument('--team', help='Backfill only games of this provider team id')
    parser.add_argument('--bootstrap', action='store_true', help='Bootstrap teams and players before backfill')
    parser.add_argument('--limit', type=int, help='Reconcile only the first N players')
    parser.add_argument('--dry-run', action='store_true', help='Count reconciliation changes without writing')

    args = parser.parse_args()

    if args.list_jobs:
        asyncio.run(_list_jobs())
        return 0

    if args.trigger:
        result = asyncio.run(run_trigger(args))
        print(json.dumps(result, indent=2, default=str))
        return 0

    runner = SchedulerRunner()
    try:
        asyncio.run(runner.start())
    except KeyboardInterrupt:
        logger.info("🛑 Received interrupt, shutting down...")
        return 0
    except Exception as e:
        logger.error(f"❌ Scheduler error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
