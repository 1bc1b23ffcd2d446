#!/usr/bin/env python3
"""
Background runner for the oceanwatch scrape scheduler.

This script runs the scheduler as a standalone background service without
the HTTP API. It can be run via systemd, supervisor, or directly.

Usage:
    python run_scheduler.py              # Run in foreground
    python run_scheduler.py --once       # Run one daily batch and exit
    python run_scheduler.py --list-jobs  # Show the schedule and exit
"""
import asyncio
import argparse
import signal
import sys

from oceanwatch.core.config import settings
from oceanwatch.core.database import create_db_engine, create_session_factory, init_db
from oceanwatch.core.logging import configure_logging, get_logger
from oceanwatch.core.scheduler import ScrapeScheduler
from oceanwatch.services.market.poller import MarketOrderPoller
from oceanwatch.services.scraper.client import YowebClient

logger = get_logger(__name__)


class SchedulerRunner:
    """Runner for the scrape scheduler."""

    def __init__(self, run_on_startup: bool = True):
        self.run_on_startup = run_on_startup
        self.scheduler: ScrapeScheduler = None
        self._shutdown = asyncio.Event()

    async def start(self):
        """Start the scheduler and run until a shutdown signal arrives."""
        logger.info("🚀 Starting scheduler runner...")

        engine = create_db_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)
        init_db(engine)
        session_factory = create_session_factory(engine)

        async with YowebClient() as client:
            poller = MarketOrderPoller(session_factory, client, settings.OCEANS) if settings.MARKET_POLL_ENABLED else None
            self.scheduler = ScrapeScheduler(session_factory, client, poller=poller)
            await self.scheduler.start(run_on_startup=self.run_on_startup)

            logger.info("✅ Scheduler is now running")
            logger.info("Press Ctrl+C to stop")

            # Setup signal handlers for graceful shutdown
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, self._set_shutdown)

            await self._shutdown.wait()

            # Cleanup
            await self.scheduler.stop()

        engine.dispose()
        logger.info("✅ Scheduler runner stopped")

    def _set_shutdown(self):
        """Set shutdown flag."""
        logger.info("⏹️  Shutdown signal received")
        self._shutdown.set()


async def run_once() -> bool:
    """Run one daily batch for every ocean and report the outcome."""
    engine = create_db_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)
    init_db(engine)
    session_factory = create_session_factory(engine)

    async with YowebClient() as client:
        scheduler = ScrapeScheduler(session_factory, client)
        outcome = await scheduler.run_daily_batch() or {}

    engine.dispose()

    ok = True
    for ocean, result in outcome.items():
        if isinstance(result, BaseException):
            print(f"❌ {ocean}: {result!r}")
            ok = False
        else:
            print(f"✅ {ocean}: {result.status} "
                  f"({result.items_processed} processed, {result.items_failed} failed)")
    return ok


def list_jobs():
    """Print the configured schedule."""
    print("=" * 60)
    print("SCHEDULED SCRAPE JOBS")
    print("=" * 60)
    print()
    print("📋 Daily Ocean Scrape")
    print("   ID: daily_scrape")
    print(f"   Schedule: {settings.DAILY_SCRAPE_MINUTE:02d} {settings.DAILY_SCRAPE_HOUR} * * * "
          f"({settings.SCHEDULER_TIMEZONE})")
    print(f"   Oceans: {', '.join(o.value for o in settings.OCEANS)}")
    print()
    if settings.MARKET_POLL_ENABLED:
        print("📋 Market Order CSV Poll")
        print("   ID: market_poll")
        print(f"   Schedule: every {settings.MARKET_POLL_INTERVAL_MINUTES} minutes")
        print()
    print("=" * 60)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Run the oceanwatch scrape scheduler'
    )

    parser.add_argument(
        '--once',
        action='store_true',
        help='Run one daily batch for all oceans and exit'
    )

    parser.add_argument(
        '--no-startup-run',
        action='store_true',
        help='Do not run a batch immediately on startup'
    )

    parser.add_argument(
        '--list-jobs',
        action='store_true',
        help='List all scheduled jobs and exit'
    )

    args = parser.parse_args()

    configure_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)

    if args.list_jobs:
        list_jobs()
        return 0

    problems = settings.validate_required_settings()
    for problem in problems:
        logger.warning(f"Configuration problem: {problem}")
    if problems and settings.is_production():
        logger.error("❌ Refusing to start with an invalid production configuration")
        return 1

    if args.once:
        return 0 if asyncio.run(run_once()) else 1

    runner = SchedulerRunner(run_on_startup=settings.RUN_ON_STARTUP and not args.no_startup_run)

    try:
        asyncio.run(runner.start())
    except KeyboardInterrupt:
        logger.info("🛑 Received interrupt, shutting down...")
        return 0
    except Exception as e:
        logger.error(f"❌ Scheduler error: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
