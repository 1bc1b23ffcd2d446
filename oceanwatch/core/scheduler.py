"""
Scrape scheduler for oceanwatch.

This module provides scheduled background jobs for:
- The daily full scrape of every configured ocean (03:30 Pacific by default)
- The market order CSV poll (every MARKET_POLL_INTERVAL_MINUTES)

A daily batch runs one task per ocean concurrently and completes when all of
them have finished. A trigger that fires while a batch is still running is
skipped. Shutdown stops the triggers, gives in-flight work a grace period and
then cancels it; cancelled jobs keep their "running" status.

Scheduler: APScheduler (AsyncIOScheduler)
"""
import asyncio
import logging
from typing import Coroutine, Dict, List, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import sessionmaker

from oceanwatch.core.config import Settings, settings as default_settings
from oceanwatch.core.metrics import scheduler_running
from oceanwatch.models import Ocean, ScrapeJobType
from oceanwatch.services.market.poller import MarketOrderPoller
from oceanwatch.services.scraper.client import YowebClient
from oceanwatch.services.scraper.orchestrator import ScrapeOrchestrator, run_scrape_job

logger = logging.getLogger(__name__)


class ScrapeScheduler:
    """
    Timer-driven runner for scrape batches and market polls.

    All collaborators are injected; nothing here reaches for a global
    session or client.

    Attributes:
        session_factory: Factory for per-job sessions
        client: Shared, rate-limited yoweb client
        oceans: Oceans covered by each batch
        poller: Market order poller (None disables the poll job)
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        client: YowebClient,
        oceans: Optional[List[Ocean]] = None,
        config: Optional[Settings] = None,
        poller: Optional[MarketOrderPoller] = None,
    ):
        self.config = config or default_settings
        self.session_factory = session_factory
        self.client = client
        self.oceans = [Ocean(o) for o in (oceans if oceans is not None else self.config.OCEANS)]
        self.poller = poller
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.running = False
        self._batch_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    async def start(self, run_on_startup: Optional[bool] = None):
        """Start the scheduler and optionally kick off a batch right away."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting scrape scheduler...")

        self.scheduler = AsyncIOScheduler(
            timezone=self.config.SCHEDULER_TIMEZONE,
            job_defaults={
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,  # Only one instance of each job
                'misfire_grace_time': 3600
            }
        )

        self._schedule_daily_scrape()
        self._schedule_market_poll()

        self.scheduler.start()
        self.running = True
        scheduler_running.set(1)

        logger.info("✅ Scheduler started with %d jobs", len(self.scheduler.get_jobs()))
        self._log_scheduled_jobs()

        if run_on_startup if run_on_startup is not None else self.config.RUN_ON_STARTUP:
            logger.info("Triggering daily scrape on startup")
            self._spawn(self.run_daily_batch(), name="startup-daily-scrape")

    async def stop(self, grace_seconds: Optional[float] = None):
        """
        Stop firing new triggers, then wait for in-flight work.

        Work still running after the grace period is cancelled.
        """
        if not self.running:
            return

        grace = grace_seconds if grace_seconds is not None else self.config.SHUTDOWN_GRACE_SECONDS
        logger.info("Stopping scheduler...")
        self.scheduler.shutdown(wait=False)
        self.running = False
        scheduler_running.set(0)

        pending = {task for task in self._tasks if not task.done()}
        if pending:
            logger.info(f"Waiting up to {grace}s for {len(pending)} in-flight tasks")
            _, not_done = await asyncio.wait(pending, timeout=grace)
            if not_done:
                logger.warning(f"Cancelling {len(not_done)} tasks still running after {grace}s")
                for task in not_done:
                    task.cancel()
                await asyncio.gather(*not_done, return_exceptions=True)

        logger.info("✅ Scheduler stopped")

    # ========================================================================
    # Work
    # ========================================================================

    def _spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run_daily_batch(self) -> Optional[Dict[str, object]]:
        """
        Run the full daily job for every ocean concurrently.

        Returns:
            Mapping of ocean to its finished ScrapeJob (or the exception that
            escaped it), or None when a batch was already running
        """
        if self._batch_lock.locked():
            logger.warning("Daily scrape batch still running, skipping this trigger")
            return None

        async with self._batch_lock:
            logger.info(f"Starting daily scrape for {len(self.oceans)} oceans")
            results = await asyncio.gather(
                *(run_scrape_job(self.session_factory, self.client, ocean, ScrapeJobType.DAILY_FULL)
                  for ocean in self.oceans),
                return_exceptions=True,
            )

            outcome = {}
            for ocean, result in zip(self.oceans, results):
                if isinstance(result, BaseException):
                    logger.error(f"❌ Daily scrape for {ocean.value} raised: {result!r}")
                outcome[ocean.value] = result

            logger.info("Daily scrape completed for all oceans")
            return outcome

    def trigger_job(self, ocean: Ocean, job_type: ScrapeJobType) -> str:
        """
        Create a job row and run it in the background.

        Returns:
            The new job's id
        """
        db = self.session_factory()
        try:
            job = ScrapeOrchestrator(db, self.client, ocean, job_type).start()
            job_id = job.id
        finally:
            db.close()

        self._spawn(
            run_scrape_job(self.session_factory, self.client, ocean, job_type, job_id=job_id),
            name=f"manual-{job_id}",
        )
        logger.info(f"Triggered {ScrapeJobType(job_type).value} scrape for {Ocean(ocean).value} (job {job_id})")
        return job_id

    async def _tracked(self, coro: Coroutine, name: str):
        return await self._spawn(coro, name=name)

    # ========================================================================
    # Schedules
    # ========================================================================

    def _schedule_daily_scrape(self):
        """
        Schedule: Full scrape of every ocean.

        Frequency: Daily at DAILY_SCRAPE_HOUR:DAILY_SCRAPE_MINUTE (SCHEDULER_TIMEZONE)
        """
        if self.scheduler is None:
            return

        @self.scheduler.scheduled_job(
            trigger=CronTrigger(
                hour=self.config.DAILY_SCRAPE_HOUR,
                minute=self.config.DAILY_SCRAPE_MINUTE,
                timezone=self.config.SCHEDULER_TIMEZONE
            ),
            id='daily_scrape',
            name='Daily Ocean Scrape',
        )
        async def daily_scrape_job():
            try:
                await self._tracked(self.run_daily_batch(), name="daily-scrape")
            except Exception as e:
                logger.error(f"❌ Daily scrape job failed: {e}", exc_info=True)

    def _schedule_market_poll(self):
        """
        Schedule: Market order CSV import.

        Frequency: Every MARKET_POLL_INTERVAL_MINUTES
        """
        if self.scheduler is None or self.poller is None:
            return

        @self.scheduler.scheduled_job(
            trigger=IntervalTrigger(minutes=self.config.MARKET_POLL_INTERVAL_MINUTES),
            id='market_poll',
            name='Market Order CSV Poll',
        )
        async def market_poll_job():
            try:
                await self._tracked(self.poller.run(), name="market-poll")
            except Exception as e:
                logger.error(f"❌ Market order poll failed: {e}", exc_info=True)

    def _log_scheduled_jobs(self):
        """Log all scheduled jobs for visibility."""
        jobs = self.scheduler.get_jobs()

        logger.info("=" * 60)
        logger.info("SCHEDULED SCRAPE JOBS")
        logger.info("=" * 60)

        for job in jobs:
            next_run = job.next_run_time
            next_run_str = next_run.strftime('%Y-%m-%d %I:%M %p %Z') if next_run else 'Pending'
            logger.info(f"  • {job.name}")
            logger.info(f"    ID: {job.id}")
            logger.info(f"    Next run: {next_run_str}")

        logger.info("=" * 60)
