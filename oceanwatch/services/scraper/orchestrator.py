"""
Scrape Orchestrator - drives one scrape job for one ocean.

Handles:
- ScrapeJob lifecycle (running -> completed | failed, finalized once)
- Stage sequencing for the daily job (islands -> tax rates -> crews -> flags)
- Per-item isolation: a failing island/crew/flag is counted and skipped
- Incremental counter persistence so job progress is visible while running

Only a listing page that cannot be fetched or yields no records
(ListingError) fails a single-entity-type job. The daily job logs it,
counts one failure and moves on to the next stage.
"""
import inspect
import logging
import time
from typing import Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from oceanwatch.core.config import settings
from oceanwatch.core.exceptions import FetchError, ListingError, OceanwatchError, ParseError
from oceanwatch.core.logging import clear_scrape_context, scrape_stage, set_scrape_context
from oceanwatch.core.metrics import (
    scrape_items_failed_total,
    scrape_items_processed_total,
    scrape_jobs_running,
    scrape_jobs_total,
)
from oceanwatch.models import Ocean, ScrapeJob, ScrapeJobStatus, ScrapeJobType
from oceanwatch.repositories import CrewRepository, ScrapeJobRepository
from oceanwatch.services.scraper import urls
from oceanwatch.services.scraper.client import YowebClient
from oceanwatch.services.scraper.parsers import (
    FameEntry,
    parse_crew_battle_info,
    parse_crew_fame_list,
    parse_crew_info,
    parse_flag_fame_list,
    parse_flag_info,
    parse_island_info,
    parse_island_list,
    parse_tax_rates,
)
from oceanwatch.services.scraper.reconciler import Reconciler
from oceanwatch.utils.timezone import utc_now

logger = logging.getLogger(__name__)

ITEM_ERRORS = (OceanwatchError, SQLAlchemyError)


class ScrapeOrchestrator:
    """
    Runs one ScrapeJob.

    The orchestrator is the only writer of its job row. Entities are
    processed strictly sequentially; the client's per-host rate limit keeps
    requests about one second apart.

    Attributes:
        db: Database session used for the job row and all reconciliation
        client: Shared yoweb client
        ocean: Ocean being scraped
        job_type: ScrapeJobType of this run
        job: The ScrapeJob row (after start())
    """

    def __init__(
        self,
        db: Session,
        client: YowebClient,
        ocean: Ocean,
        job_type: ScrapeJobType,
        island_id_max: Optional[int] = None,
    ):
        self.db = db
        self.client = client
        self.ocean = Ocean(ocean)
        self.job_type = ScrapeJobType(job_type)
        self.island_id_max = island_id_max if island_id_max is not None else settings.ISLAND_ID_MAX
        self.jobs = ScrapeJobRepository(db)
        self.crews = CrewRepository(db)
        self.reconciler = Reconciler(db, self.ocean.value)
        self.job: Optional[ScrapeJob] = None

    # ========================================================================
    # Job Lifecycle
    # ========================================================================

    def start(self) -> ScrapeJob:
        """Create the job row in running state."""
        self.job = self.jobs.create(
            ocean=self.ocean.value,
            job_type=self.job_type.value,
            status=ScrapeJobStatus.RUNNING.value,
            started_at=utc_now(),
            items_processed=0,
            items_failed=0,
        )
        self.jobs.save()
        return self.job

    @classmethod
    def resume(cls, db: Session, client: YowebClient, job_id: str) -> "ScrapeOrchestrator":
        """Attach to a job row created elsewhere (manual trigger)."""
        job = ScrapeJobRepository(db).find_by_id(job_id)
        if job is None:
            raise LookupError(f"Scrape job {job_id} not found")
        orchestrator = cls(db, client, job.ocean, job.job_type)
        orchestrator.job = job
        return orchestrator

    async def run(self) -> ScrapeJob:
        """
        Execute the job and finalize its status.

        Cancellation propagates and leaves the job in running state.
        """
        if self.job is None:
            self.start()

        token = set_scrape_context(self.ocean.value, self.job.id)
        scrape_jobs_running.inc()
        start = time.time()
        logger.info(f"🏴‍☠️ Starting {self.job_type.value} scrape for {self.ocean.value}")

        try:
            if self.job_type == ScrapeJobType.DAILY_FULL:
                await self._run_daily()
            else:
                await self._run_single()

            if self.job.is_running:
                self.job.mark_completed()
            self.jobs.save()

        except ListingError as e:
            self.db.rollback()
            self.job.mark_failed(e)
            self.jobs.save()
            logger.error(f"❌ {self.job_type.value} scrape for {self.ocean.value} failed: {e}")

        except Exception as e:
            self.db.rollback()
            self.job.mark_failed(e)
            self.jobs.save()
            logger.error(f"❌ {self.job_type.value} scrape for {self.ocean.value} crashed: {e}", exc_info=True)
            raise

        finally:
            scrape_jobs_running.dec()
            clear_scrape_context(token)

        scrape_jobs_total.labels(
            ocean=self.ocean.value, job_type=self.job_type.value, status=self.job.status
        ).inc()
        logger.info(
            f"✅ {self.job_type.value} scrape for {self.ocean.value} {self.job.status}: "
            f"{self.job.items_processed} processed, {self.job.items_failed} failed "
            f"in {int((time.time() - start) * 1000)}ms"
        )
        return self.job

    async def _run_daily(self) -> None:
        stages = (
            ("islands", self.scrape_islands),
            ("tax_rates", self.scrape_tax_rates),
            ("crews", self.scrape_crews),
            ("flags", self.scrape_flags),
        )
        for stage, scrape in stages:
            try:
                with scrape_stage(stage):
                    await scrape()
            except OceanwatchError as e:
                logger.error(f"Error scraping {stage} for {self.ocean.value}: {e}")
                self._record_failure(stage)

    async def _run_single(self) -> None:
        stages = {
            ScrapeJobType.ISLANDS: self.scrape_islands,
            ScrapeJobType.TAX_RATES: self.scrape_tax_rates,
            ScrapeJobType.CREW_INFO: self.scrape_crews,
            ScrapeJobType.CREW_FAME: self.scrape_crews,
            ScrapeJobType.FLAG_FAME: self.scrape_flags,
            ScrapeJobType.BATTLE_INFO: self.scrape_battle_info,
        }
        with scrape_stage(self.job_type.value):
            await stages[self.job_type]()

    # ========================================================================
    # Item Accounting
    # ========================================================================

    def _record_success(self, stage: str) -> None:
        self.job.increment_processed()
        self.jobs.save()
        scrape_items_processed_total.labels(ocean=self.ocean.value, stage=stage).inc()

    def _record_failure(self, stage: str) -> None:
        self.db.rollback()
        self.job.increment_failed()
        self.jobs.save()
        scrape_items_failed_total.labels(ocean=self.ocean.value, stage=stage).inc()

    async def _process(self, stage: str, label, step: Callable[..., Optional[Awaitable]], *args) -> bool:
        """
        Run one item and count it.

        `step` may be sync or async; returning False marks the item as
        skipped (not counted either way).
        """
        try:
            result = step(*args)
            if inspect.isawaitable(result):
                result = await result
        except ITEM_ERRORS as e:
            logger.warning(f"Error processing {stage} item {label}: {e}")
            self._record_failure(stage)
            return False

        if result is False:
            return False
        self._record_success(stage)
        return True

    async def _fetch_listing(self, listing: str, url: str) -> str:
        try:
            return await self.client.fetch(url)
        except FetchError as e:
            raise ListingError(self.ocean.value, listing, str(e)) from e

    # ========================================================================
    # Stages
    # ========================================================================

    async def scrape_islands(self) -> None:
        """Scrape every colonized island; uncolonized ones are skipped uncounted."""
        scraped_at = utc_now()
        island_ids = await self._island_ids()
        processed = 0

        for island_id in island_ids:
            if await self._process("islands", island_id, self._scrape_island, island_id, scraped_at):
                processed += 1

        logger.info(f"Processed {processed} islands for {self.ocean.value}")

    async def _island_ids(self) -> list:
        try:
            html = await self.client.fetch(urls.island_list_url(self.ocean))
        except FetchError as e:
            logger.warning(f"Island list unavailable for {self.ocean.value}, sweeping ids: {e}")
            html = ""

        island_ids = sorted({
            island.game_island_id for island in parse_island_list(html)
            if island.game_island_id is not None
        })
        if island_ids:
            return island_ids
        return list(range(0, self.island_id_max + 1))

    async def _scrape_island(self, island_id: int, scraped_at) -> bool:
        html = await self.client.fetch(urls.island_info_url(self.ocean, island_id))
        data = parse_island_info(html, island_id)
        if data is None:
            logger.debug(f"Island {island_id} is uncolonized, skipping")
            return False
        self.reconciler.reconcile_island(data, scraped_at)
        return True

    async def scrape_tax_rates(self) -> None:
        scraped_at = utc_now()
        url = urls.tax_rates_url(self.ocean)
        rates = parse_tax_rates(await self._fetch_listing("tax rate", url))
        if not rates:
            raise ListingError(self.ocean.value, "tax rate", f"no tax rates parsed from {url}")

        logger.info(f"Parsed {len(rates)} tax rates for {self.ocean.value}")
        for rate in rates:
            await self._process("tax_rates", rate.commodity_name, self.reconciler.reconcile_tax_rate, rate, scraped_at)

    async def scrape_crews(self) -> None:
        """Crew fame list, then crew detail and battle pages per crew."""
        scraped_at = utc_now()
        url = urls.crew_fame_list_url(self.ocean)
        entries = parse_crew_fame_list(await self._fetch_listing("crew fame", url))
        if not entries:
            raise ListingError(self.ocean.value, "crew fame", f"no crews parsed from {url}")

        logger.info(f"Parsed {len(entries)} crews for {self.ocean.value}")
        for entry in entries:
            await self._process("crews", entry.game_id, self._scrape_crew, entry, scraped_at)

    async def _scrape_crew(self, entry: FameEntry, scraped_at) -> None:
        html = await self.client.fetch(urls.crew_info_url(self.ocean, entry.game_id))
        crew_data = parse_crew_info(html, entry.game_id)

        try:
            battle_html = await self.client.fetch(urls.crew_battle_info_url(self.ocean, entry.game_id))
            battle = parse_crew_battle_info(battle_html)
        except (FetchError, ParseError) as e:
            logger.warning(f"No battle info for crew {entry.game_id}: {e}")
            battle = None

        self.reconciler.reconcile_crew(entry, crew_data, battle, scraped_at)

    async def scrape_flags(self) -> None:
        """Flag fame list, then the detail page per flag."""
        scraped_at = utc_now()
        url = urls.flag_fame_list_url(self.ocean)
        entries = parse_flag_fame_list(await self._fetch_listing("flag fame", url))
        if not entries:
            raise ListingError(self.ocean.value, "flag fame", f"no flags parsed from {url}")

        logger.info(f"Parsed {len(entries)} flags for {self.ocean.value}")
        for entry in entries:
            await self._process("flags", entry.game_id, self._scrape_flag, entry, scraped_at)

    async def _scrape_flag(self, entry: FameEntry, scraped_at) -> None:
        html = await self.client.fetch(urls.flag_info_url(self.ocean, entry.game_id))
        self.reconciler.reconcile_flag(entry, parse_flag_info(html, entry.game_id), scraped_at)

    async def scrape_battle_info(self) -> None:
        """Battle snapshots for every active stored crew."""
        scraped_at = utc_now()
        crews = self.crews.find_active(self.ocean.value)
        logger.info(f"Scraping battle info for {len(crews)} active crews in {self.ocean.value}")

        for crew in crews:
            await self._process("battle_info", crew.game_crew_id, self._scrape_battle, crew, scraped_at)

    async def _scrape_battle(self, crew, scraped_at) -> None:
        html = await self.client.fetch(urls.crew_battle_info_url(self.ocean, crew.game_crew_id))
        self.reconciler.reconcile_battle(crew, parse_crew_battle_info(html), scraped_at)


async def run_scrape_job(
    session_factory: sessionmaker,
    client: YowebClient,
    ocean: Ocean,
    job_type: ScrapeJobType,
    job_id: Optional[str] = None,
) -> ScrapeJob:
    """
    Run one job in its own session.

    Args:
        job_id: Existing running job row to execute (created by a manual trigger)
    """
    db = session_factory()
    try:
        if job_id:
            orchestrator = ScrapeOrchestrator.resume(db, client, job_id)
        else:
            orchestrator = ScrapeOrchestrator(db, client, ocean, job_type)
        return await orchestrator.run()
    finally:
        db.close()
