"""Tests for the ScrapeOrchestrator job lifecycle and per-item isolation.

Pages are served by the FakeYowebClient fixture; a URL without a page
behaves like a yoweb 404.
"""
import asyncio
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from oceanwatch.models import (
    Crew,
    CrewBattleRecord,
    Flag,
    FlagFameRecord,
    Island,
    Ocean,
    ScrapeJobStatus,
    ScrapeJobType,
)
from oceanwatch.repositories import ScrapeJobRepository
from oceanwatch.services.scraper import urls
from oceanwatch.services.scraper.orchestrator import ScrapeOrchestrator, run_scrape_job
from oceanwatch.services.scraper.reconciler import Reconciler
from oceanwatch.utils.timezone import utc_now

OCEAN = Ocean.EMERALD


def crew_fame_list(crew_ids) -> str:
    rows = "".join(
        f'<tr><td>{rank}</td><td><a href="/yoweb/crew/info.wm?crewid={crew_id}">Crew {crew_id}</a></td>'
        f'<td>Noted</td></tr>'
        for rank, crew_id in enumerate(crew_ids, start=1)
    )
    return f"<html><body><table><tr><th>Rank</th><th>Crew</th><th>Fame</th></tr>{rows}</table></body></html>"


def crew_info(crew_id, flag_id=None) -> str:
    flag = f'<a href="/yoweb/flag/info.wm?flagid={flag_id}">Flag {flag_id}</a>' if flag_id else ""
    return (
        f'<html><body><table><tr><td width="246"><font><b>Crew {crew_id}</b></font>{flag}</td></tr></table>'
        f'<a href="/yoweb/crew/battleinfo.wm?crewid={crew_id}&classic=false">Scoundrels</a></body></html>'
    )


def battle_info(wins, losses) -> str:
    return (
        "<html><body><table><tr><th>Day</th></tr>"
        f"<tr><td>today</td><td>1</td><td>1</td><td>0</td><td>{wins}</td><td>{losses}</td><td>1:00</td></tr>"
        "</table></body></html>"
    )


def island_page(name, governor_flag_id=None) -> str:
    ruler = (
        f'Ruled by <a href="/yoweb/flag/info.wm?flagid={governor_flag_id}">Flag {governor_flag_id}</a><br>'
        if governor_flag_id else ""
    )
    return (
        f'<html><body><center><center><font size="+1">{name}</font><br>Population: 30<br>'
        f'Located in the Ruby archipelago.<br></center>{ruler}Exports: Hemp<br></center></body></html>'
    )


class TestCrewJob:

    @pytest.mark.asyncio
    async def test_failing_crew_is_counted_and_skipped(self, db_session: Session, fake_client):
        """Five crews with the third one unavailable: 4 processed, 1 failed, job completed."""
        crew_ids = [101, 102, 103, 104, 105]
        fake_client.pages[urls.crew_fame_list_url(OCEAN)] = crew_fame_list(crew_ids)
        for crew_id in crew_ids:
            if crew_id != 103:
                fake_client.pages[urls.crew_info_url(OCEAN, crew_id)] = crew_info(crew_id)
                fake_client.pages[urls.crew_battle_info_url(OCEAN, crew_id)] = battle_info(3, 1)

        job = await ScrapeOrchestrator(db_session, fake_client, OCEAN, ScrapeJobType.CREW_FAME).run()

        assert job.status == ScrapeJobStatus.COMPLETED.value
        assert job.items_processed == 4
        assert job.items_failed == 1
        assert job.ended_at is not None
        assert sorted(c.game_crew_id for c in db_session.query(Crew).all()) == [101, 102, 104, 105]

    @pytest.mark.asyncio
    async def test_constraint_violation_rolls_back_one_crew(self, db_session: Session, fake_client):
        """A storage error on the third crew is rolled back and counted; the others are kept."""
        crew_ids = [101, 102, 103, 104, 105]
        fake_client.pages[urls.crew_fame_list_url(OCEAN)] = crew_fame_list(crew_ids)
        for crew_id in crew_ids:
            fake_client.pages[urls.crew_info_url(OCEAN, crew_id)] = crew_info(crew_id)
            fake_client.pages[urls.crew_battle_info_url(OCEAN, crew_id)] = battle_info(3, 1)

        upsert_crew = Reconciler._upsert_crew

        def failing_upsert(reconciler, game_crew_id, name, seen_at):
            if game_crew_id == 103:
                raise IntegrityError("INSERT INTO crews", {}, Exception("UNIQUE constraint failed"))
            return upsert_crew(reconciler, game_crew_id, name, seen_at)

        with patch.object(Reconciler, "_upsert_crew", autospec=True, side_effect=failing_upsert):
            job = await ScrapeOrchestrator(db_session, fake_client, OCEAN, ScrapeJobType.CREW_FAME).run()

        assert job.status == ScrapeJobStatus.COMPLETED.value
        assert (job.items_processed, job.items_failed) == (4, 1)
        assert sorted(c.game_crew_id for c in db_session.query(Crew).all()) == [101, 102, 104, 105]
        assert db_session.query(CrewBattleRecord).count() == 4

    @pytest.mark.asyncio
    async def test_missing_battle_page_still_reconciles_crew(self, db_session: Session, fake_client):
        fake_client.pages[urls.crew_fame_list_url(OCEAN)] = crew_fame_list([201])
        fake_client.pages[urls.crew_info_url(OCEAN, 201)] = crew_info(201, flag_id=900)

        job = await ScrapeOrchestrator(db_session, fake_client, OCEAN, ScrapeJobType.CREW_INFO).run()

        assert job.items_processed == 1
        assert job.items_failed == 0
        crew = db_session.query(Crew).one()
        assert crew.flag.game_flag_id == 900
        assert crew.crew_rank == "Scoundrels"
        assert db_session.query(CrewBattleRecord).count() == 0

    @pytest.mark.asyncio
    async def test_empty_fame_list_fails_job(self, db_session: Session, fake_client):
        fake_client.pages[urls.crew_fame_list_url(OCEAN)] = crew_fame_list([])

        job = await ScrapeOrchestrator(db_session, fake_client, OCEAN, ScrapeJobType.CREW_FAME).run()

        assert job.status == ScrapeJobStatus.FAILED.value
        assert "no crews parsed" in job.error_message
        assert job.ended_at is not None

    @pytest.mark.asyncio
    async def test_unreachable_fame_list_fails_job(self, db_session: Session, fake_client):
        job = await ScrapeOrchestrator(db_session, fake_client, OCEAN, ScrapeJobType.CREW_FAME).run()

        assert job.status == ScrapeJobStatus.FAILED.value
        assert "HTTP 404" in job.error_message


class TestBattleInfoJob:

    @pytest.mark.asyncio
    async def test_only_active_crews_are_scraped(self, db_session: Session, fake_client):
        fake_client.pages[urls.crew_fame_list_url(OCEAN)] = crew_fame_list([301, 302])
        for crew_id in (301, 302):
            fake_client.pages[urls.crew_info_url(OCEAN, crew_id)] = crew_info(crew_id)
        await ScrapeOrchestrator(db_session, fake_client, OCEAN, ScrapeJobType.CREW_INFO).run()

        retired = db_session.query(Crew).filter(Crew.game_crew_id == 302).one()
        retired.is_active = False
        db_session.commit()
        fake_client.pages[urls.crew_battle_info_url(OCEAN, 301)] = battle_info(4, 2)
        fake_client.requested.clear()

        job = await ScrapeOrchestrator(db_session, fake_client, OCEAN, ScrapeJobType.BATTLE_INFO).run()

        assert job.status == ScrapeJobStatus.COMPLETED.value
        assert job.items_processed == 1
        assert fake_client.requested == [urls.crew_battle_info_url(OCEAN, 301)]
        record = db_session.query(CrewBattleRecord).one()
        assert (record.total_pvp_wins, record.daily_pvp_wins) == (4, 4)


class TestIslandJob:

    @pytest.mark.asyncio
    async def test_uncolonized_islands_are_not_counted(self, db_session: Session, fake_client):
        fake_client.pages[urls.island_list_url(OCEAN)] = (
            '<html><body><center>'
            '<center><font size="+1">Turtle Island</font><a href="/yoweb/island/info.wm?islandid=42">i</a></center>'
            '<center><font size="+1">Empty Rock</font><a href="/yoweb/island/info.wm?islandid=43">i</a></center>'
            '</center></body></html>'
        )
        fake_client.pages[urls.island_info_url(OCEAN, 42)] = island_page("Turtle Island", governor_flag_id=555)
        fake_client.pages[urls.island_info_url(OCEAN, 43)] = (
            "<html><body><center>The island is uncolonized.</center></body></html>"
        )

        job = await ScrapeOrchestrator(db_session, fake_client, OCEAN, ScrapeJobType.ISLANDS).run()

        assert job.status == ScrapeJobStatus.COMPLETED.value
        assert (job.items_processed, job.items_failed) == (1, 0)
        island = db_session.query(Island).one()
        assert island.game_island_id == 42
        assert island.governor_flag.game_flag_id == 555

    @pytest.mark.asyncio
    async def test_scrape_time_is_taken_before_the_listing_fetch(self, db_session: Session, fake_client):
        list_url = urls.island_list_url(OCEAN)
        fake_client.pages[list_url] = (
            '<html><body><center><center><font size="+1">Turtle Island</font>'
            '<a href="/yoweb/island/info.wm?islandid=42">i</a></center></center></body></html>'
        )
        fake_client.pages[urls.island_info_url(OCEAN, 42)] = island_page("Turtle Island")
        fetch = fake_client.fetch
        list_fetched_at = []

        async def slow_list_fetch(url):
            if url == list_url:
                list_fetched_at.append(utc_now())
                await asyncio.sleep(0.01)
            return await fetch(url)

        fake_client.fetch = slow_list_fetch

        await ScrapeOrchestrator(db_session, fake_client, OCEAN, ScrapeJobType.ISLANDS).run()

        island = db_session.query(Island).one()
        assert island.first_seen_at <= list_fetched_at[0]

    @pytest.mark.asyncio
    async def test_id_sweep_when_list_unavailable(self, db_session: Session, fake_client):
        fake_client.pages[urls.island_info_url(OCEAN, 1)] = island_page("Swept Isle")

        orchestrator = ScrapeOrchestrator(db_session, fake_client, OCEAN, ScrapeJobType.ISLANDS, island_id_max=2)
        job = await orchestrator.run()

        assert (job.items_processed, job.items_failed) == (1, 2)
        assert [i.game_island_id for i in db_session.query(Island).all()] == [1]


class TestDailyJob:

    @pytest.mark.asyncio
    async def test_stage_errors_do_not_stop_the_run(self, db_session: Session, fake_client):
        """Every listing unavailable: each stage fails on its own and the job still completes."""
        fake_client.pages[urls.flag_fame_list_url(OCEAN)] = (
            '<html><body><table><tr><td>1</td>'
            '<td><a href="/yoweb/flag/info.wm?flagid=700">Last Flag</a></td><td>Eminent</td></tr>'
            '</table></body></html>'
        )
        fake_client.pages[urls.flag_info_url(OCEAN, 700)] = (
            '<html><body><table><tr><td width="246"><font><b>Last Flag</b></font></td></tr></table>'
            '</body></html>'
        )

        orchestrator = ScrapeOrchestrator(db_session, fake_client, OCEAN, ScrapeJobType.DAILY_FULL, island_id_max=2)
        job = await orchestrator.run()

        # 3 swept island ids + tax rate listing + crew listing
        assert job.status == ScrapeJobStatus.COMPLETED.value
        assert job.items_failed == 5
        assert job.items_processed == 1
        flag = db_session.query(Flag).one()
        assert flag.name == "Last Flag"
        assert db_session.query(FlagFameRecord).count() == 1


class TestRunScrapeJob:

    @pytest.mark.asyncio
    async def test_runs_precreated_job(self, session_factory, fake_client):
        fake_client.pages[urls.tax_rates_url(OCEAN)] = (
            "<html><body><center><table><tr><td><table><tr><td>Iron</td><td>12</td></tr>"
            "<tr><td>Hemp</td><td>3</td></tr></table></td></tr></table></center></body></html>"
        )
        db = session_factory()
        job_id = ScrapeOrchestrator(db, fake_client, OCEAN, ScrapeJobType.TAX_RATES).start().id
        db.close()

        job = await run_scrape_job(session_factory, fake_client, OCEAN, ScrapeJobType.TAX_RATES, job_id=job_id)

        assert job.id == job_id
        assert job.items_processed == 2
        db = session_factory()
        try:
            stored = ScrapeJobRepository(db).find_by_id(job_id)
            assert stored.status == ScrapeJobStatus.COMPLETED.value
            assert stored.success_rate == 100.0
        finally:
            db.close()
