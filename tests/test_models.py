"""Unit tests for enums, model helpers and settings."""
from datetime import datetime, timedelta

import pytest

from oceanwatch.core.config import Settings
from oceanwatch.models import (
    CrewBattleRecord,
    CrewRank,
    FameLevel,
    IslandGovernanceHistory,
    IslandSize,
    Ocean,
    ScrapeJob,
    ScrapeJobStatus,
)


class TestEnums:

    def test_fame_levels_are_ordered(self):
        assert FameLevel.OBSCURE.order == 1
        assert FameLevel.ILLUSTRIOUS.order == 9

    def test_crew_ranks_are_ordered(self):
        assert CrewRank.SAILORS.order == 1
        assert CrewRank.IMPERIALS.order == 8
        assert CrewRank.match("they are Mostly Harmless") == CrewRank.MOSTLY_HARMLESS

    def test_island_building_slots(self):
        assert IslandSize.OUTPOST.max_buildings == 2
        assert IslandSize.LARGE.max_buildings == -1


class TestModelHelpers:

    def test_battle_rates_without_battles(self):
        record = CrewBattleRecord(total_pvp_wins=0, total_pvp_losses=0, daily_pvp_wins=0, daily_pvp_losses=0)

        assert record.win_rate == 0.0
        assert record.daily_win_rate == 0.0
        assert record.has_activity is False

    def test_governance_duration(self):
        started = datetime(2024, 1, 1)
        term = IslandGovernanceHistory(started_at=started, ended_at=started + timedelta(days=12))

        assert term.is_current is False
        assert term.duration_days() == 12

    def test_scrape_job_lifecycle(self):
        job = ScrapeJob(status=ScrapeJobStatus.RUNNING.value, started_at=datetime(2024, 1, 1), items_processed=0, items_failed=0)
        job.increment_processed()
        job.increment_processed()
        job.increment_failed()
        job.mark_failed(ValueError("listing empty"))

        assert job.is_running is False
        assert job.status == "failed"
        assert job.error_message == "listing empty"
        assert job.success_rate == pytest.approx(200 / 3)


class TestSettings:

    def test_oceans_drop_unknown_names(self):
        config = Settings(_env_file=None, OCEANS_STR="Emerald, atlantis,obsidian,emerald")
        assert config.OCEANS == [Ocean.EMERALD, Ocean.OBSIDIAN]

    def test_production_requires_database_url(self):
        config = Settings(_env_file=None, ENVIRONMENT="production")
        assert any("DATABASE_URL" in problem for problem in config.validate_required_settings())

    def test_development_defaults_are_valid(self):
        config = Settings(_env_file=None, ENVIRONMENT="development")
        assert config.validate_required_settings() == []
