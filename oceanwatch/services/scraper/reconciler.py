"""
Reconciler: merges parsed yoweb records into stored entity state.

Each public method handles one entity in one transaction: commit on success,
rollback and ReconcileError on any storage failure. All snapshot writes are
find-or-create on (entity, scraped_at), so replaying an identical scrape at
the same timestamp writes nothing new.

History intervals (island governance, crew flag membership) are compared
against the open interval only. A change closes it at scraped_at and opens
the successor at the same instant.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from oceanwatch.core.exceptions import ReconcileError
from oceanwatch.models import (
    Crew,
    CrewBattleRecord,
    CrewFameRecord,
    Flag,
    FlagFameRecord,
    FlagReputationRecord,
    Island,
)
from oceanwatch.repositories import (
    CommodityRepository,
    CrewRepository,
    FlagRepository,
    IslandRepository,
)
from oceanwatch.services.scraper.parsers import (
    CrewBattleData,
    CrewData,
    FameEntry,
    FlagData,
    IslandData,
    TaxRateData,
)

logger = logging.getLogger(__name__)


def _value(enum_member) -> Optional[str]:
    return enum_member.value if enum_member is not None else None


class Reconciler:
    """
    Per-entity upsert and delta logic for one ocean.

    Attributes:
        db: Database session (shared with the orchestrator)
        ocean: Ocean name every entity is scoped to
    """

    def __init__(self, db: Session, ocean: str):
        self.db = db
        self.ocean = getattr(ocean, "value", ocean)
        self.islands = IslandRepository(db)
        self.commodities = CommodityRepository(db)
        self.crews = CrewRepository(db)
        self.flags = FlagRepository(db)

    def _commit_or_raise(self, entity: str, key, work):
        try:
            result = work()
            self.db.commit()
            return result
        except SQLAlchemyError as e:
            self.db.rollback()
            raise ReconcileError(entity, key, e) from e

    # ========================================================================
    # Flags
    # ========================================================================

    def _upsert_flag(self, game_flag_id: int, name: str, seen_at: datetime) -> Flag:
        flag = self.flags.find_by_game_id(self.ocean, game_flag_id)
        if flag is None:
            flag = self.flags.create(
                ocean=self.ocean,
                game_flag_id=game_flag_id,
                name=name,
                is_active=True,
                first_seen_at=seen_at,
                last_seen_at=seen_at,
            )
        else:
            flag.name = name or flag.name
            flag.is_active = True
            flag.last_seen_at = max(flag.last_seen_at, seen_at)
        return flag

    def _resolve_flag(self, game_flag_id: Optional[int], name: str, seen_at: datetime) -> Optional[Flag]:
        """Referenced flag; created only when its name is known."""
        if not game_flag_id:
            return None
        if name:
            return self._upsert_flag(game_flag_id, name, seen_at)
        return self.flags.find_by_game_id(self.ocean, game_flag_id)

    def reconcile_flag(self, fame: Optional[FameEntry], data: FlagData, scraped_at: datetime) -> Flag:
        """Upsert a flag with its fame and reputation snapshots."""

        def work():
            flag = self._upsert_flag(data.game_flag_id, data.name, scraped_at)

            if fame is not None and self.flags.find_fame_record(flag.id, scraped_at) is None:
                self.db.add(FlagFameRecord(
                    flag_id=flag.id,
                    scraped_at=scraped_at,
                    fame_level=_value(fame.fame_level),
                    fame_rank=fame.rank,
                ))

            for reputation_type, level in data.reputations.items():
                if self.flags.find_reputation_record(flag.id, scraped_at, reputation_type.value) is None:
                    self.db.add(FlagReputationRecord(
                        flag_id=flag.id,
                        scraped_at=scraped_at,
                        reputation_type=reputation_type.value,
                        fame_level=level.value,
                    ))
            self.db.flush()
            return flag

        return self._commit_or_raise("flag", data.game_flag_id, work)

    # ========================================================================
    # Islands
    # ========================================================================

    def reconcile_island(self, data: IslandData, scraped_at: datetime) -> Island:
        """Upsert an island with population, governance and exports."""

        def work():
            island = self.islands.find_by_game_id(self.ocean, data.game_island_id)
            if island is None:
                island = self.islands.create(
                    ocean=self.ocean,
                    game_island_id=data.game_island_id,
                    name=data.name,
                    is_colonized=data.is_colonized,
                    first_seen_at=scraped_at,
                    last_seen_at=scraped_at,
                )

            island.name = data.name
            island.is_colonized = data.is_colonized
            island.size = _value(data.size) or island.size
            island.last_seen_at = scraped_at
            if data.archipelago:
                island.archipelago_id = self.islands.find_or_create_archipelago(self.ocean, data.archipelago).id

            flag = self._resolve_flag(data.governor_flag_id, data.governor_flag_name, scraped_at)
            island.governor_flag_id = flag.id if flag else None
            island.governor_name = data.governor_name or None

            if data.population > 0:
                island.population = data.population
                self.islands.add_population(island.id, scraped_at, data.population)

            self._update_governance(island, scraped_at)

            for name in data.commodities:
                commodity = self.commodities.find_or_create_by_name(name)
                self.commodities.link_island(island.id, commodity.id)

            self.db.flush()
            return island

        return self._commit_or_raise("island", data.game_island_id, work)

    def _update_governance(self, island: Island, scraped_at: datetime) -> None:
        current = self.islands.find_open_governance(island.id)
        if current is not None:
            if current.flag_id == island.governor_flag_id and current.governor_name == island.governor_name:
                return
            if current.started_at == scraped_at:
                # Same scrape observed twice: correct the interval in place.
                current.flag_id = island.governor_flag_id
                current.governor_name = island.governor_name
                return
            current.ended_at = scraped_at
            logger.info(
                f"Governance of island {island.game_island_id} changed "
                f"({current.governor_name or '-'} -> {island.governor_name or '-'})"
            )
        self.islands.open_governance(island.id, island.governor_flag_id, island.governor_name, scraped_at)

    # ========================================================================
    # Tax Rates
    # ========================================================================

    def reconcile_tax_rate(self, data: TaxRateData, scraped_at: datetime) -> None:
        def work():
            commodity = self.commodities.find_or_create_by_name(data.commodity_name)
            self.commodities.add_tax_rate(commodity.id, self.ocean, scraped_at, data.tax_value)

        self._commit_or_raise("tax rate", data.commodity_name, work)

    # ========================================================================
    # Crews
    # ========================================================================

    def _upsert_crew(self, game_crew_id: int, name: str, seen_at: datetime) -> Crew:
        crew = self.crews.find_by_game_id(self.ocean, game_crew_id)
        if crew is None:
            return self.crews.create(
                ocean=self.ocean,
                game_crew_id=game_crew_id,
                name=name,
                is_active=True,
                first_seen_at=seen_at,
                last_seen_at=seen_at,
            )
        crew.name = name or crew.name
        crew.is_active = True
        crew.last_seen_at = max(crew.last_seen_at, seen_at)
        return crew

    def reconcile_crew(
        self,
        fame: FameEntry,
        data: CrewData,
        battle: Optional[CrewBattleData],
        scraped_at: datetime
    ) -> Crew:
        """
        Upsert a crew with fame snapshot, flag membership and battle snapshot.

        `battle` is None when the battle page could not be fetched or parsed.
        """

        def work():
            crew = self._upsert_crew(data.game_crew_id, data.name or fame.name, scraped_at)

            if self.crews.find_fame_record(crew.id, scraped_at) is None:
                self.db.add(CrewFameRecord(
                    crew_id=crew.id,
                    scraped_at=scraped_at,
                    fame_level=_value(fame.fame_level),
                    fame_rank=fame.rank,
                ))

            flag = self._resolve_flag(data.flag_id, data.flag_name, scraped_at)
            self._update_flag_membership(crew, flag.id if flag else None, scraped_at)

            if data.crew_rank is not None:
                crew.crew_rank = data.crew_rank.value
            if battle is not None:
                self._add_battle_record(crew, battle, scraped_at, rank=data.crew_rank)

            self.db.flush()
            return crew

        return self._commit_or_raise("crew", data.game_crew_id, work)

    def reconcile_battle(self, crew: Crew, battle: CrewBattleData, scraped_at: datetime) -> CrewBattleRecord:
        """Append a battle snapshot for a stored crew."""

        def work():
            record = self._add_battle_record(crew, battle, scraped_at)
            crew.last_seen_at = max(crew.last_seen_at, scraped_at)
            self.db.flush()
            return record

        return self._commit_or_raise("crew battle", crew.game_crew_id, work)

    def _update_flag_membership(self, crew: Crew, flag_id: Optional[str], scraped_at: datetime) -> None:
        crew.flag_id = flag_id
        current = self.crews.find_open_flag_history(crew.id)
        if current is not None:
            if current.flag_id == flag_id:
                return
            if current.joined_at == scraped_at:
                current.flag_id = flag_id
                return
            current.left_at = scraped_at
        self.crews.open_flag_history(crew.id, flag_id, scraped_at)

    def _add_battle_record(
        self,
        crew: Crew,
        battle: CrewBattleData,
        scraped_at: datetime,
        rank=None
    ) -> CrewBattleRecord:
        existing = self.crews.find_battle_record(crew.id, scraped_at)
        if existing is not None:
            return existing

        rank = rank or battle.crew_rank
        record = CrewBattleRecord(
            crew_id=crew.id,
            scraped_at=scraped_at,
            crew_rank=_value(rank) or crew.crew_rank,
            total_pvp_wins=battle.total_pvp_wins,
            total_pvp_losses=battle.total_pvp_losses,
        )
        record.calculate_deltas(self.crews.find_previous_battle(crew.id, scraped_at))
        self.db.add(record)
        return record
