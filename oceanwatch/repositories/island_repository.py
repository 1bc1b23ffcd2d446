"""
Island Repository for island, archipelago and governance data access.

Usage:
    repo = IslandRepository(db)
    island = repo.find_by_game_id("emerald", 42)
    open_term = repo.find_open_governance(island.id)
"""
from datetime import datetime
from typing import Optional, List
from sqlalchemy import desc

from oceanwatch.models import (
    Archipelago,
    Island,
    IslandGovernanceHistory,
    IslandPopulation,
)
from oceanwatch.repositories.base import BaseRepository


class IslandRepository(BaseRepository[Island]):
    """Repository for island data access."""

    def __init__(self, db):
        super().__init__(Island, db)

    # ========================================================================
    # Natural Key Lookups
    # ========================================================================

    def find_by_game_id(self, ocean: str, game_island_id: int) -> Optional[Island]:
        """Find an island by (ocean, game island id)."""
        return self.where_first(
            Island.ocean == ocean,
            Island.game_island_id == game_island_id
        )

    def find_by_ocean(self, ocean: str) -> List[Island]:
        """All known islands of an ocean ordered by game id."""
        return self.query().filter(Island.ocean == ocean).order_by(Island.game_island_id).all()

    def find_or_create_archipelago(self, ocean: str, name: str) -> Archipelago:
        """Find an archipelago by (ocean, name), creating it when absent."""
        archipelago = self.db.query(Archipelago).filter(
            Archipelago.ocean == ocean,
            Archipelago.name == name
        ).first()
        if archipelago is None:
            archipelago = Archipelago(ocean=ocean, name=name)
            self.db.add(archipelago)
            self.db.flush()
        return archipelago

    # ========================================================================
    # Snapshots
    # ========================================================================

    def find_population(self, island_id: str, scraped_at: datetime) -> Optional[IslandPopulation]:
        return self.db.query(IslandPopulation).filter(
            IslandPopulation.island_id == island_id,
            IslandPopulation.scraped_at == scraped_at
        ).first()

    def add_population(self, island_id: str, scraped_at: datetime, population: int) -> IslandPopulation:
        """Record a population snapshot unless one exists for this scrape."""
        snapshot = self.find_population(island_id, scraped_at)
        if snapshot is None:
            snapshot = IslandPopulation(island_id=island_id, scraped_at=scraped_at, population=population)
            self.db.add(snapshot)
            self.db.flush()
        return snapshot

    # ========================================================================
    # Governance History
    # ========================================================================

    def find_open_governance(self, island_id: str) -> Optional[IslandGovernanceHistory]:
        """Most recent governance interval that has not ended."""
        return self.db.query(IslandGovernanceHistory).filter(
            IslandGovernanceHistory.island_id == island_id,
            IslandGovernanceHistory.ended_at.is_(None)
        ).order_by(desc(IslandGovernanceHistory.started_at)).first()

    def governance_history(self, island_id: str) -> List[IslandGovernanceHistory]:
        """Governance intervals oldest first."""
        return self.db.query(IslandGovernanceHistory).filter(
            IslandGovernanceHistory.island_id == island_id
        ).order_by(IslandGovernanceHistory.started_at).all()

    def open_governance(
        self,
        island_id: str,
        flag_id: Optional[str],
        governor_name: Optional[str],
        started_at: datetime
    ) -> IslandGovernanceHistory:
        term = IslandGovernanceHistory(
            island_id=island_id,
            flag_id=flag_id,
            governor_name=governor_name,
            started_at=started_at,
            change_type="scrape",
        )
        self.db.add(term)
        self.db.flush()
        return term
