"""
Crew Repository for crews, fame/battle snapshots and flag membership history.

Usage:
    repo = CrewRepository(db)
    crew = repo.find_by_game_id("emerald", 12345)
    previous = repo.find_previous_battle(crew.id, scraped_at)
"""
from datetime import datetime
from typing import Optional, List
from sqlalchemy import desc

from oceanwatch.models import Crew, CrewBattleRecord, CrewFameRecord, CrewFlagHistory
from oceanwatch.repositories.base import BaseRepository


class CrewRepository(BaseRepository[Crew]):
    """Repository for crew data access."""

    def __init__(self, db):
        super().__init__(Crew, db)

    # ========================================================================
    # Natural Key Lookups
    # ========================================================================

    def find_by_game_id(self, ocean: str, game_crew_id: int) -> Optional[Crew]:
        """Find a crew by (ocean, game crew id)."""
        return self.where_first(
            Crew.ocean == ocean,
            Crew.game_crew_id == game_crew_id
        )

    def find_active(self, ocean: str) -> List[Crew]:
        """Active crews of an ocean ordered by game id."""
        return self.query().filter(
            Crew.ocean == ocean,
            Crew.is_active.is_(True)
        ).order_by(Crew.game_crew_id).all()

    # ========================================================================
    # Snapshots
    # ========================================================================

    def find_fame_record(self, crew_id: str, scraped_at: datetime) -> Optional[CrewFameRecord]:
        return self.db.query(CrewFameRecord).filter(
            CrewFameRecord.crew_id == crew_id,
            CrewFameRecord.scraped_at == scraped_at
        ).first()

    def find_battle_record(self, crew_id: str, scraped_at: datetime) -> Optional[CrewBattleRecord]:
        return self.db.query(CrewBattleRecord).filter(
            CrewBattleRecord.crew_id == crew_id,
            CrewBattleRecord.scraped_at == scraped_at
        ).first()

    def find_previous_battle(self, crew_id: str, before: datetime) -> Optional[CrewBattleRecord]:
        """Latest battle snapshot strictly older than `before`."""
        return self.db.query(CrewBattleRecord).filter(
            CrewBattleRecord.crew_id == crew_id,
            CrewBattleRecord.scraped_at < before
        ).order_by(desc(CrewBattleRecord.scraped_at)).first()

    def battle_records(self, crew_id: str) -> List[CrewBattleRecord]:
        """Battle snapshots oldest first."""
        return self.db.query(CrewBattleRecord).filter(
            CrewBattleRecord.crew_id == crew_id
        ).order_by(CrewBattleRecord.scraped_at).all()

    # ========================================================================
    # Flag Membership History
    # ========================================================================

    def find_open_flag_history(self, crew_id: str) -> Optional[CrewFlagHistory]:
        """Most recent membership interval that has not ended."""
        return self.db.query(CrewFlagHistory).filter(
            CrewFlagHistory.crew_id == crew_id,
            CrewFlagHistory.left_at.is_(None)
        ).order_by(desc(CrewFlagHistory.joined_at)).first()

    def flag_history(self, crew_id: str) -> List[CrewFlagHistory]:
        """Membership intervals oldest first."""
        return self.db.query(CrewFlagHistory).filter(
            CrewFlagHistory.crew_id == crew_id
        ).order_by(CrewFlagHistory.joined_at).all()

    def open_flag_history(self, crew_id: str, flag_id: Optional[str], joined_at: datetime) -> CrewFlagHistory:
        membership = CrewFlagHistory(crew_id=crew_id, flag_id=flag_id, joined_at=joined_at)
        self.db.add(membership)
        self.db.flush()
        return membership
