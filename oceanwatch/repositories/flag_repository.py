"""
Flag Repository for flags and their fame/reputation snapshots.
"""
from datetime import datetime
from typing import Optional

from oceanwatch.models import Flag, FlagFameRecord, FlagReputationRecord
from oceanwatch.repositories.base import BaseRepository


class FlagRepository(BaseRepository[Flag]):
    """Repository for flag data access."""

    def __init__(self, db):
        super().__init__(Flag, db)

    def find_by_game_id(self, ocean: str, game_flag_id: int) -> Optional[Flag]:
        """Find a flag by (ocean, game flag id)."""
        return self.where_first(
            Flag.ocean == ocean,
            Flag.game_flag_id == game_flag_id
        )

    def find_fame_record(self, flag_id: str, scraped_at: datetime) -> Optional[FlagFameRecord]:
        return self.db.query(FlagFameRecord).filter(
            FlagFameRecord.flag_id == flag_id,
            FlagFameRecord.scraped_at == scraped_at
        ).first()

    def find_reputation_record(
        self,
        flag_id: str,
        scraped_at: datetime,
        reputation_type: str
    ) -> Optional[FlagReputationRecord]:
        return self.db.query(FlagReputationRecord).filter(
            FlagReputationRecord.flag_id == flag_id,
            FlagReputationRecord.scraped_at == scraped_at,
            FlagReputationRecord.reputation_type == reputation_type
        ).first()
