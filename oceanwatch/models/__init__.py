"""
Database models and enumerations.

Usage:
    from oceanwatch.models import Island, Crew, Flag, ScrapeJob
"""
from oceanwatch.models.models import (
    Base,
    Archipelago,
    Island,
    IslandPopulation,
    IslandGovernanceHistory,
    Commodity,
    IslandCommodity,
    CommodityTaxRate,
    Flag,
    FlagFameRecord,
    FlagReputationRecord,
    Crew,
    CrewFameRecord,
    CrewBattleRecord,
    CrewFlagHistory,
    ScrapeJob,
    MarketOrder,
)
from oceanwatch.models.enums import (
    Ocean,
    FameLevel,
    CrewRank,
    IslandSize,
    CommodityCategory,
    ReputationType,
    ScrapeJobStatus,
    ScrapeJobType,
)

__all__ = [
    "Base",
    "Archipelago",
    "Island",
    "IslandPopulation",
    "IslandGovernanceHistory",
    "Commodity",
    "IslandCommodity",
    "CommodityTaxRate",
    "Flag",
    "FlagFameRecord",
    "FlagReputationRecord",
    "Crew",
    "CrewFameRecord",
    "CrewBattleRecord",
    "CrewFlagHistory",
    "ScrapeJob",
    "MarketOrder",
    "Ocean",
    "FameLevel",
    "CrewRank",
    "IslandSize",
    "CommodityCategory",
    "ReputationType",
    "ScrapeJobStatus",
    "ScrapeJobType",
]
