"""
Repository layer for data access.

Usage:
    from oceanwatch.repositories import CrewRepository
    repo = CrewRepository(db)
"""
from oceanwatch.repositories.base import BaseRepository
from oceanwatch.repositories.island_repository import IslandRepository
from oceanwatch.repositories.commodity_repository import CommodityRepository
from oceanwatch.repositories.crew_repository import CrewRepository
from oceanwatch.repositories.flag_repository import FlagRepository
from oceanwatch.repositories.scrape_job_repository import ScrapeJobRepository
from oceanwatch.repositories.market_order_repository import MarketOrderRepository

__all__ = [
    "BaseRepository",
    "IslandRepository",
    "CommodityRepository",
    "CrewRepository",
    "FlagRepository",
    "ScrapeJobRepository",
    "MarketOrderRepository",
]
