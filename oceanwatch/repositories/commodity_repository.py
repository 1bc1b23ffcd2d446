"""
Commodity Repository for commodities, island exports and tax rate snapshots.
"""
from datetime import datetime
from typing import Optional, List

from oceanwatch.models import Commodity, CommodityCategory, CommodityTaxRate, IslandCommodity
from oceanwatch.repositories.base import BaseRepository


class CommodityRepository(BaseRepository[Commodity]):
    """Repository for commodity data access."""

    def __init__(self, db):
        super().__init__(Commodity, db)

    def find_by_name(self, name: str) -> Optional[Commodity]:
        return self.where_first(Commodity.name == name)

    def find_or_create_by_name(self, name: str) -> Commodity:
        """
        Find a commodity by name, creating it as unclassified when absent.

        Classification happens outside the scrape pipeline.
        """
        commodity, _ = self.find_or_create(
            defaults={
                "display_name": name,
                "category": CommodityCategory.UNCLASSIFIED.value,
            },
            name=name,
        )
        return commodity

    def find_unclassified(self) -> List[Commodity]:
        return self.where(Commodity.category == CommodityCategory.UNCLASSIFIED.value)

    # ========================================================================
    # Island Exports
    # ========================================================================

    def link_island(self, island_id: str, commodity_id: str) -> IslandCommodity:
        """Mark a commodity as confirmed export of an island."""
        link = self.db.query(IslandCommodity).filter(
            IslandCommodity.island_id == island_id,
            IslandCommodity.commodity_id == commodity_id
        ).first()
        if link is None:
            link = IslandCommodity(island_id=island_id, commodity_id=commodity_id, is_confirmed=True)
            self.db.add(link)
            self.db.flush()
        return link

    # ========================================================================
    # Tax Rates
    # ========================================================================

    def find_tax_rate(self, commodity_id: str, ocean: str, scraped_at: datetime) -> Optional[CommodityTaxRate]:
        return self.db.query(CommodityTaxRate).filter(
            CommodityTaxRate.commodity_id == commodity_id,
            CommodityTaxRate.ocean == ocean,
            CommodityTaxRate.scraped_at == scraped_at
        ).first()

    def add_tax_rate(self, commodity_id: str, ocean: str, scraped_at: datetime, tax_value: int) -> CommodityTaxRate:
        """Record a tax snapshot unless one exists for this scrape."""
        rate = self.find_tax_rate(commodity_id, ocean, scraped_at)
        if rate is None:
            rate = CommodityTaxRate(
                commodity_id=commodity_id,
                ocean=ocean,
                scraped_at=scraped_at,
                tax_value=tax_value,
            )
            self.db.add(rate)
            self.db.flush()
        return rate
