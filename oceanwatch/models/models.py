"""
Database models for Puzzle Pirates ocean data.

Every game entity is partitioned by ocean and identified by the pair
(ocean, game id). Snapshot tables are append-only and unique on
(entity, scraped_at) so a replayed scrape never duplicates rows. History
tables hold intervals with at most one open row (ended_at/left_at NULL) per
subject.
"""
import uuid
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import Column, String, Integer, BigInteger, DateTime, ForeignKey, Boolean, Text, Index, UniqueConstraint
from sqlalchemy.orm import relationship, declarative_base

from oceanwatch.models.enums import ScrapeJobStatus
from oceanwatch.utils.timezone import utc_now

Base = declarative_base()

YOWEB_URL = "https://{ocean}.puzzlepirates.com/yoweb"


def _uuid() -> str:
    return str(uuid.uuid4())


# =============================================================================
# ISLANDS
# =============================================================================

class Archipelago(Base):
    """Named island group, lazily created when an island references it."""
    __tablename__ = "archipelagos"

    id = Column(String(36), primary_key=True, default=_uuid)
    ocean = Column(String(20), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    islands = relationship("Island", back_populates="archipelago")

    __table_args__ = (
        UniqueConstraint('ocean', 'name', name='uq_archipelago_ocean_name'),
    )


class Island(Base):
    """Island with its latest observed state."""
    __tablename__ = "islands"

    id = Column(String(36), primary_key=True, default=_uuid)
    ocean = Column(String(20), nullable=False, index=True)
    game_island_id = Column(BigInteger, nullable=False)
    name = Column(String(100), nullable=False, index=True)
    archipelago_id = Column(String(36), ForeignKey("archipelagos.id", ondelete="SET NULL"), nullable=True, index=True)
    size = Column(String(20), nullable=True)  # outpost, medium, large
    is_colonized = Column(Boolean, nullable=False, default=False)
    governor_flag_id = Column(String(36), ForeignKey("flags.id", ondelete="SET NULL"), nullable=True, index=True)
    governor_name = Column(String(100), nullable=True)
    population = Column(Integer, nullable=False, default=0)  # latest observed
    first_seen_at = Column(DateTime, nullable=False)
    last_seen_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    archipelago = relationship("Archipelago", back_populates="islands")
    governor_flag = relationship("Flag", foreign_keys=[governor_flag_id])
    populations = relationship("IslandPopulation", back_populates="island", cascade="all, delete-orphan")
    governance_history = relationship("IslandGovernanceHistory", back_populates="island", cascade="all, delete-orphan")
    commodities = relationship("IslandCommodity", back_populates="island", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('ocean', 'game_island_id', name='uq_island_ocean_game_id'),
    )

    @property
    def yoweb_url(self) -> str:
        return f"{YOWEB_URL.format(ocean=self.ocean)}/island/info.wm?islandid={self.game_island_id}"


class IslandPopulation(Base):
    """Population snapshot."""
    __tablename__ = "island_populations"

    id = Column(String(36), primary_key=True, default=_uuid)
    island_id = Column(String(36), ForeignKey("islands.id", ondelete="CASCADE"), nullable=False)
    scraped_at = Column(DateTime, nullable=False, index=True)
    population = Column(Integer, nullable=False)

    island = relationship("Island", back_populates="populations")

    __table_args__ = (
        UniqueConstraint('island_id', 'scraped_at', name='uq_island_population_scraped'),
    )


class IslandGovernanceHistory(Base):
    """Interval during which a flag (or nobody) governed an island."""
    __tablename__ = "island_governance_history"

    id = Column(String(36), primary_key=True, default=_uuid)
    island_id = Column(String(36), ForeignKey("islands.id", ondelete="CASCADE"), nullable=False)
    flag_id = Column(String(36), ForeignKey("flags.id", ondelete="SET NULL"), nullable=True, index=True)
    governor_name = Column(String(100), nullable=True)
    started_at = Column(DateTime, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    change_type = Column(String(20), nullable=False, default="scrape")

    island = relationship("Island", back_populates="governance_history")
    flag = relationship("Flag")

    __table_args__ = (
        Index('ix_governance_island_open', 'island_id', 'ended_at'),
    )

    @property
    def is_current(self) -> bool:
        return self.ended_at is None

    def duration_days(self, now: Optional[datetime] = None) -> int:
        end = self.ended_at or now or utc_now()
        return (end - self.started_at).days


# =============================================================================
# COMMODITIES
# =============================================================================

class Commodity(Base):
    """Tradeable good, shared across oceans."""
    __tablename__ = "commodities"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100), nullable=False, unique=True)
    display_name = Column(String(100), nullable=False)
    category = Column(String(20), nullable=False, index=True)
    is_spawnable = Column(Boolean, nullable=False, default=False)
    is_rare = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)


class IslandCommodity(Base):
    """An island's export of a commodity."""
    __tablename__ = "island_commodities"

    id = Column(String(36), primary_key=True, default=_uuid)
    island_id = Column(String(36), ForeignKey("islands.id", ondelete="CASCADE"), nullable=False)
    commodity_id = Column(String(36), ForeignKey("commodities.id", ondelete="CASCADE"), nullable=False, index=True)
    is_confirmed = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    island = relationship("Island", back_populates="commodities")
    commodity = relationship("Commodity")

    __table_args__ = (
        UniqueConstraint('island_id', 'commodity_id', name='uq_island_commodity'),
    )


class CommodityTaxRate(Base):
    """Per-ocean tax snapshot for one commodity."""
    __tablename__ = "commodity_tax_rates"

    id = Column(String(36), primary_key=True, default=_uuid)
    commodity_id = Column(String(36), ForeignKey("commodities.id", ondelete="CASCADE"), nullable=False)
    ocean = Column(String(20), nullable=False, index=True)
    scraped_at = Column(DateTime, nullable=False, index=True)
    tax_value = Column(Integer, nullable=False)

    commodity = relationship("Commodity")

    __table_args__ = (
        UniqueConstraint('commodity_id', 'ocean', 'scraped_at', name='uq_tax_rate_commodity_ocean_scraped'),
    )


# =============================================================================
# FLAGS
# =============================================================================

class Flag(Base):
    """Flag (alliance of crews)."""
    __tablename__ = "flags"

    id = Column(String(36), primary_key=True, default=_uuid)
    ocean = Column(String(20), nullable=False, index=True)
    game_flag_id = Column(BigInteger, nullable=False)
    name = Column(String(100), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    first_seen_at = Column(DateTime, nullable=False)
    last_seen_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    crews = relationship("Crew", back_populates="flag")
    fame_records = relationship("FlagFameRecord", back_populates="flag", cascade="all, delete-orphan")
    reputation_records = relationship("FlagReputationRecord", back_populates="flag", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('ocean', 'game_flag_id', name='uq_flag_ocean_game_id'),
    )

    @property
    def yoweb_url(self) -> str:
        return f"{YOWEB_URL.format(ocean=self.ocean)}/flag/info.wm?flagid={self.game_flag_id}"


class FlagFameRecord(Base):
    """Flag fame snapshot from the fame ranking."""
    __tablename__ = "flag_fame_records"

    id = Column(String(36), primary_key=True, default=_uuid)
    flag_id = Column(String(36), ForeignKey("flags.id", ondelete="CASCADE"), nullable=False)
    scraped_at = Column(DateTime, nullable=False, index=True)
    fame_level = Column(String(20), nullable=True)
    fame_rank = Column(Integer, nullable=True)

    flag = relationship("Flag", back_populates="fame_records")

    __table_args__ = (
        UniqueConstraint('flag_id', 'scraped_at', name='uq_flag_fame_scraped'),
    )


class FlagReputationRecord(Base):
    """Flag reputation snapshot (Conqueror, Explorer, Patron, Magnate)."""
    __tablename__ = "flag_reputation_records"

    id = Column(String(36), primary_key=True, default=_uuid)
    flag_id = Column(String(36), ForeignKey("flags.id", ondelete="CASCADE"), nullable=False)
    scraped_at = Column(DateTime, nullable=False, index=True)
    reputation_type = Column(String(20), nullable=False)
    fame_level = Column(String(20), nullable=False)

    flag = relationship("Flag", back_populates="reputation_records")

    __table_args__ = (
        UniqueConstraint('flag_id', 'scraped_at', 'reputation_type', name='uq_flag_reputation_scraped_type'),
    )


# =============================================================================
# CREWS
# =============================================================================

class Crew(Base):
    """Crew with its latest observed state."""
    __tablename__ = "crews"

    id = Column(String(36), primary_key=True, default=_uuid)
    ocean = Column(String(20), nullable=False, index=True)
    game_crew_id = Column(BigInteger, nullable=False)
    name = Column(String(100), nullable=False, index=True)
    flag_id = Column(String(36), ForeignKey("flags.id", ondelete="SET NULL"), nullable=True, index=True)
    crew_rank = Column(String(30), nullable=True)  # latest observed battle rank
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    first_seen_at = Column(DateTime, nullable=False)
    last_seen_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    flag = relationship("Flag", back_populates="crews")
    fame_records = relationship("CrewFameRecord", back_populates="crew", cascade="all, delete-orphan")
    battle_records = relationship("CrewBattleRecord", back_populates="crew", cascade="all, delete-orphan")
    flag_history = relationship("CrewFlagHistory", back_populates="crew", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('ocean', 'game_crew_id', name='uq_crew_ocean_game_id'),
    )

    @property
    def yoweb_url(self) -> str:
        return f"{YOWEB_URL.format(ocean=self.ocean)}/crew/info.wm?crewid={self.game_crew_id}"


class CrewFameRecord(Base):
    """Crew fame snapshot from the fame ranking."""
    __tablename__ = "crew_fame_records"

    id = Column(String(36), primary_key=True, default=_uuid)
    crew_id = Column(String(36), ForeignKey("crews.id", ondelete="CASCADE"), nullable=False)
    scraped_at = Column(DateTime, nullable=False, index=True)
    fame_level = Column(String(20), nullable=True)
    fame_rank = Column(Integer, nullable=True)

    crew = relationship("Crew", back_populates="fame_records")

    __table_args__ = (
        UniqueConstraint('crew_id', 'scraped_at', name='uq_crew_fame_scraped'),
    )


class CrewBattleRecord(Base):
    """
    Cumulative PvP totals for a crew plus the daily delta.

    The daily columns hold the difference against the preceding snapshot of
    the same crew, or the totals themselves when there is none.
    """
    __tablename__ = "crew_battle_records"

    id = Column(String(36), primary_key=True, default=_uuid)
    crew_id = Column(String(36), ForeignKey("crews.id", ondelete="CASCADE"), nullable=False)
    scraped_at = Column(DateTime, nullable=False, index=True)
    crew_rank = Column(String(30), nullable=True)
    total_pvp_wins = Column(Integer, nullable=False, default=0)
    total_pvp_losses = Column(Integer, nullable=False, default=0)
    daily_pvp_wins = Column(Integer, nullable=False, default=0)
    daily_pvp_losses = Column(Integer, nullable=False, default=0)

    crew = relationship("Crew", back_populates="battle_records")

    __table_args__ = (
        UniqueConstraint('crew_id', 'scraped_at', name='uq_crew_battle_scraped'),
    )

    @property
    def total_battles(self) -> int:
        return self.total_pvp_wins + self.total_pvp_losses

    @property
    def win_rate(self) -> float:
        """Cumulative win percentage (0-100)."""
        if self.total_battles == 0:
            return 0.0
        return self.total_pvp_wins / self.total_battles * 100

    @property
    def daily_total_battles(self) -> int:
        return self.daily_pvp_wins + self.daily_pvp_losses

    @property
    def daily_win_rate(self) -> float:
        if self.daily_total_battles == 0:
            return 0.0
        return self.daily_pvp_wins / self.daily_total_battles * 100

    @property
    def has_activity(self) -> bool:
        return self.daily_pvp_wins > 0 or self.daily_pvp_losses > 0

    def calculate_deltas(self, previous: Optional["CrewBattleRecord"]) -> None:
        """Fill the daily columns from the preceding snapshot."""
        if previous is None:
            self.daily_pvp_wins = self.total_pvp_wins
            self.daily_pvp_losses = self.total_pvp_losses
            return
        self.daily_pvp_wins = self.total_pvp_wins - previous.total_pvp_wins
        self.daily_pvp_losses = self.total_pvp_losses - previous.total_pvp_losses


class CrewFlagHistory(Base):
    """Interval during which a crew sailed under a flag (or none)."""
    __tablename__ = "crew_flag_history"

    id = Column(String(36), primary_key=True, default=_uuid)
    crew_id = Column(String(36), ForeignKey("crews.id", ondelete="CASCADE"), nullable=False)
    flag_id = Column(String(36), ForeignKey("flags.id", ondelete="SET NULL"), nullable=True, index=True)
    joined_at = Column(DateTime, nullable=False)
    left_at = Column(DateTime, nullable=True)

    crew = relationship("Crew", back_populates="flag_history")
    flag = relationship("Flag")

    __table_args__ = (
        Index('ix_crew_flag_history_open', 'crew_id', 'left_at'),
    )

    @property
    def is_current(self) -> bool:
        return self.left_at is None

    def duration_days(self, now: Optional[datetime] = None) -> int:
        end = self.left_at or now or utc_now()
        return (end - self.joined_at).days


# =============================================================================
# JOBS & MARKET
# =============================================================================

class ScrapeJob(Base):
    """One scrape run for one ocean and one job type."""
    __tablename__ = "scrape_jobs"

    id = Column(String(36), primary_key=True, default=_uuid)
    ocean = Column(String(20), nullable=False, index=True)
    job_type = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default=ScrapeJobStatus.RUNNING.value, index=True)
    started_at = Column(DateTime, nullable=False, default=utc_now)
    ended_at = Column(DateTime, nullable=True)
    items_processed = Column(Integer, nullable=False, default=0)
    items_failed = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        Index('ix_scrape_jobs_ocean_status', 'ocean', 'status'),
    )

    def mark_completed(self) -> None:
        self.ended_at = utc_now()
        self.status = ScrapeJobStatus.COMPLETED.value

    def mark_failed(self, error: Optional[BaseException | str] = None) -> None:
        self.ended_at = utc_now()
        self.status = ScrapeJobStatus.FAILED.value
        if error is not None:
            self.error_message = str(error) or error.__class__.__name__

    def increment_processed(self) -> None:
        self.items_processed = (self.items_processed or 0) + 1

    def increment_failed(self) -> None:
        self.items_failed = (self.items_failed or 0) + 1

    @property
    def is_running(self) -> bool:
        return self.status == ScrapeJobStatus.RUNNING.value

    @property
    def duration(self) -> timedelta:
        return (self.ended_at or utc_now()) - self.started_at

    @property
    def success_rate(self) -> float:
        """Processed share of all attempted items (0-100)."""
        total = (self.items_processed or 0) + (self.items_failed or 0)
        if total == 0:
            return 0.0
        return self.items_processed / total * 100


class MarketOrder(Base):
    """
    One shop's buy/sell offer from the buysell CSV export.

    The whole table is replaced on every import.
    """
    __tablename__ = "market_orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    ocean = Column(String(20), nullable=False, index=True)
    island_name = Column(String(100), nullable=False, index=True)
    commodity_name = Column(String(100), nullable=False, index=True)
    shop_name = Column(String(100), nullable=False)
    buy_price = Column(Integer, nullable=False, default=0)
    buy_quantity = Column(Integer, nullable=False, default=0)
    sell_price = Column(Integer, nullable=False, default=0)
    sell_quantity = Column(Integer, nullable=False, default=0)
    imported_at = Column(DateTime, nullable=False, index=True)
