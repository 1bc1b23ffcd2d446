"""
Enumerations for the Puzzle Pirates ocean data.

Values are stored as plain strings in the database. Ordered enums expose an
``order`` property (1 = lowest) matching the in-game hierarchy.
"""
from enum import Enum
from typing import Optional


class Ocean(str, Enum):
    """An independent game-world instance."""
    EMERALD = "emerald"
    MERIDIAN = "meridian"
    CERULEAN = "cerulean"
    OBSIDIAN = "obsidian"


class FameLevel(str, Enum):
    """Crew/flag fame and flag reputation levels, lowest to highest."""
    OBSCURE = "Obscure"
    RUMORED = "Rumored"
    NOTED = "Noted"
    RECOGNIZED = "Recognized"
    DISTINGUISHED = "Distinguished"
    CELEBRATED = "Celebrated"
    EMINENT = "Eminent"
    RENOWNED = "Renowned"
    ILLUSTRIOUS = "Illustrious"

    @property
    def order(self) -> int:
        return list(FameLevel).index(self) + 1

    @classmethod
    def match(cls, text: str) -> Optional["FameLevel"]:
        """Find the fame keyword in free text, checking the highest level first."""
        return _match_keyword(cls, text)


class CrewRank(str, Enum):
    """Crew battle ranks, lowest to highest."""
    SAILORS = "Sailors"
    MOSTLY_HARMLESS = "Mostly Harmless"
    SCURVY_DOGS = "Scurvy Dogs"
    SCOUNDRELS = "Scoundrels"
    BLAGGARDS = "Blaggards"
    DREAD_PIRATES = "Dread Pirates"
    SEA_LORDS = "Sea Lords"
    IMPERIALS = "Imperials"

    @property
    def order(self) -> int:
        return list(CrewRank).index(self) + 1

    @classmethod
    def match(cls, text: str) -> Optional["CrewRank"]:
        """Find the rank keyword in free text, checking the highest rank first."""
        return _match_keyword(cls, text)


class IslandSize(str, Enum):
    OUTPOST = "outpost"
    MEDIUM = "medium"
    LARGE = "large"

    @property
    def max_buildings(self) -> int:
        """Building slots; -1 means unlimited."""
        return {
            IslandSize.OUTPOST: 2,
            IslandSize.MEDIUM: 6,
            IslandSize.LARGE: -1,
        }[self]


class CommodityCategory(str, Enum):
    BASIC = "basic"
    HERB = "herb"
    MINERAL = "mineral"
    FORAGED = "foraged"
    REFINED = "refined"
    SHIP_SUPPLY = "ship_supply"
    # Lazily discovered commodity awaiting classification
    UNCLASSIFIED = "unclassified"


class ReputationType(str, Enum):
    CONQUEROR = "Conqueror"
    EXPLORER = "Explorer"
    PATRON = "Patron"
    MAGNATE = "Magnate"


class ScrapeJobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ScrapeJobType(str, Enum):
    DAILY_FULL = "daily_full"
    ISLANDS = "islands"
    TAX_RATES = "tax_rates"
    CREW_INFO = "crew_info"
    CREW_FAME = "crew_fame"
    FLAG_FAME = "flag_fame"
    BATTLE_INFO = "battle_info"


def _match_keyword(enum_cls, text: str):
    if not text:
        return None
    lowered = text.lower()
    for member in reversed(list(enum_cls)):
        if member.value.lower() in lowered:
            return member
    return None
