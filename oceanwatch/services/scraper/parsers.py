"""
Parsers for yoweb pages and the buysell CSV export (BeautifulSoup).

Every parser is a pure function from page text to dataclass records. Missing
optional fields yield their zero value and missing sections yield empty
lists; only a structurally required field (an entity name, a numeric battle
cell) raises ParseError.
"""
import csv
import io
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from bs4 import BeautifulSoup, NavigableString

from oceanwatch.core.exceptions import ParseError
from oceanwatch.models.enums import CrewRank, FameLevel, IslandSize, ReputationType

UNCOLONIZED_MARKER = "The island is uncolonized"

MARKET_CSV_FIELDS = 7

_POPULATION_RE = re.compile(r"population[:\s]+([\d,]+)", re.IGNORECASE)
_ARCHIPELAGO_RE = re.compile(r"located\s+in\s+the\s+([A-Za-z\s]+?)\s+archipelago", re.IGNORECASE)
_SIZE_RE = re.compile(r"size[:\s]+(outpost|medium|large)", re.IGNORECASE)
_EXPORTS_END_RE = re.compile(r"colonized islands|\n\s*\n", re.IGNORECASE)
_RANK_LABEL_RE = re.compile(r"\brank[:\s]+([A-Za-z ]+)", re.IGNORECASE)
# html.parser adds no <tbody>, so the cell is matched as a descendant
_TAX_TABLE_SELECTOR = "body > center > table td:first-of-type > table"
_REPUTATION_LABEL_RE = re.compile(r"^(conqueror|explorer|patron|magnate):?$", re.IGNORECASE)


@dataclass
class IslandData:
    game_island_id: Optional[int]
    name: str
    archipelago: str = ""
    size: Optional[IslandSize] = None
    is_colonized: bool = True
    population: int = 0
    governor_flag_id: Optional[int] = None
    governor_flag_name: str = ""
    governor_name: str = ""
    commodities: List[str] = field(default_factory=list)


@dataclass
class TaxRateData:
    commodity_name: str
    tax_value: int


@dataclass
class FameEntry:
    """One row of a crew or flag fame ranking."""
    game_id: int
    name: str
    fame_level: Optional[FameLevel] = None
    rank: Optional[int] = None


@dataclass
class CrewData:
    game_crew_id: int
    name: str
    flag_id: Optional[int] = None
    flag_name: str = ""
    crew_rank: Optional[CrewRank] = None


@dataclass
class CrewBattleData:
    total_pvp_wins: int = 0
    total_pvp_losses: int = 0
    crew_rank: Optional[CrewRank] = None


@dataclass
class FlagData:
    game_flag_id: int
    name: str
    reputations: Dict[ReputationType, FameLevel] = field(default_factory=dict)


@dataclass
class MarketOrderData:
    ocean: str
    island_name: str
    commodity_name: str
    shop_name: str
    buy_price: int
    buy_quantity: int
    sell_price: int
    sell_quantity: int
    imported_at: datetime


@dataclass
class MarketCsvResult:
    orders: List[MarketOrderData] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


# =============================================================================
# HELPERS
# =============================================================================

def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def _query_id(href: Optional[str], param: str) -> Optional[int]:
    if not href:
        return None
    match = re.search(rf"{param}=(\d+)", href)
    return int(match.group(1)) if match else None


def _to_int(text: str) -> Optional[int]:
    cleaned = text.strip().replace(",", "")
    return int(cleaned) if cleaned.isdigit() else None


def _heading_name(soup: BeautifulSoup) -> str:
    """Entity name from the name cell, falling back to page headings."""
    bold = soup.select_one('td[width="246"] b')
    if bold and bold.get_text(strip=True):
        return bold.get_text(strip=True)
    for tag in soup.find_all(["h1", "h2", "title"]):
        text = tag.get_text(strip=True)
        if text and "puzzle pirates" not in text.lower():
            return text
    return ""


def match_fame_level(text: str) -> Optional[FameLevel]:
    return FameLevel.match(text)


def match_crew_rank(text: str) -> Optional[CrewRank]:
    return CrewRank.match(text)


# =============================================================================
# ISLANDS
# =============================================================================

def parse_island_list(html: str) -> List[IslandData]:
    """
    Parse the showAll island list.

    Each island sits in its own <center> block inside the page's main
    <center>. Islands are returned even without a resolvable id.
    """
    soup = _soup(html)
    islands = []
    for block in soup.select("body > center center"):
        font = block.find("font")
        name = font.get_text(strip=True) if font else ""
        if not name:
            continue
        text = block.get_text()
        link = block.find("a", href=lambda h: h and "islandid=" in h)
        population = _POPULATION_RE.search(text)
        archipelago = _ARCHIPELAGO_RE.search(text)
        islands.append(IslandData(
            game_island_id=_query_id(link["href"], "islandid") if link else None,
            name=name,
            archipelago=archipelago.group(1).strip() if archipelago else "",
            population=_to_int(population.group(1)) or 0 if population else 0,
        ))
    return islands


def parse_island_info(html: str, island_id: int) -> Optional[IslandData]:
    """
    Parse one island detail page.

    Returns:
        None when the page reports the island as uncolonized
    """
    if UNCOLONIZED_MARKER in html:
        return None

    soup = _soup(html)
    name_tag = soup.find("font", attrs={"size": "+1"}) or soup.find("font")
    name = name_tag.get_text(strip=True) if name_tag else ""
    if not name:
        raise ParseError("island name not found", context=f"island {island_id}")

    body = soup.body or soup
    text = body.get_text()
    island = IslandData(game_island_id=island_id, name=name)

    population = _POPULATION_RE.search(text)
    if population:
        island.population = _to_int(population.group(1)) or 0

    archipelago = _ARCHIPELAGO_RE.search(text)
    if archipelago:
        island.archipelago = " ".join(archipelago.group(1).split())

    size = _SIZE_RE.search(text)
    if size:
        island.size = IslandSize(size.group(1).lower())

    island.governor_name = _governor_name(soup, text)

    flag_link = soup.find("a", href=lambda h: h and "flag/info.wm" in h and "flagid=" in h)
    if flag_link:
        island.governor_flag_id = _query_id(flag_link["href"], "flagid")
        island.governor_flag_name = flag_link.get_text(strip=True)

    island.commodities = _exports(text)
    return island


def _governor_name(soup: BeautifulSoup, text: str) -> str:
    pirate_links = soup.find_all("a", href=lambda h: h and "pirate.wm" in h)
    for link in pirate_links:
        previous = link.previous_sibling
        if isinstance(previous, NavigableString) and "governor" in previous.lower():
            return link.get_text(strip=True)
    if pirate_links and "governor:" in text.lower():
        return pirate_links[0].get_text(strip=True)
    return ""


def _exports(text: str) -> List[str]:
    start = text.lower().find("exports:")
    if start < 0:
        return []
    section = text[start + len("exports:"):]
    end = _EXPORTS_END_RE.search(section)
    if end:
        section = section[:end.start()]
    return [" ".join(part.split()) for part in section.split(",") if part.strip()]


# =============================================================================
# TAX RATES
# =============================================================================

def parse_tax_rates(html: str) -> List[TaxRateData]:
    """
    Parse the tax rate table.

    Only the table nested in the first cell of the page's layout table is
    read; footer and info tables elsewhere on the page are ignored. Rows
    without a numeric tax are skipped.
    """
    rates_table = _soup(html).select_one(_TAX_TABLE_SELECTOR)
    if rates_table is None:
        return []

    rates = []
    for row in rates_table.find_all("tr"):
        if row.find("th"):
            continue
        cells = row.find_all("td", recursive=False)
        if len(cells) < 2:
            continue
        commodity = " ".join(cells[0].get_text().split())
        digits = re.sub(r"[^\d]", "", cells[1].get_text())
        if commodity and digits:
            rates.append(TaxRateData(commodity_name=commodity, tax_value=int(digits)))
    return rates


# =============================================================================
# FAME LISTS
# =============================================================================

def _parse_fame_list(html: str, id_param: str) -> List[FameEntry]:
    soup = _soup(html)
    entries = []
    for row in soup.find_all("tr"):
        if row.find("th"):
            continue
        cells = row.find_all("td", recursive=False)
        if len(cells) < 2:
            continue
        link = row.find("a", href=lambda h: h and f"{id_param}=" in h)
        if not link:
            continue
        game_id = _query_id(link["href"], id_param)
        name = link.get_text(strip=True)
        if not game_id or not name:
            continue

        link_cell = next((i for i, cell in enumerate(cells) if link in cell.descendants), 0)
        fame_text = " ".join(cell.get_text(" ", strip=True) for cell in cells[link_cell + 1:])
        entries.append(FameEntry(
            game_id=game_id,
            name=name,
            fame_level=FameLevel.match(fame_text or row.get_text(" ")),
            rank=_to_int(cells[0].get_text()),
        ))
    return entries


def parse_crew_fame_list(html: str) -> List[FameEntry]:
    return _parse_fame_list(html, "crewid")


def parse_flag_fame_list(html: str) -> List[FameEntry]:
    return _parse_fame_list(html, "flagid")


# =============================================================================
# CREWS
# =============================================================================

def parse_crew_info(html: str, crew_id: int) -> CrewData:
    """Parse a crew detail page; a crew without a flag link is independent."""
    soup = _soup(html)
    name = _heading_name(soup)
    if not name:
        raise ParseError("crew name not found", context=f"crew {crew_id}")

    crew = CrewData(game_crew_id=crew_id, name=name)

    flag_link = soup.find("a", href=lambda h: h and "flagid=" in h)
    if flag_link:
        crew.flag_id = _query_id(flag_link["href"], "flagid")
        crew.flag_name = flag_link.get_text(strip=True)

    rank_link = soup.find("a", href=lambda h: h and "battleinfo.wm" in h)
    if rank_link:
        crew.crew_rank = CrewRank.match(rank_link.get_text())
    return crew


def parse_crew_battle_info(html: str) -> CrewBattleData:
    """
    Parse a crew battle page.

    The table is a short daily history; PvP wins (5th column) and losses
    (6th column) are summed across all data rows.
    """
    soup = _soup(html)
    battle = CrewBattleData()

    for row in soup.find_all("tr"):
        if row.find("th"):
            continue
        cells = row.find_all("td", recursive=False)
        if len(cells) < 7:
            continue
        wins = _to_int(cells[4].get_text())
        losses = _to_int(cells[5].get_text())
        if wins is None or losses is None:
            raise ParseError(
                f"non-numeric win/loss cells {cells[4].get_text(strip=True)!r}/{cells[5].get_text(strip=True)!r}",
                context="crew battle info",
            )
        battle.total_pvp_wins += wins
        battle.total_pvp_losses += losses

    rank_label = _RANK_LABEL_RE.search(soup.get_text())
    if rank_label:
        battle.crew_rank = CrewRank.match(rank_label.group(1))
    return battle


# =============================================================================
# FLAGS
# =============================================================================

def parse_flag_info(html: str, flag_id: int) -> FlagData:
    """Parse a flag detail page including its reputation table."""
    soup = _soup(html)
    name = _heading_name(soup)
    if not name:
        raise ParseError("flag name not found", context=f"flag {flag_id}")

    flag = FlagData(game_flag_id=flag_id, name=name)
    for row in soup.find_all("tr"):
        cells = row.find_all("td", recursive=False)
        if len(cells) < 2:
            continue
        label = _REPUTATION_LABEL_RE.match(cells[0].get_text(strip=True))
        if not label:
            continue
        level = FameLevel.match(cells[1].get_text())
        if level:
            flag.reputations[ReputationType(label.group(1).capitalize())] = level
    return flag


# =============================================================================
# MARKET CSV
# =============================================================================

def parse_market_csv(text: str, ocean: str, imported_at: datetime) -> MarketCsvResult:
    """
    Parse the buysell CSV export.

    Format (after a header row):
        island,commodity,store,buy_price,buy_quantity,sell_price,sell_quantity

    Malformed rows are reported in `errors` as "row N: reason" (N counts the
    header as row 1) and skipped.
    """
    result = MarketCsvResult()
    reader = csv.reader(io.StringIO(text), skipinitialspace=True)
    try:
        rows = list(reader)
    except csv.Error as e:
        raise ParseError(str(e), context=f"market csv {ocean}") from e

    for index, record in enumerate(rows[1:]):
        if not record or all(not cell.strip() for cell in record):
            continue
        try:
            result.orders.append(_market_order(record, ocean, imported_at))
        except ValueError as e:
            result.errors.append(f"row {index + 2}: {e}")
    return result


def _market_order(record: List[str], ocean: str, imported_at: datetime) -> MarketOrderData:
    if len(record) != MARKET_CSV_FIELDS:
        raise ValueError(f"expected {MARKET_CSV_FIELDS} fields, got {len(record)}")
    cells = [cell.strip() for cell in record]
    for label, value in (("island", cells[0]), ("commodity", cells[1]), ("store", cells[2])):
        if not value:
            raise ValueError(f"{label} name is empty")

    numbers = {}
    for label, value in zip(("buy_price", "buy_quantity", "sell_price", "sell_quantity"), cells[3:]):
        try:
            numbers[label] = int(value)
        except ValueError:
            raise ValueError(f"invalid {label} {value!r}") from None

    return MarketOrderData(
        ocean=ocean,
        island_name=cells[0],
        commodity_name=cells[1],
        shop_name=cells[2],
        imported_at=imported_at,
        **numbers,
    )
