"""Unit tests for the yoweb page and buysell CSV parsers.

Each test follows the pattern:
- Given: a page as yoweb serves it (trimmed to the relevant markup)
- When: the parser is called
- Then: the returned records carry the expected fields
"""
from datetime import datetime

import pytest

from oceanwatch.core.exceptions import ParseError
from oceanwatch.models import CrewRank, FameLevel, IslandSize, ReputationType
from oceanwatch.services.scraper.parsers import (
    match_crew_rank,
    match_fame_level,
    parse_crew_battle_info,
    parse_crew_fame_list,
    parse_crew_info,
    parse_flag_fame_list,
    parse_flag_info,
    parse_island_info,
    parse_island_list,
    parse_market_csv,
    parse_tax_rates,
)

TURTLE_ISLAND = """<html><body>
    <center>
        <center>
            <font size="+1">Turtle Island</font><br>
            Population: 57<br>
            Located in the Diamond archipelago.<br>
            Governor: <a href="/yoweb/pirate.wm?classic=true&target=Darkseid">Darkseid</a><br>
            Property tax: 20%<br>
        </center>
        Ruled by <a href="/yoweb/flag/info.wm?flagid=10013644&classic=false">Black Flag Inc</a><br>
        Exports: Wood, Iron, Stone<br>
    </center>
</body></html>"""

CREW_FAME_LIST = """<html><body>
    <table>
        <tr><th>Rank</th><th>Crew</th><th>Fame</th></tr>
        <tr><td>1</td><td><a href="/yoweb/crew/info.wm?crewid=12345">Best Crew</a></td><td>Illustrious</td></tr>
        <tr><td>2</td><td><a href="/yoweb/crew/info.wm?crewid=67890">Second Crew</a></td><td>Renowned</td></tr>
        <tr><td>3</td><td><a href="/yoweb/crew/info.wm?crewid=11111">Third Crew</a></td><td>Obscure</td></tr>
    </table>
</body></html>"""

BATTLE_INFO = """<html><body>
    <table>
        <tr><th>Header 1</th></tr>
        <tr><th>Header 2</th></tr>
        <tr><td>2024-01-01</td><td>10</td><td>5</td><td>5</td><td>3</td><td>2</td><td>10:00</td></tr>
        <tr><td>2024-01-02</td><td>8</td><td>4</td><td>4</td><td>2</td><td>1</td><td>8:00</td></tr>
    </table>
</body></html>"""


class TestIslandParsers:
    """Island detail and list pages."""

    def test_colonized_island(self):
        """Should extract every field of a colonized island."""
        island = parse_island_info(TURTLE_ISLAND, 42)

        assert island.game_island_id == 42
        assert island.name == "Turtle Island"
        assert island.population == 57
        assert island.archipelago == "Diamond"
        assert island.is_colonized is True
        assert island.governor_name == "Darkseid"
        assert island.governor_flag_id == 10013644
        assert island.governor_flag_name == "Black Flag Inc"
        assert island.commodities == ["Wood", "Iron", "Stone"]

    def test_single_export_without_governor(self):
        html = """<html><body><center>
            <center>
                <font size="+1">Small Island</font><br>
                Population: 10<br>
                Located in the Ruby archipelago.<br>
            </center>
            Exports: Hemp<br>
        </center></body></html>"""

        island = parse_island_info(html, 5)

        assert island.name == "Small Island"
        assert island.governor_name == ""
        assert island.governor_flag_id is None
        assert island.commodities == ["Hemp"]

    def test_island_size_label(self):
        html = """<html><body><center><font size="+1">Big Island</font><br>
            Size: Large<br>Population: 1,234<br></center></body></html>"""

        island = parse_island_info(html, 100)

        assert island.size == IslandSize.LARGE
        assert island.population == 1234

    def test_uncolonized_island_returns_none(self):
        html = "<html><body><center>The island is uncolonized.</center></body></html>"
        assert parse_island_info(html, 7) is None

    def test_missing_name_raises(self):
        with pytest.raises(ParseError):
            parse_island_info("<html><body><center>Population: 3</center></body></html>", 8)

    def test_island_list(self):
        html = """<html><body><center>
            <center><font size="+1">Turtle Island</font><br>
                <a href="/yoweb/island/info.wm?islandid=42">details</a><br>Population: 57</center>
            <center><font size="+1">Nameless Rock</font><br>Located in the Ruby archipelago.</center>
        </center></body></html>"""

        islands = parse_island_list(html)

        assert [i.name for i in islands] == ["Turtle Island", "Nameless Rock"]
        assert islands[0].game_island_id == 42
        assert islands[0].population == 57
        assert islands[1].game_island_id is None
        assert islands[1].archipelago == "Ruby"


class TestTaxRateParser:

    def test_rate_rows(self):
        html = """<html><body><center><table><tr><td>
            <table>
                <tr><th>Commodity</th><th>Tax</th></tr>
                <tr><td>Iron</td><td>12 PoE</td></tr>
                <tr><td>White dye</td><td>1,500</td></tr>
                <tr><td>Broken</td><td>n/a</td></tr>
            </table>
        </td></tr></table></center></body></html>"""

        rates = parse_tax_rates(html)

        assert [(r.commodity_name, r.tax_value) for r in rates] == [("Iron", 12), ("White dye", 1500)]

    def test_footer_tables_are_ignored(self):
        """Two-cell rows outside the nested rate table must not become rates."""
        html = """<html><body><center>
            <table><tr>
                <td><table>
                    <tr><th>Commodity</th><th>Tax</th></tr>
                    <tr><td>Iron</td><td>12</td></tr>
                </table></td>
                <td><table><tr><td>Page generated</td><td>0.04 seconds</td></tr></table></td>
            </tr></table>
            <table>
                <tr><td>Server time</td><td>2024-06-01 10:30</td></tr>
            </table>
        </center>
        <table><tr><td>Players online</td><td>1,234</td></tr></table>
        </body></html>"""

        rates = parse_tax_rates(html)

        assert [(r.commodity_name, r.tax_value) for r in rates] == [("Iron", 12)]

    @pytest.mark.parametrize("html", [
        "<html><body></body></html>",
        "<body><center>no table here</center></body>",
        "<body><table><tr><td>Iron</td><td>12</td></tr></table></body>",
    ])
    def test_no_table_yields_nothing(self, html):
        assert parse_tax_rates(html) == []


class TestFameListParsers:

    def test_crew_fame_list(self):
        entries = parse_crew_fame_list(CREW_FAME_LIST)

        assert [(e.game_id, e.name, e.fame_level, e.rank) for e in entries] == [
            (12345, "Best Crew", FameLevel.ILLUSTRIOUS, 1),
            (67890, "Second Crew", FameLevel.RENOWNED, 2),
            (11111, "Third Crew", FameLevel.OBSCURE, 3),
        ]

    def test_flag_fame_list(self):
        html = """<html><body><table>
            <tr><th>Rank</th><th>Flag</th><th>Fame</th></tr>
            <tr><td>1</td><td><a href="/yoweb/flag/info.wm?flagid=11111">Top Flag</a></td><td>Illustrious</td></tr>
            <tr><td>2</td><td><a href="/yoweb/flag/info.wm?flagid=22222">Second Flag</a></td><td>Eminent</td></tr>
        </table></body></html>"""

        entries = parse_flag_fame_list(html)

        assert [(e.game_id, e.fame_level) for e in entries] == [
            (11111, FameLevel.ILLUSTRIOUS),
            (22222, FameLevel.EMINENT),
        ]

    def test_crew_list_ignores_flag_links(self):
        assert parse_flag_fame_list(CREW_FAME_LIST) == []


class TestCrewParsers:

    def test_crew_with_flag_and_rank(self):
        html = """<html><body>
            <table><tr><td width="246">
                <font><b>Pirates of the Caribbean</b></font>
                <a href="/yoweb/flag/info.wm?flagid=99999">Jolly Roger Alliance</a>
            </td></tr></table>
            <a href="/yoweb/crew/battleinfo.wm?crewid=12345&classic=false">Sea Lords</a>
        </body></html>"""

        crew = parse_crew_info(html, 12345)

        assert crew.game_crew_id == 12345
        assert crew.name == "Pirates of the Caribbean"
        assert crew.flag_id == 99999
        assert crew.flag_name == "Jolly Roger Alliance"
        assert crew.crew_rank == CrewRank.SEA_LORDS

    def test_independent_crew(self):
        html = """<html><body>
            <table><tr><td width="246"><font><b>Lone Wolf Sailors</b></font></td></tr></table>
            <a href="/yoweb/crew/battleinfo.wm?crewid=55555&classic=false">Sailors</a>
        </body></html>"""

        crew = parse_crew_info(html, 55555)

        assert crew.flag_id is None
        assert crew.flag_name == ""
        assert crew.crew_rank == CrewRank.SAILORS

    def test_crew_without_name_raises(self):
        with pytest.raises(ParseError):
            parse_crew_info("<html><body><table><tr><td>nothing</td></tr></table></body></html>", 1)

    def test_battle_info_sums_pvp_columns(self):
        battle = parse_crew_battle_info(BATTLE_INFO)

        assert battle.total_pvp_wins == 5
        assert battle.total_pvp_losses == 3

    def test_battle_info_without_rows(self):
        battle = parse_crew_battle_info("<html><body><table><tr><th>Nothing yet</th></tr></table></body></html>")

        assert battle.total_pvp_wins == 0
        assert battle.total_pvp_losses == 0

    def test_battle_info_non_numeric_cell_raises(self):
        html = """<html><body><table>
            <tr><td>2024-01-01</td><td>1</td><td>1</td><td>0</td><td>lots</td><td>2</td><td>1:00</td></tr>
        </table></body></html>"""

        with pytest.raises(ParseError):
            parse_crew_battle_info(html)


class TestFlagParser:

    def test_flag_with_reputations(self):
        html = """<html><body>
            <table><tr><td width="246"><font><b>Black Flag Inc</b></font></td></tr></table>
            <table>
                <tr><td>Conqueror:</td><td>Renowned</td></tr>
                <tr><td>Explorer</td><td>Noted</td></tr>
                <tr><td>Patron</td><td>-</td></tr>
            </table>
        </body></html>"""

        flag = parse_flag_info(html, 10013644)

        assert flag.name == "Black Flag Inc"
        assert flag.reputations == {
            ReputationType.CONQUEROR: FameLevel.RENOWNED,
            ReputationType.EXPLORER: FameLevel.NOTED,
        }


class TestKeywordMatching:

    def test_fame_level_case_insensitive(self):
        assert match_fame_level("  ILLUSTRIOUS ") == FameLevel.ILLUSTRIOUS
        assert match_fame_level("nothing here") is None

    def test_crew_rank_prefers_highest(self):
        assert match_crew_rank("Imperials (formerly Sailors)") == CrewRank.IMPERIALS
        assert match_crew_rank("") is None


class TestMarketCsvParser:

    IMPORTED_AT = datetime(2024, 6, 1, 12, 0)

    def test_valid_and_invalid_rows(self):
        text = (
            "island,commodity,store,buy_price,buy_quantity,sell_price,sell_quantity\n"
            "Turtle Island,Iron,Iron Monger,10,100,12,50\n"
            "Turtle Island, Wood, Shipyard, 5, 20, 7, 0\n"
            "\n"
            "Turtle Island,Stone,Quarry,abc,1,2,3\n"
            "Turtle Island,Hemp,Weavery,1,2,3\n"
            "Turtle Island,,Weavery,1,2,3,4\n"
        )

        result = parse_market_csv(text, "emerald", self.IMPORTED_AT)

        assert len(result.orders) == 2
        wood = result.orders[1]
        assert (wood.island_name, wood.commodity_name, wood.shop_name) == ("Turtle Island", "Wood", "Shipyard")
        assert (wood.buy_price, wood.buy_quantity, wood.sell_price, wood.sell_quantity) == (5, 20, 7, 0)
        assert wood.ocean == "emerald"
        assert wood.imported_at == self.IMPORTED_AT
        assert len(result.errors) == 3
        assert result.errors[0].startswith("row 5:")

    def test_header_only(self):
        result = parse_market_csv("island,commodity,store,a,b,c,d\n", "meridian", self.IMPORTED_AT)
        assert result.orders == []
        assert result.errors == []
