"""
Yoweb URL builders.

Every ocean is served from its own subdomain: https://{ocean}.{host}/...
"""
from oceanwatch.core.config import settings


def _base(ocean, host: str = None) -> str:
    name = getattr(ocean, "value", ocean)
    return f"https://{name}.{host or settings.SCRAPE_HOST}"


def island_list_url(ocean, host: str = None) -> str:
    return f"{_base(ocean, host)}/yoweb/island/info.wm?showAll=true"


def island_info_url(ocean, island_id: int, host: str = None) -> str:
    return f"{_base(ocean, host)}/yoweb/island/info.wm?islandid={island_id}"


def tax_rates_url(ocean, host: str = None) -> str:
    return f"{_base(ocean, host)}/yoweb/econ/taxrates.wm"


def crew_fame_list_url(ocean, host: str = None) -> str:
    return f"{_base(ocean, host)}/ratings/top_fame_97.html"


def crew_info_url(ocean, crew_id: int, host: str = None) -> str:
    return f"{_base(ocean, host)}/yoweb/crew/info.wm?crewid={crew_id}"


def crew_battle_info_url(ocean, crew_id: int, host: str = None) -> str:
    return f"{_base(ocean, host)}/yoweb/crew/battleinfo.wm?crewid={crew_id}&classic=false"


def flag_fame_list_url(ocean, host: str = None) -> str:
    return f"{_base(ocean, host)}/ratings/top_fame_112.html"


def flag_info_url(ocean, flag_id: int, host: str = None) -> str:
    return f"{_base(ocean, host)}/yoweb/flag/info.wm?flagid={flag_id}"


def market_csv_url(ocean, host: str = None) -> str:
    return f"{_base(ocean, host)}/yoweb/econ/buysell.wm"
