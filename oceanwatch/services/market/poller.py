"""
Market order CSV poller.

Fetches the buysell CSV export of every configured ocean and atomically
replaces the market_orders table with the combined rows.

A failed ocean (fetch or parse) is skipped and the others are still
imported, which drops that ocean's orders until its next successful poll.
Only when no ocean yields any rows is the import skipped entirely.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from oceanwatch.core.exceptions import FetchError, ParseError
from oceanwatch.core.metrics import market_csv_rows_skipped_total, market_orders_imported
from oceanwatch.models import MarketOrder, Ocean
from oceanwatch.repositories import MarketOrderRepository
from oceanwatch.services.scraper import urls
from oceanwatch.services.scraper.client import YowebClient
from oceanwatch.services.scraper.parsers import MarketOrderData, parse_market_csv
from oceanwatch.utils.timezone import utc_now

logger = logging.getLogger(__name__)


@dataclass
class MarketImportResult:
    """Summary of one poll."""
    imported: int = 0
    imported_by_ocean: Dict[str, int] = field(default_factory=dict)
    skipped_rows: int = 0
    failed_oceans: List[str] = field(default_factory=list)
    replaced: bool = False
    duration_ms: int = 0


class MarketOrderPoller:
    """
    Polls the market order CSV export for a set of oceans.

    Attributes:
        session_factory: Factory for the import session
        client: Shared yoweb client (the CSV host shares the rate limit)
        oceans: Oceans to poll
    """

    def __init__(self, session_factory: sessionmaker, client: YowebClient, oceans: List[Ocean]):
        self.session_factory = session_factory
        self.client = client
        self.oceans = [Ocean(o) for o in oceans]

    async def run(self) -> MarketImportResult:
        """Fetch every ocean and replace stored orders."""
        start = time.time()
        result = MarketImportResult()
        imported_at = utc_now()
        orders: List[MarketOrderData] = []

        logger.info(f"Starting market order import for {len(self.oceans)} oceans")

        for ocean in self.oceans:
            ocean_orders = await self._fetch_ocean(ocean, imported_at, result)
            if ocean_orders is None:
                result.failed_oceans.append(ocean.value)
                continue
            result.imported_by_ocean[ocean.value] = len(ocean_orders)
            orders.extend(ocean_orders)

        if not orders:
            logger.warning("No market orders fetched from any ocean, keeping previous import")
            result.duration_ms = int((time.time() - start) * 1000)
            return result

        if result.failed_oceans:
            logger.warning(
                f"Replacing market orders without {', '.join(result.failed_oceans)}; "
                f"their orders are dropped until the next successful poll"
            )

        result.imported = self._replace(orders)
        result.replaced = True
        for ocean in self.oceans:
            market_orders_imported.labels(ocean=ocean.value).set(result.imported_by_ocean.get(ocean.value, 0))

        result.duration_ms = int((time.time() - start) * 1000)
        logger.info(f"✅ Imported {result.imported} market orders in {result.duration_ms}ms")
        return result

    async def _fetch_ocean(
        self,
        ocean: Ocean,
        imported_at: datetime,
        result: MarketImportResult
    ) -> Optional[List[MarketOrderData]]:
        try:
            text = await self.client.fetch(urls.market_csv_url(ocean))
            parsed = parse_market_csv(text, ocean.value, imported_at)
        except (FetchError, ParseError) as e:
            logger.error(f"Market CSV for {ocean.value} unavailable: {e}")
            return None

        for error in parsed.errors:
            logger.warning(f"Skipping market CSV {ocean.value} {error}")
        result.skipped_rows += len(parsed.errors)
        market_csv_rows_skipped_total.labels(ocean=ocean.value).inc(len(parsed.errors))

        logger.info(f"Fetched {len(parsed.orders)} market orders from {ocean.value}")
        return parsed.orders

    def _replace(self, orders: List[MarketOrderData]) -> int:
        """Delete-all then insert-all in a single transaction."""
        db = self.session_factory()
        try:
            repo = MarketOrderRepository(db)
            count = repo.replace_all([MarketOrder(**vars(order)) for order in orders])
            repo.save()
            return count
        except Exception:
            db.rollback()
            logger.error("Market order import failed, previous import kept", exc_info=True)
            raise
        finally:
            db.close()
