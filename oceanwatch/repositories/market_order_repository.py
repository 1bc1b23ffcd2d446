"""
Market Order Repository.

The market_orders table only ever holds the latest import; replace_all swaps
its whole content inside the caller's transaction.
"""
from typing import Dict, List
from sqlalchemy import delete, func

from oceanwatch.models import MarketOrder
from oceanwatch.repositories.base import BaseRepository

INSERT_BATCH_SIZE = 100


class MarketOrderRepository(BaseRepository[MarketOrder]):
    """Repository for market order data access."""

    def __init__(self, db):
        super().__init__(MarketOrder, db)

    def replace_all(self, orders: List[MarketOrder], batch_size: int = INSERT_BATCH_SIZE) -> int:
        """
        Delete every stored order and insert the given ones.

        Does not commit. Any exception leaves the session needing rollback,
        which restores the previous import.

        Returns:
            Number of orders inserted
        """
        self.db.execute(delete(MarketOrder))
        for start in range(0, len(orders), batch_size):
            self.db.add_all(orders[start:start + batch_size])
            self.db.flush()
        return len(orders)

    def count_by_ocean(self) -> Dict[str, int]:
        rows = self.db.query(MarketOrder.ocean, func.count(MarketOrder.id)).group_by(MarketOrder.ocean).all()
        return {ocean: count for ocean, count in rows}
