"""Read helpers over a DealStore."""

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import structlog

from brickdeals.scrapers.base import DealRecord
from brickdeals.services.deal_store import DealStore

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DealQueryService:
    """Service for querying stored deals.

    Every method is a thin wrapper over DealStore.find, so the same queries
    run unchanged against the JSON and SQL backends.
    """

    def __init__(self, store: DealStore, clock: Optional[Callable[[], datetime]] = None):
        """Initialize query service.

        Args:
            store: Deal store to read from
            clock: Returns the current instant; used by recent()
        """
        self.store = store
        self.clock = clock or _utcnow
        self.logger = logger.bind(service="deal_query_service")

    async def most_commented(self, limit: int = 10) -> List[DealRecord]:
        """Deals with the most comments first."""
        return await self.store.find(sort=[("comments_count", -1)], limit=limit)

    async def sorted_by_price(self, ascending: bool = True, limit: int = 50) -> List[DealRecord]:
        return await self.store.find(sort=[("price", 1 if ascending else -1)], limit=limit)

    async def sorted_by_date(self, limit: int = 50) -> List[DealRecord]:
        """Newest deals first; deals without a posted date come last."""
        return await self.store.find(sort=[("posted_date", -1)], limit=limit)

    async def by_set_number(self, set_number: str) -> List[DealRecord]:
        """All deals for one set, cheapest first."""
        return await self.store.find(
            filters={"set_number": str(set_number)},
            sort=[("price", 1)],
        )

    async def recent(self, weeks: int = 3) -> List[DealRecord]:
        """Deals posted within the last ``weeks`` weeks, newest first.

        Deals without a posted date are excluded.
        """
        if weeks < 0:
            raise ValueError("weeks must be >= 0")

        since = self.clock() - timedelta(weeks=weeks)
        deals = await self.store.find(
            filters={"posted_date": {"$gte": since}},
            sort=[("posted_date", -1)],
        )
        self.logger.debug("recent_deals_queried", weeks=weeks, since=since.isoformat(), count=len(deals))
        return deals
