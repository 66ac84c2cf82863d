"""Scraper orchestration service.

This service connects the adapter layer with the deal store. It handles
the end-to-end flow for one target URL: resolve the adapter, acquire the
rendered page, extract candidates (with retries) and merge them into the
store.
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

import structlog

from brickdeals.config import settings
from brickdeals.core.exceptions import InvalidInputError, ZeroResultExtractionError
from brickdeals.scrapers.base import BaseSiteAdapter, DealRecord, PageKind, Provenance
from brickdeals.scrapers.factory import AdapterRegistry
from brickdeals.scrapers.register_adapters import get_adapter_registry
from brickdeals.scrapers.utils.browser_manager import BrowserDriver
from brickdeals.scrapers.utils.http_fetcher import HttpPageFetcher
from brickdeals.scrapers.utils.retry import RetryController
from brickdeals.services.deal_store import DealStore
from brickdeals.services.merge_service import DealMerger, MergeStats

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScraperService:
    """Service for orchestrating scrapes and persisting their results.

    Scrapes of different URLs may run concurrently; merges into the store
    are serialized by a lock owned by the service.
    """

    def __init__(
        self,
        store: DealStore,
        registry: Optional[AdapterRegistry] = None,
        browser_driver: Optional[BrowserDriver] = None,
        http_fetcher: Optional[HttpPageFetcher] = None,
        retry_controller: Optional[RetryController] = None,
        merger: Optional[DealMerger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize scraper service.

        Args:
            store: Deal store the results are merged into
            registry: Adapter registry (global one by default)
            browser_driver: Page source for sites that need rendering
            http_fetcher: Page source for static sites
            retry_controller: Retry policy for scrape attempts
            merger: Merge layer
            clock: Returns the reference instant for relative dates
        """
        self.store = store
        self.registry = registry or get_adapter_registry()
        self.browser_driver = browser_driver or BrowserDriver()
        self.http_fetcher = http_fetcher or HttpPageFetcher()
        self.retry_controller = retry_controller or RetryController()
        self.merger = merger or DealMerger()
        self.clock = clock or _utcnow
        self.logger = logger.bind(service="scraper_service")
        self._merge_lock = asyncio.Lock()
        self.last_merge_stats: Dict[str, MergeStats] = {}

    async def scrape(self, url: str) -> List[DealRecord]:
        """Scrape one target URL and merge the results into the store.

        This is the main entry point for a scraping job.

        Args:
            url: Listing or detail page URL on a supported site

        Returns:
            Records extracted by the successful attempt, or [] once every
            attempt has failed

        Raises:
            InvalidInputError: If the URL is missing or not supported
            PersistenceError: If the store cannot be read or written
        """
        adapter = self.registry.resolve(url)
        page_kind = adapter.classify_page(url)
        provenance = Provenance.from_page_kind(page_kind)
        log = self.logger.bind(url=url, site=adapter.site_id, page_kind=page_kind.value)

        log.info("scrape_started")

        outcome = await self.retry_controller.run(
            lambda attempt: self._attempt(adapter, url, page_kind, attempt),
            label=url,
        )

        if not outcome.succeeded:
            log.warning("scrape_gave_up", attempts=outcome.attempts, error=outcome.last_error)
            return []

        if outcome.records:
            async with self._merge_lock:
                stats = await self.merger.merge(self.store, outcome.records, provenance)
            self.last_merge_stats[url] = stats

        log.info("scrape_completed", attempts=outcome.attempts, count=len(outcome.records))
        return outcome.records

    async def scrape_many(
        self,
        urls: Iterable[str],
        concurrency: Optional[int] = None,
    ) -> Dict[str, List[DealRecord]]:
        """Scrape several URLs concurrently.

        An unsupported URL is logged and yields [] without affecting the
        others. Persistence errors propagate and cancel the scrapes still
        running.

        Args:
            urls: Target URLs
            concurrency: Maximum number of scrapes in flight

        Returns:
            Dict mapping each URL to its records
        """
        urls = list(dict.fromkeys(urls))
        limit = settings.SCRAPE_CONCURRENCY if concurrency is None else concurrency
        if limit < 1:
            raise ValueError("concurrency must be >= 1")
        semaphore = asyncio.Semaphore(limit)

        async def _run(url: str) -> List[DealRecord]:
            async with semaphore:
                try:
                    return await self.scrape(url)
                except InvalidInputError as e:
                    self.logger.error("invalid_target", url=url, error=e.message)
                    return []

        tasks = [asyncio.create_task(_run(url)) for url in urls]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            # No sibling may keep merging once the caller has the error
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return dict(zip(urls, results))

    async def _attempt(
        self,
        adapter: BaseSiteAdapter,
        url: str,
        page_kind: PageKind,
        attempt: int,
    ) -> List[DealRecord]:
        """Run one acquire + extract attempt."""
        self.logger.debug("scrape_attempt", url=url, attempt=attempt)

        source = self.browser_driver if adapter.requires_browser else self.http_fetcher
        html = await source.acquire(url, page_kind, adapter.navigation)

        records = adapter.extract(html, page_kind, url=url, now=self.clock())
        if page_kind is PageKind.LISTING and not records:
            raise ZeroResultExtractionError(url)
        return records
