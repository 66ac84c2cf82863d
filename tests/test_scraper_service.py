"""Tests for ScraperService: retries, merge wiring and concurrency."""

import asyncio
from decimal import Decimal

import pytest

from brickdeals.core.exceptions import InvalidInputError, NavigationError, PersistenceWriteError
from brickdeals.scrapers.adapters import AvenueDeLaBriqueAdapter, DealabsAdapter, VintedAdapter
from brickdeals.scrapers.factory import AdapterRegistry
from brickdeals.scrapers.scraper_service import ScraperService
from brickdeals.scrapers.utils.normalizer import KeywordFilter
from brickdeals.scrapers.utils.retry import RetryController
from brickdeals.services.deal_store import JsonFileDealStore
from tests.conftest import FIXED_NOW, FakePageSource, no_sleep
from tests.test_dealabs_adapter import (
    CARD_FALCON,
    CARD_TECHNIC,
    DETAIL_PAGE,
    JSON_LD_GRAPH,
    listing_page,
)

LISTING_URL = "https://www.dealabs.com/groupe/lego"
TECHNIC_URL = "https://www.dealabs.com/bons-plans/lego-technic-42115-lamborghini-sian-2745678"
AVENUE_URL = "https://www.avenuedelabrique.com/promotions"

AVENUE_PAGE = """
<div class="prods">
  <a href="/lego-icons/10497/p7000" title="LEGO Icons 10497 Galaxy Explorer">
    <span class="prodl-prix"><span>79,99 €</span></span>
  </a>
</div>
"""


@pytest.fixture
def registry():
    keywords = KeywordFilter(["lego"])
    registry = AdapterRegistry()
    for adapter_class in (DealabsAdapter, VintedAdapter, AvenueDeLaBriqueAdapter):
        registry.register_adapter(adapter_class(keyword_filter=keywords))
    return registry


@pytest.fixture
def store(tmp_path):
    return JsonFileDealStore(tmp_path / "deals.json")


@pytest.fixture
def browser():
    return FakePageSource()


@pytest.fixture
def http():
    return FakePageSource()


@pytest.fixture
def service(store, registry, browser, http):
    return ScraperService(
        store,
        registry=registry,
        browser_driver=browser,
        http_fetcher=http,
        retry_controller=RetryController(max_attempts=3, sleep=no_sleep),
        clock=lambda: FIXED_NOW,
    )


class TestScrape:
    """ScraperService.scrape(url)"""

    async def test_listing_scrape_is_persisted(self, service, browser, store):
        browser.responses.append(listing_page(CARD_TECHNIC, CARD_FALCON, head=JSON_LD_GRAPH))

        records = await service.scrape(LISTING_URL)

        assert len(records) == 2
        stored = await store.load_all()
        assert set(stored) == {r.link for r in records}
        assert service.last_merge_stats[LISTING_URL].inserted == 2

    async def test_retries_until_success(self, service, browser):
        browser.responses.extend(
            [
                NavigationError(LISTING_URL, "timed out"),
                NavigationError(LISTING_URL, "timed out"),
                listing_page(CARD_TECHNIC),
            ]
        )

        records = await service.scrape(LISTING_URL)

        assert len(records) == 1
        assert len(browser.calls) == 3

    async def test_exhausted_attempts_return_empty(self, service, browser, store):
        browser.responses.extend([NavigationError(LISTING_URL, "timed out")] * 3)

        assert await service.scrape(LISTING_URL) == []
        assert len(browser.calls) == 3
        assert not store.path.exists()

    async def test_empty_listing_is_retried(self, service, browser):
        browser.responses.extend(["<html><body></body></html>"] * 3)

        assert await service.scrape(LISTING_URL) == []
        assert len(browser.calls) == 3

    async def test_empty_detail_is_not_retried(self, service, browser, store):
        browser.responses.append(DETAIL_PAGE.replace('<span class="thread-price">79,99€</span>', ""))

        assert await service.scrape(TECHNIC_URL) == []
        assert len(browser.calls) == 1
        assert not store.path.exists()

    async def test_unusable_card_link_does_not_fail_the_scrape(self, service, browser):
        bad = CARD_FALCON.replace(
            'href="/bons-plans/lego-star-wars-faucon-2745690"', 'href="javascript:void(0)"'
        )
        browser.responses.append(listing_page(bad, CARD_TECHNIC))

        records = await service.scrape(LISTING_URL)

        assert [r.link for r in records] == [TECHNIC_URL]
        assert len(browser.calls) == 1

    async def test_invalid_url_is_not_retried(self, service, browser):
        with pytest.raises(InvalidInputError):
            await service.scrape("https://www.amazon.fr/lego")
        assert browser.calls == []

    async def test_static_sites_use_http_fetcher(self, service, browser, http):
        http.responses.append(AVENUE_PAGE)

        records = await service.scrape(AVENUE_URL)

        assert [r.set_number for r in records] == ["10497"]
        assert browser.calls == []
        assert len(http.calls) == 1

    async def test_detail_scrape_overrides_listing_fields(self, service, browser, store):
        browser.responses.append(listing_page(CARD_TECHNIC))
        await service.scrape(LISTING_URL)

        detail = DETAIL_PAGE.replace("LEGO Icons Galaxy Explorer 10497", "LEGO Technic Lamborghini Sián (42115)")
        browser.responses.append(detail)
        await service.scrape(TECHNIC_URL)

        stored = (await store.load_all())[TECHNIC_URL]
        assert stored.price == Decimal("84.99")
        assert stored.temperature == 345

        browser.responses.append(listing_page(CARD_TECHNIC))
        await service.scrape(LISTING_URL)

        stored = (await store.load_all())[TECHNIC_URL]
        assert stored.price == Decimal("84.99")
        assert stored.temperature == 152

    async def test_write_failure_propagates(self, tmp_path, registry, browser):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        service = ScraperService(
            JsonFileDealStore(blocker / "deals.json"),
            registry=registry,
            browser_driver=browser,
            retry_controller=RetryController(max_attempts=1, sleep=no_sleep),
        )
        browser.responses.append(listing_page(CARD_TECHNIC))

        with pytest.raises(PersistenceWriteError):
            await service.scrape(LISTING_URL)


class OverlapCounter(FakePageSource):
    """Page source that records how many acquires overlap."""

    def __init__(self, html: str):
        super().__init__()
        self.html = html
        self.active = 0
        self.peak = 0

    async def acquire(self, url, page_kind, rules):
        self.calls.append((url, page_kind))
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.01)
        self.active -= 1
        return self.html


class StallingSource(FakePageSource):
    """Serves one URL at once and holds every other until cancelled."""

    def __init__(self, ready_url: str, html: str):
        super().__init__()
        self.ready_url = ready_url
        self.html = html
        self.cancelled = []

    async def acquire(self, url, page_kind, rules):
        self.calls.append((url, page_kind))
        if url != self.ready_url:
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                self.cancelled.append(url)
                raise
        return self.html


class TestScrapeMany:
    """ScraperService.scrape_many(urls, concurrency)"""

    async def test_invalid_url_does_not_abort_others(self, service, browser):
        browser.responses = {LISTING_URL: [listing_page(CARD_TECHNIC)]}

        results = await service.scrape_many([LISTING_URL, "ftp://nowhere"], concurrency=2)

        assert len(results[LISTING_URL]) == 1
        assert results["ftp://nowhere"] == []

    async def test_concurrency_is_bounded(self, store, registry):
        counter = OverlapCounter(listing_page(CARD_TECHNIC))
        service = ScraperService(
            store,
            registry=registry,
            browser_driver=counter,
            retry_controller=RetryController(max_attempts=1, sleep=no_sleep),
        )
        urls = [f"https://www.dealabs.com/groupe/lego?page={n}" for n in range(6)]

        results = await service.scrape_many(urls, concurrency=2)

        assert counter.peak == 2
        assert len(counter.calls) == 6
        assert all(len(records) == 1 for records in results.values())
        assert len(await store.load_all()) == 1

    async def test_invalid_concurrency(self, service):
        with pytest.raises(ValueError):
            await service.scrape_many([LISTING_URL], concurrency=0)

    async def test_write_failure_cancels_running_scrapes(self, tmp_path, registry):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        source = StallingSource(LISTING_URL, listing_page(CARD_TECHNIC))
        service = ScraperService(
            JsonFileDealStore(blocker / "deals.json"),
            registry=registry,
            browser_driver=source,
            retry_controller=RetryController(max_attempts=1, sleep=no_sleep),
        )
        second_page = "https://www.dealabs.com/groupe/lego?page=2"

        with pytest.raises(PersistenceWriteError):
            await service.scrape_many([LISTING_URL, second_page], concurrency=2)

        assert source.cancelled == [second_page]
