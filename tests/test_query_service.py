"""Tests for DealQueryService."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from brickdeals.services.deal_store import JsonFileDealStore
from brickdeals.services.query_service import DealQueryService
from tests.conftest import make_record

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def link(n: int) -> str:
    return f"https://www.dealabs.com/bons-plans/lego-{n}"


@pytest_asyncio.fixture
async def queries(tmp_path):
    store = JsonFileDealStore(tmp_path / "deals.json")
    await store.replace_all(
        [
            make_record(link(1), price=Decimal("79.99"), comments_count=5, set_number="10497",
                        posted_date=NOW - timedelta(days=1)),
            make_record(link(2), price=Decimal("54.98"), comments_count=40, set_number="75257",
                        posted_date=NOW - timedelta(weeks=2)),
            make_record(link(3), price=Decimal("299.99"), comments_count=12, set_number="10497",
                        posted_date=NOW - timedelta(weeks=4)),
            make_record(link(4), price=Decimal("12"), comments_count=0, set_number=None, posted_date=None),
        ]
    )
    return DealQueryService(store, clock=lambda: NOW)


class TestDealQueryService:
    async def test_most_commented(self, queries):
        found = await queries.most_commented(limit=2)
        assert [r.comments_count for r in found] == [40, 12]

    async def test_sorted_by_price(self, queries):
        ascending = await queries.sorted_by_price()
        descending = await queries.sorted_by_price(ascending=False, limit=1)

        assert [r.price for r in ascending] == [
            Decimal("12"), Decimal("54.98"), Decimal("79.99"), Decimal("299.99")
        ]
        assert [r.link for r in descending] == [link(3)]

    async def test_sorted_by_date_newest_first(self, queries):
        found = await queries.sorted_by_date()
        assert [r.link for r in found] == [link(1), link(2), link(3), link(4)]

    async def test_by_set_number(self, queries):
        found = await queries.by_set_number("10497")
        assert [r.link for r in found] == [link(1), link(3)]

    async def test_recent_uses_injected_clock(self, queries):
        found = await queries.recent(weeks=3)
        assert [r.link for r in found] == [link(1), link(2)]

    async def test_recent_default_window(self, queries):
        assert len(await queries.recent()) == 2
        assert len(await queries.recent(weeks=5)) == 3

    async def test_recent_rejects_negative_window(self, queries):
        with pytest.raises(ValueError):
            await queries.recent(weeks=-1)
