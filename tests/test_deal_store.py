"""Tests for the JSON-file and SQL deal stores.

Behaviour shared by both backends runs against each of them through the
parametrized ``store`` fixture.
"""

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from brickdeals.core.exceptions import PersistenceWriteError, StoreReadError
from brickdeals.db.session import create_session_factory, init_models
from brickdeals.scrapers.base import Provenance
from brickdeals.services.deal_store import JsonFileDealStore, SqlDealStore, sort_records
from brickdeals.services.merge_service import DealMerger
from tests.conftest import make_record

BASE = datetime(2024, 3, 10, 9, 0, tzinfo=timezone.utc)


def link(n: int) -> str:
    return f"https://www.dealabs.com/bons-plans/lego-deal-{n}"


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def json_store(tmp_path):
    return JsonFileDealStore(tmp_path / "data" / "deals.json")


@pytest_asyncio.fixture(params=["json", "sql"])
async def store(request, tmp_path):
    """Each shared test runs on a JSON file and on in-memory SQLite."""
    if request.param == "json":
        yield JsonFileDealStore(tmp_path / "data" / "deals.json")
        return

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )
    await init_models(engine)

    yield SqlDealStore(create_session_factory(engine))

    await engine.dispose()


@pytest_asyncio.fixture
async def seeded(store):
    """Store holding four deals with varied prices, dates and comments."""
    records = [
        make_record(link(1), price=Decimal("299.99"), comments_count=24, set_number="42115", posted_date=BASE),
        make_record(link(2), price=Decimal("54.98"), comments_count=3, set_number="75257",
                    posted_date=BASE + timedelta(days=2)),
        make_record(link(3), price=Decimal("119"), comments_count=24, set_number="10295", posted_date=None),
        make_record(link(4), price=Decimal("30"), comments_count=0, set_number="42115",
                    posted_date=BASE - timedelta(weeks=5)),
    ]
    await store.replace_all(records)
    return store


# ============================================================================
# SHARED BEHAVIOUR
# ============================================================================

class TestDealStoreContract:
    """insert / find / replace / load_all / replace_all on both backends."""

    async def test_empty_store(self, store):
        assert await store.load_all() == {}
        assert await store.find() == []

    async def test_insert_and_load(self, store):
        record = make_record(link(1))
        await store.insert(record)

        loaded = await store.load_all()
        assert loaded == {link(1): record}

    async def test_insert_duplicate_link(self, store):
        await store.insert(make_record(link(1)))
        with pytest.raises(PersistenceWriteError):
            await store.insert(make_record(link(1), temperature=5))

    async def test_replace(self, store):
        await store.insert(make_record(link(1)))

        assert await store.replace(make_record(link(1), title="Nouveau titre LEGO")) is True
        assert (await store.load_all())[link(1)].title == "Nouveau titre LEGO"

    async def test_replace_unknown_link(self, store):
        assert await store.replace(make_record(link(9))) is False
        assert await store.load_all() == {}

    async def test_replace_all_round_trip(self, store):
        records = [make_record(link(1)), make_record(link(2), posted_date=None, set_number=None)]
        await store.replace_all(records)
        await store.replace_all([records[1]])

        assert await store.load_all() == {link(2): records[1]}

    async def test_sub_cent_prices_are_stored_in_cents(self, store):
        merger = DealMerger()
        await merger.merge(store, [make_record(link(1), price=Decimal("1.299"))], Provenance.DETAIL)

        stats = await merger.merge(store, [make_record(link(1), price=Decimal("1.299"))], Provenance.DETAIL)

        assert (await store.load_all())[link(1)].price == Decimal("1.30")
        assert (stats.changed, stats.unchanged) == (0, 1)

    async def test_posted_date_keeps_the_instant(self, store):
        paris = timezone(timedelta(hours=1))
        await store.insert(make_record(link(1), posted_date=datetime(2024, 3, 12, 14, 30, tzinfo=paris)))

        loaded = (await store.load_all())[link(1)]
        assert loaded.posted_date == datetime(2024, 3, 12, 13, 30, tzinfo=timezone.utc)

    async def test_find_equality(self, seeded):
        found = await seeded.find({"set_number": "42115"}, sort=[("price", 1)])
        assert [r.link for r in found] == [link(4), link(1)]

    async def test_find_range(self, seeded):
        found = await seeded.find({"price": {"$gte": Decimal("50"), "$lt": Decimal("200")}}, sort=[("price", 1)])
        assert [r.link for r in found] == [link(2), link(3)]

    async def test_find_date_range_excludes_missing_dates(self, seeded):
        found = await seeded.find({"posted_date": {"$gte": BASE - timedelta(days=1)}}, sort=[("posted_date", -1)])
        assert [r.link for r in found] == [link(2), link(1)]

    async def test_sort_descending_missing_last(self, seeded):
        found = await seeded.find(sort=[("posted_date", -1)])
        assert [r.link for r in found] == [link(2), link(1), link(4), link(3)]

    async def test_sort_ascending_missing_last(self, seeded):
        found = await seeded.find(sort=[("posted_date", 1)])
        assert [r.link for r in found] == [link(4), link(1), link(2), link(3)]

    async def test_sort_on_several_keys(self, seeded):
        found = await seeded.find(sort=[("comments_count", -1), ("price", 1)])
        assert [r.link for r in found] == [link(3), link(1), link(2), link(4)]

    async def test_limit(self, seeded):
        found = await seeded.find(sort=[("price", 1)], limit=2)
        assert [r.price for r in found] == [Decimal("30"), Decimal("54.98")]

    async def test_unknown_field(self, seeded):
        with pytest.raises(ValueError):
            await seeded.find({"discount": 10})

    async def test_unknown_operator(self, seeded):
        with pytest.raises(ValueError):
            await seeded.find({"price": {"$ne": 10}})


# ============================================================================
# JSON BACKEND
# ============================================================================

class TestJsonFileDealStore:
    """Document format and atomic writes."""

    async def test_document_format(self, json_store):
        await json_store.insert(
            make_record(link(1), price=Decimal("54.98"), free_shipping=True, posted_date=BASE)
        )

        documents = json.loads(json_store.path.read_text(encoding="utf-8"))
        assert documents == [
            {
                "link": link(1),
                "title": "LEGO Technic Lamborghini Sián (42115)",
                "price": 54.98,
                "setNumber": "42115",
                "temperature": 100,
                "commentsCount": 10,
                "postedDate": "2024-03-10T09:00:00Z",
                "freeShipping": True,
                "imageUrl": "https://static.dealabs.com/a.jpg",
                "source": "dealabs",
            }
        ]

    async def test_no_temp_files_left(self, json_store):
        await json_store.replace_all([make_record(link(1)), make_record(link(2))])
        assert [p.name for p in json_store.path.parent.iterdir()] == ["deals.json"]

    async def test_loads_documents_without_optional_keys(self, json_store):
        json_store.path.parent.mkdir(parents=True)
        json_store.path.write_text(
            json.dumps([{"link": link(1), "title": "LEGO 42115", "price": 299.99, "postedDate": None}]),
            encoding="utf-8",
        )

        record = (await json_store.load_all())[link(1)]
        assert record.price == Decimal("299.99")
        assert record.temperature == 0
        assert record.set_number is None
        assert record.source == ""

    async def test_empty_file_is_empty_store(self, json_store):
        json_store.path.parent.mkdir(parents=True)
        json_store.path.write_text("", encoding="utf-8")
        assert await json_store.load_all() == {}

    @pytest.mark.parametrize(
        "content",
        [
            "{ truncated",
            '{"link": "https://www.dealabs.com/x"}',
            '[{"title": "no link", "price": 1}]',
            '[{"link": "https://www.dealabs.com/x", "price": -5}]',
        ],
    )
    async def test_unreadable_content(self, json_store, content):
        json_store.path.parent.mkdir(parents=True)
        json_store.path.write_text(content, encoding="utf-8")

        with pytest.raises(StoreReadError):
            await json_store.load_all()


# ============================================================================
# SORT HELPER
# ============================================================================

class TestSortRecords:
    def test_stable_for_equal_keys(self):
        records = [make_record(link(n), comments_count=1) for n in range(5)]
        assert sort_records(records, [("comments_count", -1)]) == records

    def test_invalid_direction(self):
        with pytest.raises(ValueError):
            sort_records([make_record()], [("price", 0)])
