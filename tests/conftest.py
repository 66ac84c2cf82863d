"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Union

import pytest

from brickdeals.core.exceptions import NavigationError
from brickdeals.scrapers.base import DealRecord, NavigationRules, PageKind


FIXED_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"


@pytest.fixture
def fixed_now() -> datetime:
    """Reference instant for relative dates."""
    return FIXED_NOW


def make_record(link: str = "https://www.dealabs.com/bons-plans/lego-42115-1", **overrides) -> DealRecord:
    """Build a DealRecord with sensible defaults."""
    values = dict(
        link=link,
        title="LEGO Technic Lamborghini Sián (42115)",
        price=Decimal("299.99"),
        set_number="42115",
        temperature=100,
        comments_count=10,
        posted_date=datetime(2024, 3, 10, 9, 0, tzinfo=timezone.utc),
        free_shipping=False,
        image_url="https://static.dealabs.com/a.jpg",
        source="dealabs",
    )
    values.update(overrides)
    return DealRecord(**values)


@pytest.fixture
def record_factory():
    return make_record


class FakePageSource:
    """Stands in for BrowserDriver / HttpPageFetcher.

    Each acquire() pops the next scripted response: a string is returned
    as markup, an exception instance is raised.
    """

    def __init__(self, responses: Optional[Union[List, Dict[str, List]]] = None):
        self.responses = responses if responses is not None else []
        self.calls: List[tuple] = []

    async def acquire(self, url: str, page_kind: PageKind, rules: NavigationRules) -> str:
        self.calls.append((url, page_kind))
        queue = self.responses[url] if isinstance(self.responses, dict) else self.responses
        if not queue:
            raise NavigationError(url, "no scripted response left")
        response = queue.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


async def no_sleep(seconds: float) -> None:
    """Async sleep replacement that returns immediately."""
    return None
