"""Tests for the static-page HTTP fetcher."""

import httpx
import pytest

from brickdeals.core.exceptions import NavigationError
from brickdeals.scrapers.base import NavigationRules, PageKind
from brickdeals.scrapers.utils.http_fetcher import HttpPageFetcher

RULES = NavigationRules(listing_ready_selector="div.prods", detail_ready_selector="div.prods")
URL = "https://www.avenuedelabrique.com/promotions"


def fetcher_for(handler) -> HttpPageFetcher:
    return HttpPageFetcher(timeout_seconds=5, transport=httpx.MockTransport(handler))


class TestHttpPageFetcher:
    async def test_returns_markup(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["user_agent"] = request.headers.get("user-agent")
            seen["language"] = request.headers.get("accept-language")
            return httpx.Response(200, text="<div class='prods'><a href='/x'>x</a></div>")

        html = await fetcher_for(handler).acquire(URL, PageKind.LISTING, RULES)

        assert "prods" in html
        assert seen["user_agent"]
        assert seen["language"].startswith("fr-FR")

    async def test_non_200_is_navigation_error(self):
        def handler(request):
            return httpx.Response(503, text="maintenance")

        with pytest.raises(NavigationError, match="HTTP 503"):
            await fetcher_for(handler).acquire(URL, PageKind.LISTING, RULES)

    async def test_missing_ready_marker(self):
        def handler(request):
            return httpx.Response(200, text="<html><body>Captcha</body></html>")

        with pytest.raises(NavigationError, match="ready marker"):
            await fetcher_for(handler).acquire(URL, PageKind.LISTING, RULES)

    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NavigationError, match="ConnectError"):
            await fetcher_for(handler).acquire(URL, PageKind.LISTING, RULES)
