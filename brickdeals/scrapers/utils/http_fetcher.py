"""Plain HTTP page fetcher for sites that serve their listings statically.

Implements the same acquire() contract as BrowserDriver so the retry
controller does not care which one an adapter needs.
"""

from typing import Optional

import httpx
import structlog
from bs4 import BeautifulSoup

from brickdeals.config import settings
from brickdeals.core.exceptions import NavigationError
from brickdeals.scrapers.base import NavigationRules, PageKind
from brickdeals.scrapers.utils.user_agents import get_random_user_agent

logger = structlog.get_logger(__name__)


class HttpPageFetcher:
    """Fetches static pages with a fresh httpx.AsyncClient per call."""

    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._timeout = settings.HTTP_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        self._transport = transport  # Injected in tests
        self.logger = logger.bind(component="http_fetcher")

    async def acquire(self, url: str, page_kind: PageKind, rules: NavigationRules) -> str:
        """Fetch a URL and check its ready marker.

        Raises:
            NavigationError: On transport errors, non-200 responses or a missing ready marker
        """
        headers = {
            "User-Agent": get_random_user_agent(),
            "Accept-Language": "fr-FR,fr;q=0.9,en;q=0.8",
        }

        self.logger.info("fetching", url=url, page_kind=page_kind.value)
        async with httpx.AsyncClient(
            timeout=self._timeout,
            headers=headers,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            try:
                response = await client.get(url)
            except httpx.HTTPError as e:
                raise NavigationError(url, f"{type(e).__name__}: {e}") from e

        if response.status_code != 200:
            raise NavigationError(url, f"HTTP {response.status_code}")

        html = response.text
        selector = rules.ready_selector(page_kind)
        if BeautifulSoup(html, "html.parser").select_one(selector) is None:
            raise NavigationError(url, f"ready marker {selector!r} not found")

        return html
