"""Playwright browser driver with anti-detection.

Every acquire() call launches its own isolated rendering session
(Playwright instance, browser, context and page), renders the target
page and always tears the session down again, whatever the outcome.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog
from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from brickdeals.config import settings
from brickdeals.core.exceptions import NavigationError
from brickdeals.scrapers.base import NavigationRules, PageKind
from brickdeals.scrapers.utils.user_agents import get_chromium_user_agent

logger = structlog.get_logger(__name__)


# Minimal stealth JS to mask automation signals, applied before any page script
STEALTH_JS = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['fr-FR', 'fr', 'en-US', 'en'] });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
window.chrome = { runtime: {} };
const originalQuery = window.navigator.permissions.query;
window.navigator.permissions.query = (parameters) =>
  parameters.name === 'notifications'
    ? Promise.resolve({ state: Notification.permission })
    : originalQuery(parameters);
"""

_DOCUMENT_HEIGHT_JS = "() => document.body ? document.body.scrollHeight : 0"
_SCROLL_BY_JS = "(step) => window.scrollBy(0, step)"

_LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
]


class PlaywrightSession:
    """One isolated Chromium rendering session.

    open() may fail halfway; close() releases whatever was acquired
    and is safe to call on a partially opened session.
    """

    def __init__(
        self,
        headless: bool = True,
        user_agent: Optional[str] = None,
        viewport: Optional[dict] = None,
    ):
        self._headless = headless
        self._user_agent = user_agent or get_chromium_user_agent()
        self._viewport = viewport or {"width": 1366, "height": 768}
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    async def open(self) -> Page:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self._headless,
            args=_LAUNCH_ARGS,
        )
        self._context = await self._browser.new_context(
            user_agent=self._user_agent,
            viewport=self._viewport,
            locale="fr-FR",
            timezone_id="Europe/Paris",
            java_script_enabled=True,
        )
        await self._context.add_init_script(STEALTH_JS)
        self.page = await self._context.new_page()
        return self.page

    async def close(self) -> None:
        """Close context, browser and Playwright, in that order."""
        if self._context is not None:
            try:
                await self._context.close()
            except PlaywrightError as e:
                logger.debug("context_close_failed", error=str(e))
            self._context = None
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.debug("browser_close_failed", error=str(e))
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        self.page = None


class BrowserDriver:
    """Renders pages through a fresh PlaywrightSession per call.

    Navigation steps:
    - goto, waiting for network idle
    - fixed settle delay for asynchronous widgets
    - best-effort cookie banner dismissal
    - wait for the page-kind ready selector
    - listing pages: scroll until the document stops growing
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], PlaywrightSession]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        scroll_step_px: Optional[int] = None,
        scroll_interval_seconds: Optional[float] = None,
        max_scroll_attempts: Optional[int] = None,
    ):
        self._session_factory = session_factory or (
            lambda: PlaywrightSession(headless=settings.BROWSER_HEADLESS)
        )
        self._sleep = sleep
        self._scroll_step_px = settings.SCROLL_STEP_PX if scroll_step_px is None else scroll_step_px
        self._scroll_interval = (
            settings.SCROLL_INTERVAL_SECONDS
            if scroll_interval_seconds is None
            else scroll_interval_seconds
        )
        self._max_scroll_attempts = (
            settings.MAX_SCROLL_ATTEMPTS if max_scroll_attempts is None else max_scroll_attempts
        )
        if self._scroll_step_px < 1 or self._max_scroll_attempts < 0:
            raise ValueError("scroll_step_px must be >= 1 and max_scroll_attempts >= 0")
        self.logger = logger.bind(component="browser_driver")

    async def acquire(self, url: str, page_kind: PageKind, rules: NavigationRules) -> str:
        """Render a URL and return its markup.

        Args:
            url: Page to render
            page_kind: Listing pages are scrolled to trigger lazy loading
            rules: Site navigation rules (selectors, timeouts, settle delay)

        Returns:
            Rendered HTML

        Raises:
            NavigationError: If the page fails to load or its ready marker never appears
        """
        session = self._session_factory()
        try:
            page = await session.open()
            return await self._render(page, url, page_kind, rules)
        except PlaywrightTimeoutError as e:
            raise NavigationError(url, f"timed out: {e.message}") from e
        except PlaywrightError as e:
            raise NavigationError(url, e.message) from e
        finally:
            await session.close()
            self.logger.debug("session_released", url=url)

    async def _render(
        self, page: Page, url: str, page_kind: PageKind, rules: NavigationRules
    ) -> str:
        self.logger.info("navigating", url=url, page_kind=page_kind.value)
        await page.goto(url, wait_until="networkidle", timeout=rules.navigation_timeout_ms)
        await self._sleep(rules.settle_delay_seconds)

        if rules.cookie_selector:
            await self._dismiss_cookie_banner(page, rules.cookie_selector)

        selector = rules.ready_selector(page_kind)
        try:
            await page.wait_for_selector(selector, timeout=rules.ready_timeout_ms(page_kind))
        except PlaywrightTimeoutError as e:
            raise NavigationError(url, f"ready marker {selector!r} never appeared") from e

        if page_kind is PageKind.LISTING:
            scrolls = await self._scroll_to_bottom(page)
            self.logger.debug("lazy_load_scrolled", url=url, scrolls=scrolls)
            await self._sleep(rules.settle_delay_seconds)

        return await page.content()

    async def _dismiss_cookie_banner(self, page: Page, selector: str) -> None:
        """Click the consent button if one is present. Never fatal."""
        try:
            button = await page.query_selector(selector)
            if button:
                await button.click()
                await self._sleep(1.0)
                self.logger.debug("cookie_banner_dismissed", selector=selector)
        except PlaywrightError as e:
            self.logger.debug("cookie_banner_dismiss_failed", error=e.message)

    async def _scroll_to_bottom(self, page: Page) -> int:
        """Scroll by fixed steps until the bottom is reached and height is stable.

        Returns:
            Number of scroll steps performed
        """
        last_height = await page.evaluate(_DOCUMENT_HEIGHT_JS)
        position = 0
        steps = 0

        while steps < self._max_scroll_attempts:
            await page.evaluate(_SCROLL_BY_JS, self._scroll_step_px)
            position += self._scroll_step_px
            steps += 1
            await self._sleep(self._scroll_interval)

            height = await page.evaluate(_DOCUMENT_HEIGHT_JS)
            if position >= height and height <= last_height:
                break
            last_height = max(last_height, height)

        return steps
