"""Avenue de la Brique (avenuedelabrique.com) scraper adapter.

LEGO price-comparison site serving server-rendered promotion lists, so
it is fetched over plain HTTP instead of a browser. Every product tile
is an `a` inside `div.prods`; product pages only redirect to merchants,
so this adapter handles listing pages only.
"""

from datetime import datetime
from typing import List, Optional

import structlog
from bs4 import BeautifulSoup, Tag

from brickdeals.scrapers.base import BaseSiteAdapter, DealRecord, NavigationRules, PageKind
from brickdeals.scrapers.utils.normalizer import (
    PriceNormalizer,
    absolute_url,
    find_set_number,
    text_of,
)


logger = structlog.get_logger(__name__)


class AvenueDeLaBriqueAdapter(BaseSiteAdapter):
    """Avenue de la Brique promotions adapter (listing pages only)."""

    site_id = "avenuedelabrique"
    site_name = "Avenue de la Brique"
    base_url = "https://www.avenuedelabrique.com"
    domains = ("avenuedelabrique.com",)
    requires_browser = False
    navigation = NavigationRules(
        listing_ready_selector="div.prods",
        detail_ready_selector="div.prods",
    )

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.logger = logger.bind(adapter=self.site_id)

    def classify_page(self, url: str) -> PageKind:
        return PageKind.LISTING

    def extract_listing(self, html: str, now: Optional[datetime] = None) -> List[DealRecord]:
        soup = BeautifulSoup(html, "html.parser")
        records = []
        for tile in soup.select("div.prods a"):
            record = self._parse_tile(tile)
            if record:
                records.append(record)
        self.logger.debug("listing_tiles_parsed", count=len(records))
        return records

    def _parse_tile(self, tile: Tag) -> Optional[DealRecord]:
        link = absolute_url(tile.get("href"), self.base_url)
        if not link:
            return None

        price = PriceNormalizer.normalize(text_of(tile.select_one("span.prodl-prix span")))
        if price is None:
            return None

        title = tile.get("title") or text_of(tile.select_one(".prodl-libelle"))
        image = tile.select_one("img")
        image_url = ""
        if image:
            image_url = absolute_url(image.get("data-src") or image.get("src"), self.base_url) or ""

        return DealRecord(
            link=link,
            title=title,
            price=price,
            set_number=find_set_number(title, link),
            image_url=image_url,
            source=self.site_id,
        )

    def extract_detail(
        self, html: str, url: str, now: Optional[datetime] = None
    ) -> List[DealRecord]:
        """Product pages are never classified as detail pages for this site."""
        self.logger.warning("detail_pages_unsupported", url=url)
        return []
