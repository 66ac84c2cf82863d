"""Vinted (vinted.fr) scraper adapter.

Second-hand marketplace. Catalog/search pages render item cards lazily
while scrolling; single items live under /items/. Vinted has no vote
temperature, so the favourites count is stored as the temperature.
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
    parse_count,
    text_of,
)


logger = structlog.get_logger(__name__)

# Current test-id markup first, then the older ItemBox layout
_CARD_SELECTOR = "[data-testid='serp-item'], .feed-grid__item"


class VintedAdapter(BaseSiteAdapter):
    """Vinted catalog and item-page adapter."""

    site_id = "vinted"
    site_name = "Vinted"
    base_url = "https://www.vinted.fr"
    domains = ("vinted.fr",)
    navigation = NavigationRules(
        listing_ready_selector=_CARD_SELECTOR,
        detail_ready_selector="h1",
        cookie_selector="[data-testid='cookie-policy-modal-accept'], #onetrust-accept-btn-handler",
    )

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.logger = logger.bind(adapter=self.site_id)

    def classify_page(self, url: str) -> PageKind:
        if "/items/" in url:
            return PageKind.DETAIL
        return PageKind.LISTING

    def extract_listing(self, html: str, now: Optional[datetime] = None) -> List[DealRecord]:
        soup = BeautifulSoup(html, "html.parser")
        records = []
        for card in soup.select(_CARD_SELECTOR):
            # Grid cells can wrap a serp-item; only the innermost match is a card
            if card.select_one(_CARD_SELECTOR):
                continue
            record = self._parse_card(card)
            if record:
                records.append(record)
        self.logger.debug("listing_cards_parsed", count=len(records))
        return records

    def _parse_card(self, card: Tag) -> Optional[DealRecord]:
        anchor = card.select_one("a.ItemBox__overlay[href], a[href]")
        link = absolute_url(anchor.get("href") if anchor else None, self.base_url)
        if not link:
            return None

        price = PriceNormalizer.normalize(
            text_of(card.select_one("[data-testid='price'], .ItemBox__price"))
        )
        if price is None:
            return None

        title = text_of(card.select_one("[data-testid='title'], .ItemBox__title"))
        if not title and anchor:
            title = anchor.get("title") or ""

        image = card.select_one("img")
        return DealRecord(
            link=link,
            title=title,
            price=price,
            set_number=find_set_number(title, link),
            temperature=parse_count(text_of(card.select_one("[data-testid='favorites-count']"))),
            image_url=(image.get("src") or "") if image else "",
            source=self.site_id,
        )

    def extract_detail(
        self, html: str, url: str, now: Optional[datetime] = None
    ) -> List[DealRecord]:
        soup = BeautifulSoup(html, "html.parser")

        price = PriceNormalizer.normalize(text_of(soup.select_one("[data-testid='price-text']")))
        if price is None:
            self.logger.debug("detail_price_missing", url=url)
            return []

        title = text_of(soup.select_one("h1"))
        image = soup.select_one("[data-testid='image-container'] img")

        return [
            DealRecord(
                link=url,
                title=title,
                price=price,
                set_number=find_set_number(title, url),
                temperature=parse_count(text_of(soup.select_one("[data-testid='favorites-count']"))),
                image_url=(image.get("src") or "") if image else "",
                source=self.site_id,
            )
        ]
