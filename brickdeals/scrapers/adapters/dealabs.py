"""Dealabs (dealabs.com) scraper adapter.

Dealabs is a community deal forum. Search/group pages list deals as
`.threadListCard` cards; every deal also has its own thread page under
/bons-plans/. Publication dates are taken from the JSON-LD graph when
the page embeds one, otherwise from the relative "il y a 3 h" chip.
"""

import json
import re
from datetime import datetime
from typing import Dict, List, Optional

import structlog
from bs4 import BeautifulSoup, Tag

from brickdeals.scrapers.base import BaseSiteAdapter, DealRecord, NavigationRules, PageKind
from brickdeals.scrapers.utils.normalizer import (
    PriceNormalizer,
    absolute_url,
    best_srcset_url,
    find_set_number,
    parse_count,
    parse_french_timestamp,
    parse_iso_timestamp,
    parse_relative_time,
    text_of,
)


logger = structlog.get_logger(__name__)

_THREAD_ID = re.compile(r"(\d+)/?$")
_COMMENTS_TEXT = re.compile(r"(\d+)\s*commentaires?", re.IGNORECASE)
_COMMENT_ACTION = "https://schema.org/CommentAction"


class DealabsAdapter(BaseSiteAdapter):
    """Dealabs listing and thread-page adapter."""

    site_id = "dealabs"
    site_name = "Dealabs"
    base_url = "https://www.dealabs.com"
    domains = ("dealabs.com",)
    navigation = NavigationRules(
        listing_ready_selector=".threadListCard",
        detail_ready_selector=".threadItemCard-content, article[data-handler='history thread-click']",
        cookie_selector="[id*='cookie'] button, [class*='cookie'] button, [id*='consent'] button",
    )

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.logger = logger.bind(adapter=self.site_id)

    def classify_page(self, url: str) -> PageKind:
        """Thread pages live under /bons-plans/; everything else is a listing."""
        if "/bons-plans/" in url and "search" not in url:
            return PageKind.DETAIL
        return PageKind.LISTING

    # ------------------------------------------------------------------
    # Listing pages
    # ------------------------------------------------------------------

    def extract_listing(self, html: str, now: Optional[datetime] = None) -> List[DealRecord]:
        soup = BeautifulSoup(html, "html.parser")
        thread_dates = self._thread_dates_from_json_ld(soup)

        records = []
        for card in soup.select(".threadListCard"):
            record = self._parse_card(card, thread_dates, now)
            if record:
                records.append(record)

        self.logger.debug("listing_cards_parsed", count=len(records))
        return records

    def _parse_card(
        self, card: Tag, thread_dates: Dict[str, datetime], now: Optional[datetime]
    ) -> Optional[DealRecord]:
        title_link = card.select_one(".cept-tt.thread-link")
        if not title_link:
            return None

        title = title_link.get_text(strip=True)
        link = absolute_url(title_link.get("href"), self.base_url)
        if not link:
            return None

        price, free_shipping = PriceNormalizer.landed_price(
            text_of(card.select_one(".thread-price")),
            self._shipping_text(card),
        )
        if price is None:
            return None

        posted_date = None
        thread_id = _THREAD_ID.search(link)
        if thread_id and thread_id.group(1) in thread_dates:
            posted_date = thread_dates[thread_id.group(1)]
        else:
            posted_date = parse_relative_time(
                text_of(card.select_one(".chip--type-default .size--all-s")), now
            )

        image = card.select_one(".threadListCard-image img")
        image_url = ""
        if image:
            image_url = best_srcset_url(image.get("srcset")) or image.get("src") or ""

        return DealRecord(
            link=link,
            title=title,
            price=price,
            set_number=find_set_number(title, link),
            temperature=parse_count(text_of(card.select_one(".cept-vote-temp"))),
            comments_count=parse_count(text_of(card.select_one("a[title='Commentaires']"))),
            posted_date=posted_date,
            free_shipping=free_shipping,
            image_url=image_url,
            source=self.site_id,
        )

    def _thread_dates_from_json_ld(self, soup: BeautifulSoup) -> Dict[str, datetime]:
        """Map thread id -> datePublished from the JSON-LD forum graph."""
        dates: Dict[str, datetime] = {}
        for item in self._json_ld_postings(soup):
            match = _THREAD_ID.search(str(item.get("url") or ""))
            published = parse_iso_timestamp(item.get("datePublished"))
            if match and published:
                dates[match.group(1)] = published
        return dates

    # ------------------------------------------------------------------
    # Thread (detail) pages
    # ------------------------------------------------------------------

    def extract_detail(
        self, html: str, url: str, now: Optional[datetime] = None
    ) -> List[DealRecord]:
        soup = BeautifulSoup(html, "html.parser")

        title = (
            text_of(soup.select_one(".thread-title span"))
            or text_of(soup.select_one("h1"))
            or text_of(soup.select_one("title"))
        )

        price, free_shipping = PriceNormalizer.landed_price(
            text_of(soup.select_one(".thread-price, .threadItemCard-price")),
            self._shipping_text(soup),
        )
        if price is None:
            self.logger.debug("detail_price_missing", url=url)
            return []

        postings = self._json_ld_postings(soup)
        posting = postings[0] if postings else {}

        posted_date = parse_iso_timestamp(posting.get("datePublished"))
        if posted_date is None:
            stamp = soup.select_one(".size--all-s.color--text-TranslucentSecondary[title]")
            posted_date = parse_french_timestamp(stamp.get("title") if stamp else None)
        if posted_date is None:
            posted_date = parse_relative_time(
                text_of(soup.select_one(".chip--type-default .size--all-s")), now
            )

        return [
            DealRecord(
                link=url,
                title=title,
                price=price,
                set_number=find_set_number(title, url),
                temperature=parse_count(text_of(soup.select_one(".cept-vote-temp"))),
                comments_count=self._detail_comments(soup, posting),
                posted_date=posted_date,
                free_shipping=free_shipping,
                image_url=self._detail_image(soup),
                source=self.site_id,
            )
        ]

    def _detail_comments(self, soup: BeautifulSoup, posting: dict) -> int:
        heading = soup.select_one(
            "h2.flex--inline.boxAlign-ai--all-c span.size--all-l, "
            "h2.flex--inline.boxAlign-ai--all-c span.size--fromW3-xl"
        )
        match = _COMMENTS_TEXT.search(text_of(heading))
        if match:
            return int(match.group(1))

        stats = posting.get("interactionStatistic") or []
        if isinstance(stats, dict):
            stats = [stats]
        for stat in stats:
            if not isinstance(stat, dict):
                continue
            interaction = stat.get("interactionType")
            kind = interaction.get("@type") if isinstance(interaction, dict) else interaction
            if kind == _COMMENT_ACTION:
                try:
                    return int(stat.get("userInteractionCount") or 0)
                except (TypeError, ValueError):
                    return 0
        return 0

    def _detail_image(self, soup: BeautifulSoup) -> str:
        container = soup.select_one(
            ".thread-image, .carousel-thumbnail-img, .threadItemCard-img picture"
        )
        if not container:
            return ""
        source = container.select_one("source[media='(min-width: 768px)']")
        if source and source.get("srcset"):
            return best_srcset_url(source.get("srcset"))
        image = container if container.name == "img" else container.select_one("img")
        return (image.get("src") or "") if image else ""

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _shipping_text(scope) -> str:
        truck = scope.select_one(".icon--truck")
        if not truck or not truck.parent:
            return ""
        return text_of(truck.parent.select_one(".overflow--wrap-off"))

    def _json_ld_postings(self, soup: BeautifulSoup) -> List[dict]:
        """Collect DiscussionForumPosting nodes from every JSON-LD script."""
        postings = []
        for script in soup.select("script[type='application/ld+json']"):
            try:
                data = json.loads(script.string or "")
            except json.JSONDecodeError as e:
                self.logger.warning("json_ld_unparseable", error=str(e))
                continue
            nodes = data.get("@graph", [data]) if isinstance(data, dict) else data
            if not isinstance(nodes, list):
                continue
            postings.extend(
                node for node in nodes
                if isinstance(node, dict) and node.get("@type") == "DiscussionForumPosting"
            )
        return postings
