"""Base site adapter interface.

All site-specific adapters inherit from BaseSiteAdapter and implement
page classification plus listing/detail extraction. Extraction methods
are pure: they receive markup and return DealRecord candidates without
any I/O, so they can be tested against fixture HTML.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import structlog

from brickdeals.config import settings
from brickdeals.scrapers.utils.normalizer import KeywordFilter


class PageKind(str, Enum):
    """Kind of page being scraped."""

    LISTING = "listing"
    DETAIL = "detail"


class Provenance(str, Enum):
    """Which page type produced a batch. Governs the merge policy."""

    LISTING = "listing"
    DETAIL = "detail"

    @classmethod
    def from_page_kind(cls, page_kind: PageKind) -> "Provenance":
        return cls.DETAIL if page_kind is PageKind.DETAIL else cls.LISTING


# Fields a listing-page re-scan is allowed to overwrite
VOLATILE_FIELDS: Tuple[str, ...] = ("temperature", "comments_count")

# Prices are kept in whole cents in every store backend
CENT = Decimal("0.01")


@dataclass
class DealRecord:
    """Normalized deal record returned by all adapters and persisted by the store."""

    link: str  # Canonical absolute URL, identity key
    title: str
    price: Decimal
    set_number: Optional[str] = None
    temperature: int = 0
    comments_count: int = 0
    posted_date: Optional[datetime] = None
    free_shipping: bool = False
    image_url: str = ""
    source: str = ""

    def __post_init__(self):
        """Validate data after initialization."""
        if not self.link:
            raise ValueError("link is required")
        if not self.link.startswith(("http://", "https://")):
            raise ValueError(f"link must be an absolute URL: {self.link}")
        if self.title is None:
            raise ValueError("title is required")
        if self.price is None or self.price < 0:
            raise ValueError("price must be a non-negative Decimal")
        self.price = Decimal(str(self.price)).quantize(CENT, rounding=ROUND_HALF_UP)

    def with_volatile_from(self, other: "DealRecord") -> "DealRecord":
        """Return a copy carrying the volatile fields of another record."""
        return replace(self, **{name: getattr(other, name) for name in VOLATILE_FIELDS})


@dataclass(frozen=True)
class NavigationRules:
    """Per-site navigation parameters consumed by the page fetchers."""

    listing_ready_selector: str
    detail_ready_selector: str
    cookie_selector: Optional[str] = None
    navigation_timeout_ms: int = field(default_factory=lambda: settings.NAVIGATION_TIMEOUT_MS)
    listing_ready_timeout_ms: int = field(default_factory=lambda: settings.LISTING_READY_TIMEOUT_MS)
    detail_ready_timeout_ms: int = field(default_factory=lambda: settings.DETAIL_READY_TIMEOUT_MS)
    settle_delay_seconds: float = field(default_factory=lambda: settings.SETTLE_DELAY_SECONDS)

    def ready_selector(self, page_kind: PageKind) -> str:
        if page_kind is PageKind.DETAIL:
            return self.detail_ready_selector
        return self.listing_ready_selector

    def ready_timeout_ms(self, page_kind: PageKind) -> int:
        if page_kind is PageKind.DETAIL:
            return self.detail_ready_timeout_ms
        return self.listing_ready_timeout_ms


class BaseSiteAdapter(ABC):
    """Abstract base class for all site adapters.

    An adapter bundles the navigation rules and extraction rules of one
    site. Adapters are registered once at startup in the AdapterRegistry,
    keyed by the domains they serve.
    """

    site_id: str = ""  # Must be overridden in subclass (e.g., "dealabs")
    site_name: str = ""
    base_url: str = ""
    domains: Tuple[str, ...] = ()
    requires_browser: bool = True  # False means static HTML via HttpPageFetcher
    navigation: NavigationRules

    def __init__(self, keyword_filter: Optional[KeywordFilter] = None):
        """Initialize the adapter.

        Args:
            keyword_filter: Title filter scoping results to the product domain.
                Defaults to the keywords configured in settings.
        """
        self.keyword_filter = keyword_filter or KeywordFilter(settings.get_category_keywords())
        self.logger = structlog.get_logger(__name__).bind(adapter=self.site_id)

    def handles(self, url: str) -> bool:
        """Check whether a URL belongs to one of this adapter's domains."""
        host = (urlparse(url).hostname or "").lower()
        return any(host == d or host.endswith("." + d) for d in self.domains)

    @abstractmethod
    def classify_page(self, url: str) -> PageKind:
        """Decide whether a URL is a listing or a detail page."""

    def extract(
        self,
        html: str,
        page_kind: PageKind,
        url: str,
        now: Optional[datetime] = None,
    ) -> List[DealRecord]:
        """Extract candidate records from rendered markup.

        Args:
            html: Rendered page markup
            page_kind: Kind of page the markup came from
            url: URL the markup was fetched from (detail link, set number fallback)
            now: Reference instant for relative dates

        Returns:
            List of DealRecord candidates, possibly empty
        """
        if page_kind is PageKind.DETAIL:
            records = self.extract_detail(html, url, now)
        else:
            records = self.extract_listing(html, now)

        kept = [r for r in records if self.keyword_filter.matches(r.title)]
        if len(kept) != len(records):
            self.logger.debug(
                "candidates_filtered_by_keyword",
                page_kind=page_kind.value,
                dropped=len(records) - len(kept),
            )
        return kept

    @abstractmethod
    def extract_listing(self, html: str, now: Optional[datetime] = None) -> List[DealRecord]:
        """Extract every well-formed card from a listing page."""

    @abstractmethod
    def extract_detail(
        self, html: str, url: str, now: Optional[datetime] = None
    ) -> List[DealRecord]:
        """Extract the single primary record of a detail page (zero or one)."""
