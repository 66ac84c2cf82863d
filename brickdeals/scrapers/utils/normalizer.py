"""Data normalization utilities for prices, set numbers, dates and URLs.

Every helper here is pure. Adapters call them on text pulled out of the
markup so that all sites share one price/shipping policy and one set
number inference order.
"""

import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Tuple
from urllib.parse import urljoin, urlparse

import structlog

logger = structlog.get_logger(__name__)


_PRICE_PATTERN = re.compile(r"\d+(?:[.,]\d+)?")

# Shipping snippets meaning "no shipping cost"
_FREE_SHIPPING_MARKERS = ("gratuit", "free")


class PriceNormalizer:
    """Price parsing and landed-cost computation.

    Prices are located as the first integer-or-decimal substring of the
    text; a decimal comma is turned into a decimal point. Shipping costs
    are folded into the price uniformly for every adapter.
    """

    @staticmethod
    def normalize(raw: Optional[str]) -> Optional[Decimal]:
        """Parse the first price-like number in a text.

        Handles:
        - "49,99 €" -> 49.99
        - "12.50€" -> 12.50
        - "Prix : 30 €" -> 30

        Args:
            raw: Raw price text

        Returns:
            Decimal price, or None if no number is found
        """
        if not raw:
            return None

        match = _PRICE_PATTERN.search(raw)
        if not match:
            return None

        try:
            return Decimal(match.group(0).replace(",", "."))
        except InvalidOperation:
            return None

    @staticmethod
    def is_free_shipping(shipping_text: Optional[str]) -> bool:
        """Check whether a shipping snippet advertises free delivery."""
        if not shipping_text:
            return False
        lowered = shipping_text.lower()
        return any(marker in lowered for marker in _FREE_SHIPPING_MARKERS)

    @classmethod
    def landed_price(
        cls, price_text: Optional[str], shipping_text: Optional[str] = None
    ) -> Tuple[Optional[Decimal], bool]:
        """Compute the total landed cost of a deal.

        The shipping cost is added to the base price unless the shipping
        snippet says it is free. A shipping cost alone never becomes the
        price: without a parseable base price the result is None.

        Args:
            price_text: Text holding the base price
            shipping_text: Optional text holding the shipping cost

        Returns:
            Tuple of (total price or None, free_shipping flag)
        """
        price = cls.normalize(price_text)
        free_shipping = cls.is_free_shipping(shipping_text)

        if price is None:
            return None, free_shipping

        if shipping_text and not free_shipping:
            shipping = cls.normalize(shipping_text)
            if shipping:
                price += shipping

        return price, free_shipping


_PARENTHESIZED_SET = re.compile(r"\((\d{4,6})\)")
_STANDALONE_SET = re.compile(r"\b\d{4,6}\b")
_PIECE_COUNT_UNIT = re.compile(r"\s*(?:pi[eè]ces?|pcs|pc)\b", re.IGNORECASE)


def find_set_number(title: Optional[str], url: Optional[str] = "") -> Optional[str]:
    """Infer the LEGO set number of a deal.

    Rules, first match wins:
    1. a 4-6 digit number in parentheses in the title
    2. a standalone 4-6 digit number in the title that is not a piece count
    3. a standalone 4-6 digit number in the URL

    Args:
        title: Deal title
        url: Deal URL used as the last resort

    Returns:
        Set number string, or None if nothing matches
    """
    title = title or ""

    match = _PARENTHESIZED_SET.search(title)
    if match:
        return match.group(1)

    for match in _STANDALONE_SET.finditer(title):
        if _PIECE_COUNT_UNIT.match(title, match.end()):
            continue
        return match.group(0)

    match = _STANDALONE_SET.search(url or "")
    if match:
        return match.group(0)

    return None


_RELATIVE_DAYS = re.compile(r"(\d+)\s*(?:jours?|j|days?|d)\b", re.IGNORECASE)
_RELATIVE_HOURS = re.compile(r"(\d+)\s*(?:heures?|hours?|hrs?|h)\b", re.IGNORECASE)
_RELATIVE_MINUTES = re.compile(r"(\d+)\s*(?:minutes?|mins?|m)\b", re.IGNORECASE)


def parse_relative_time(text: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """Turn a relative-time phrase into an absolute timestamp.

    Understands French and English forms such as "il y a 3 j",
    "2 h", "5 min" or "3 days ago".

    Args:
        text: Relative time phrase
        now: Reference instant; defaults to the current UTC time

    Returns:
        now minus the parsed offset, or None if no offset is found
    """
    if not text:
        return None

    def _component(pattern: re.Pattern) -> int:
        match = pattern.search(text)
        return int(match.group(1)) if match else 0

    days = _component(_RELATIVE_DAYS)
    hours = _component(_RELATIVE_HOURS)
    minutes = _component(_RELATIVE_MINUTES)

    if days == 0 and hours == 0 and minutes == 0:
        return None

    reference = now or datetime.now(timezone.utc)
    return reference - timedelta(days=days, hours=hours, minutes=minutes)


_FRENCH_MONTHS = {
    "janvier": 1, "février": 2, "fevrier": 2, "mars": 3, "avril": 4,
    "mai": 5, "juin": 6, "juillet": 7, "août": 8, "aout": 8,
    "septembre": 9, "octobre": 10, "novembre": 11, "décembre": 12, "decembre": 12,
}

_FRENCH_TIMESTAMP = re.compile(
    r"(\d{1,2})\s+([^\W\d_]+)\s+(\d{4}),?\s+(\d{1,2}):(\d{2})(?::(\d{2}))?"
)


def parse_french_timestamp(text: Optional[str]) -> Optional[datetime]:
    """Parse timestamps like "12 mars 2024, 14:30:00" as UTC."""
    if not text:
        return None

    match = _FRENCH_TIMESTAMP.search(text)
    if not match:
        return None

    month = _FRENCH_MONTHS.get(match.group(2).lower())
    if month is None:
        return None

    try:
        return datetime(
            int(match.group(3)),
            month,
            int(match.group(1)),
            int(match.group(4)),
            int(match.group(5)),
            int(match.group(6) or 0),
            tzinfo=timezone.utc,
        )
    except ValueError:
        return None


def parse_iso_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (as found in JSON-LD) into an aware datetime."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        logger.debug("iso_timestamp_unparseable", value=value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_count(text: Optional[str], default: int = 0) -> int:
    """Parse the first integer in a text such as "152°" or "12 commentaires"."""
    if not text:
        return default
    match = re.search(r"-?\d+", re.sub(r"[\s\u00a0\u202f]", "", text))
    return int(match.group(0)) if match else default


_SRCSET_WIDTH = re.compile(r"(\d+)x\d+")


def best_srcset_url(srcset: Optional[str]) -> str:
    """Pick the highest resolution URL out of a srcset attribute.

    Resolution is read from a "<width>x<height>" fragment of each
    candidate; the first candidate wins ties.
    """
    if not srcset:
        return ""

    options = [opt.strip() for opt in srcset.split(",") if opt.strip()]
    if not options:
        return ""

    def _width(option: str) -> int:
        match = _SRCSET_WIDTH.search(option)
        return int(match.group(1)) if match else 0

    best = options[0]
    for option in options[1:]:
        if _width(option) > _width(best):
            best = option
    return best.split(" ")[0]


def absolute_url(href: Optional[str], base_url: str) -> Optional[str]:
    """Resolve a possibly relative href against a site base URL.

    Returns None for anything that does not resolve to an http(s) URL
    (javascript:, mailto:, data: and the like).
    """
    href = (href or "").strip()
    if not href:
        return None
    if href.startswith("//"):
        href = f"https:{href}"
    resolved = urljoin(base_url, href)
    parsed = urlparse(resolved)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return resolved


class KeywordFilter:
    """Title keyword containment check scoping results to the product domain."""

    def __init__(self, keywords: Iterable[str]):
        self.keywords = [k.lower() for k in keywords if k]

    def matches(self, title: Optional[str]) -> bool:
        """Return True when the title contains any keyword (or no keywords are set)."""
        if not self.keywords:
            return True
        if not title:
            return False
        lowered = title.lower()
        return any(keyword in lowered for keyword in self.keywords)


def text_of(element) -> str:
    """Stripped text of a parsed element, or "" when the element is missing."""
    return element.get_text(strip=True) if element is not None else ""
