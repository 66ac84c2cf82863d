"""Extraction engine entry point.

Maps (markup, page kind, site id) to candidate DealRecords by delegating
to the registered adapter. No I/O happens here.
"""

from datetime import datetime
from typing import List, Optional

from brickdeals.scrapers.base import DealRecord, PageKind
from brickdeals.scrapers.factory import AdapterRegistry
from brickdeals.scrapers.register_adapters import get_adapter_registry


def extract(
    html: str,
    page_kind: PageKind,
    site_id: str,
    *,
    url: str,
    now: Optional[datetime] = None,
    registry: Optional[AdapterRegistry] = None,
) -> List[DealRecord]:
    """Extract candidate records from rendered markup.

    Args:
        html: Rendered page markup
        page_kind: Listing or detail
        site_id: Id of the site the markup came from (e.g. "dealabs")
        url: URL of the page (detail record link, set number fallback)
        now: Reference instant for relative dates
        registry: Adapter registry; the global one by default

    Returns:
        Candidate records, possibly empty

    Raises:
        InvalidInputError: If site_id is unknown
    """
    adapter = (registry or get_adapter_registry()).get(site_id)
    return adapter.extract(html, PageKind(page_kind), url=url, now=now)
