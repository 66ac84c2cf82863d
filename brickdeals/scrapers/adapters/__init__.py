"""Site-specific scraper adapters."""

from .dealabs import DealabsAdapter
from .vinted import VintedAdapter
from .avenuedelabrique import AvenueDeLaBriqueAdapter

__all__ = [
    "DealabsAdapter",
    "VintedAdapter",
    "AvenueDeLaBriqueAdapter",
]
