"""Register the fixed set of site adapters.

The registry is built once, on first use, and shared by the extraction
engine, the scraper service and the scheduler.
"""

from typing import Optional

import structlog

from brickdeals.scrapers.adapters import (
    AvenueDeLaBriqueAdapter,
    DealabsAdapter,
    VintedAdapter,
)
from brickdeals.scrapers.factory import AdapterRegistry

logger = structlog.get_logger(__name__)

ADAPTER_CLASSES = (
    DealabsAdapter,
    VintedAdapter,
    AvenueDeLaBriqueAdapter,
)


def build_registry() -> AdapterRegistry:
    """Create a registry holding one instance of every known adapter."""
    registry = AdapterRegistry()
    for adapter_class in ADAPTER_CLASSES:
        registry.register_adapter(adapter_class())

    logger.info(
        "all_adapters_registered",
        count=len(registry.get_registered_sites()),
        sites=registry.get_registered_sites(),
    )
    return registry


_registry: Optional[AdapterRegistry] = None


def get_adapter_registry() -> AdapterRegistry:
    """Get the global AdapterRegistry singleton."""
    global _registry
    if _registry is None:
        _registry = build_registry()
    return _registry
