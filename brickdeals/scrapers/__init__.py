"""Scraper system for collecting LEGO deals from marketplace and deal-aggregator sites.

This package provides:
- Base adapter classes and the normalized DealRecord
- Site adapters and the domain-keyed AdapterRegistry
- Page acquisition (headless browser or plain HTTP) with retries
- The scraper service and its periodic scheduler
"""

from .base import (
    BaseSiteAdapter,
    DealRecord,
    NavigationRules,
    PageKind,
    Provenance,
)
from .factory import AdapterRegistry
from .register_adapters import build_registry, get_adapter_registry

__all__ = [
    # Base classes
    "BaseSiteAdapter",
    "NavigationRules",
    # Data structures
    "DealRecord",
    "PageKind",
    "Provenance",
    # Registry
    "AdapterRegistry",
    "build_registry",
    "get_adapter_registry",
]
