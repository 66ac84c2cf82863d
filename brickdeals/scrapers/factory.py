"""Registry resolving target URLs and site ids to adapter instances."""

from typing import Dict, List, Optional
from urllib.parse import urlparse

import structlog

from brickdeals.core.exceptions import InvalidInputError
from brickdeals.scrapers.base import BaseSiteAdapter


logger = structlog.get_logger(__name__)


class AdapterRegistry:
    """Static domain -> adapter table built once at startup.

    Adapters are instantiated on registration and shared: they hold no
    per-scrape state, only selectors and the keyword filter.
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._by_site: Dict[str, BaseSiteAdapter] = {}
        self._by_domain: Dict[str, BaseSiteAdapter] = {}

    def register_adapter(self, adapter: BaseSiteAdapter) -> None:
        """Register an adapter under its site id and every domain it serves.

        Args:
            adapter: Adapter instance (must inherit from BaseSiteAdapter)

        Raises:
            ValueError: If the adapter is not a BaseSiteAdapter or a domain is taken
        """
        if not isinstance(adapter, BaseSiteAdapter):
            raise ValueError(f"Adapter must inherit from BaseSiteAdapter: {adapter!r}")

        for domain in adapter.domains:
            existing = self._by_domain.get(domain)
            if existing is not None and existing.site_id != adapter.site_id:
                raise ValueError(f"Domain {domain} already served by {existing.site_id}")

        self._by_site[adapter.site_id] = adapter
        for domain in adapter.domains:
            self._by_domain[domain] = adapter

        logger.info("adapter_registered", site_id=adapter.site_id, domains=list(adapter.domains))

    def resolve(self, url: Optional[str]) -> BaseSiteAdapter:
        """Resolve the adapter serving a target URL.

        Subdomains resolve to their parent domain (www.dealabs.com -> dealabs.com).

        Raises:
            InvalidInputError: If the URL is missing, not http(s), or its domain is unknown
        """
        if not url or not isinstance(url, str):
            raise InvalidInputError(url, "missing URL")

        parsed = urlparse(url.strip())
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise InvalidInputError(url, "not an absolute http(s) URL")

        labels = parsed.hostname.lower().split(".")
        for i in range(len(labels) - 1):
            adapter = self._by_domain.get(".".join(labels[i:]))
            if adapter is not None:
                return adapter

        supported = ", ".join(sorted(self._by_domain))
        raise InvalidInputError(url, f"unsupported website (supported: {supported})")

    def get(self, site_id: str) -> BaseSiteAdapter:
        """Get an adapter by site id.

        Raises:
            InvalidInputError: If no adapter is registered under that id
        """
        adapter = self._by_site.get(site_id)
        if adapter is None:
            raise InvalidInputError(site_id, "unknown site id")
        return adapter

    def get_registered_sites(self) -> List[str]:
        """Get list of registered site ids."""
        return list(self._by_site.keys())

    def has_adapter(self, site_id: str) -> bool:
        return site_id in self._by_site
