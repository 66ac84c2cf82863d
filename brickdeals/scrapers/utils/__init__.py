"""Scraper utilities for normalization, page fetching and retries.

Only the pure helpers are re-exported here; the fetchers and the retry
controller depend on scrapers.base and are imported from their modules.
"""

from .normalizer import (
    KeywordFilter,
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
from .user_agents import USER_AGENTS, get_chromium_user_agent, get_random_user_agent


__all__ = [
    # Normalization
    "KeywordFilter",
    "PriceNormalizer",
    "absolute_url",
    "best_srcset_url",
    "find_set_number",
    "parse_count",
    "parse_french_timestamp",
    "parse_iso_timestamp",
    "parse_relative_time",
    "text_of",
    # User agents
    "USER_AGENTS",
    "get_chromium_user_agent",
    "get_random_user_agent",
]
