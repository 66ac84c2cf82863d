"""Services for persisting, merging and querying deals."""

from brickdeals.services.deal_store import (
    DealStore,
    JsonFileDealStore,
    SqlDealStore,
    create_store,
)
from brickdeals.services.merge_service import DealMerger, MergeStats, apply_batch
from brickdeals.services.query_service import DealQueryService

__all__ = [
    "DealStore",
    "JsonFileDealStore",
    "SqlDealStore",
    "create_store",
    "DealMerger",
    "MergeStats",
    "apply_batch",
    "DealQueryService",
]
