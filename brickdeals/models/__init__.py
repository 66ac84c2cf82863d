"""SQLAlchemy models for BrickDeals."""

from brickdeals.models.base import Base, TimestampMixin
from brickdeals.models.deal import Deal

__all__ = [
    "Base",
    "TimestampMixin",
    "Deal",
]
