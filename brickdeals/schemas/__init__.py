"""Pydantic schemas for persisted documents."""

from brickdeals.schemas.deal import DealDocument

__all__ = ["DealDocument"]
