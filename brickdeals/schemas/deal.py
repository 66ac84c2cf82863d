"""Pydantic schema for deal documents persisted as JSON.

Documents keep the camelCase keys of the historical deals file
(setNumber, commentsCount, postedDate, freeShipping, imageUrl) so that
existing files keep loading.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from brickdeals.scrapers.base import DealRecord


class DealDocument(BaseModel):
    """One persisted deal, keyed by link."""

    model_config = ConfigDict(populate_by_name=True)

    link: str = Field(..., min_length=1, description="Canonical absolute URL (identity key)")
    title: str = Field("", description="Deal title")
    price: Decimal = Field(..., ge=0, description="Landed price in euros")
    set_number: Optional[str] = Field(None, alias="setNumber")
    temperature: int = 0
    comments_count: int = Field(0, alias="commentsCount")
    posted_date: Optional[datetime] = Field(None, alias="postedDate")
    free_shipping: bool = Field(False, alias="freeShipping")
    image_url: str = Field("", alias="imageUrl")
    source: str = ""

    @field_validator("price", mode="before")
    @classmethod
    def price_from_float(cls, value: Any) -> Any:
        """Go through str() so 54.98 loads as Decimal("54.98")."""
        if isinstance(value, float):
            return Decimal(str(value))
        return value

    @field_validator("temperature", "comments_count", mode="before")
    @classmethod
    def none_as_zero(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("image_url", "title", "source", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("posted_date")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_serializer("price")
    def serialize_price(self, value: Decimal) -> float:
        return float(value)

    @classmethod
    def from_record(cls, record: DealRecord) -> "DealDocument":
        return cls(
            link=record.link,
            title=record.title,
            price=record.price,
            set_number=record.set_number,
            temperature=record.temperature,
            comments_count=record.comments_count,
            posted_date=record.posted_date,
            free_shipping=record.free_shipping,
            image_url=record.image_url,
            source=record.source,
        )

    def to_record(self) -> DealRecord:
        return DealRecord(
            link=self.link,
            title=self.title,
            price=self.price,
            set_number=self.set_number,
            temperature=self.temperature,
            comments_count=self.comments_count,
            posted_date=self.posted_date,
            free_shipping=self.free_shipping,
            image_url=self.image_url,
            source=self.source,
        )

    def to_json_dict(self) -> dict:
        """Serialize with camelCase keys and JSON-native values."""
        return self.model_dump(mode="json", by_alias=True)
