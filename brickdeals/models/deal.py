"""Deal model: one row per canonical deal link."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from brickdeals.models.base import Base, TimestampMixin
from brickdeals.scrapers.base import DealRecord


class Deal(TimestampMixin, Base):
    """A deal scraped from one of the supported sites.

    The link is the primary key, which enforces the one-record-per-link
    invariant at the database level.
    """

    __tablename__ = "deals"

    link: Mapped[str] = mapped_column(String(2000), primary_key=True, comment="Canonical deal URL")
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="Landed price (shipping included) in euros",
    )
    set_number: Mapped[Optional[str]] = mapped_column(String(6), nullable=True, index=True)

    # Volatile engagement metrics, refreshed by listing re-scans
    temperature: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comments_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    posted_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    free_shipping: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    image_url: Mapped[str] = mapped_column(String(2000), nullable=False, default="")
    source: Mapped[str] = mapped_column(String(50), nullable=False, default="")

    __table_args__ = (
        Index("idx_deals_posted_date", "posted_date"),
        Index("idx_deals_price", "price"),
    )

    @classmethod
    def from_record(cls, record: DealRecord) -> "Deal":
        deal = cls(link=record.link)
        deal.apply_record(record)
        return deal

    def apply_record(self, record: DealRecord) -> None:
        """Copy every non-key field of a record onto this row."""
        self.title = record.title
        self.price = record.price
        self.set_number = record.set_number
        self.temperature = record.temperature
        self.comments_count = record.comments_count
        self.posted_date = record.posted_date
        self.free_shipping = record.free_shipping
        self.image_url = record.image_url
        self.source = record.source

    def to_record(self) -> DealRecord:
        posted = self.posted_date
        # SQLite hands back naive datetimes
        if posted is not None and posted.tzinfo is None:
            posted = posted.replace(tzinfo=timezone.utc)
        return DealRecord(
            link=self.link,
            title=self.title,
            price=Decimal(self.price).quantize(Decimal("0.01")),
            set_number=self.set_number,
            temperature=self.temperature,
            comments_count=self.comments_count,
            posted_date=posted,
            free_shipping=self.free_shipping,
            image_url=self.image_url,
            source=self.source,
        )

    def __repr__(self) -> str:
        return f"<Deal(link='{self.link[:60]}', price={self.price}, set_number={self.set_number})>"
