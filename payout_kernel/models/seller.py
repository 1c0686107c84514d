"""
Seller and Product models.

SellerModel holds the single authoritative ``last_checkpoint`` used for
windowing.  It is advanced only by the checkpoint commit in the Ledger
Store, and only forward.

ProductModel links ledger entries to their owning seller: an entry belongs
to exactly one seller via the product it was recorded against.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from payout_kernel.db.base import Base, UTCDateTime
from payout_kernel.domain.dtos import SellerSnapshot


class SellerModel(Base):
    """Seller checkpoint row (the only shared mutable resource of a run)."""

    __tablename__ = "sellers"

    __table_args__ = (
        Index("ix_sellers_tenant_id", "tenant_id"),
    )

    seller_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    tenant_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Exclusive upper bound of the last reconciled window.
    last_checkpoint: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    # Consecutive failed runs, for operational triage only.
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Per-seller run lease.
    lease_holder: Mapped[str | None] = mapped_column(String(36), nullable=True)
    lease_expires_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )

    created_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def to_dto(self) -> SellerSnapshot:
        return SellerSnapshot(
            seller_id=self.seller_id,
            last_checkpoint=self.last_checkpoint,
            retry_count=self.retry_count,
            tenant_id=self.tenant_id,
        )

    def __repr__(self) -> str:
        return (
            f"<Seller {self.seller_id} checkpoint={self.last_checkpoint.isoformat()}>"
        )


class ProductModel(Base):
    """A product listed by exactly one seller."""

    __tablename__ = "products"

    product_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    seller_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("sellers.seller_id"),
        nullable=False,
        index=True,
    )
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
