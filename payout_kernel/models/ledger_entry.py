"""
LedgerEntryModel -- append-only signed transaction record.

A purchase is a positive amount, a refund a negative amount.  A refund of a
purchase is a distinct new entry, never a mutation of the original: updates
and deletes are rejected by ``payout_kernel.db.immutability``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from payout_kernel.db.base import Base, UTCDateTime
from payout_kernel.domain.dtos import LedgerEntryRecord


class LedgerEntryModel(Base):
    """One immutable purchase (+) or refund (-) entry."""

    __tablename__ = "ledger_entries"

    __table_args__ = (
        Index("ix_ledger_entries_product_occurred", "product_id", "occurred_at"),
    )

    product_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("products.product_id"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(200), nullable=True)

    def to_dto(self) -> LedgerEntryRecord:
        return LedgerEntryRecord(
            amount=Decimal(self.amount),
            occurred_at=self.occurred_at,
            product_id=self.product_id,
            entry_id=self.id,
        )
