"""
CheckpointHistoryModel -- append-only per-seller payout history.

One row per seller per run (plus operator resolutions).  This is audit
history only: windowing always reads ``SellerModel.last_checkpoint``.
Rows are immutable from creation (see ``payout_kernel.db.immutability``).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payout_kernel.db.base import Base, UTCDateTime, UUIDString
from payout_kernel.domain.dtos import HistoryOutcome, HistoryRecord


class CheckpointHistoryModel(Base):
    """Immutable record of one pipeline outcome for one seller."""

    __tablename__ = "checkpoint_history"

    __table_args__ = (
        UniqueConstraint("seller_id", "seq", name="uq_checkpoint_history_seller_seq"),
        Index("ix_checkpoint_history_run_id", "run_id"),
    )

    seller_id: Mapped[str] = mapped_column(String(100), nullable=False)
    # Per-seller monotonic sequence; orders history independent of clock ties.
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    run_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    outcome: Mapped[str] = mapped_column(String(50), nullable=False)
    window_start: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    window_end: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    net_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    failing_step: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def to_dto(self) -> HistoryRecord:
        return HistoryRecord(
            seller_id=self.seller_id,
            run_id=self.run_id,
            outcome=HistoryOutcome(self.outcome),
            window_start=self.window_start,
            window_end=self.window_end,
            net_amount=Decimal(self.net_amount) if self.net_amount is not None else None,
            failing_step=self.failing_step,
            error_code=self.error_code,
            error_detail=self.error_detail,
            recorded_at=self.recorded_at,
            seq=self.seq,
            history_id=self.id,
        )

    @classmethod
    def from_dto(
        cls, dto: HistoryRecord, seq: int, recorded_at: datetime,
    ) -> CheckpointHistoryModel:
        return cls(
            seller_id=dto.seller_id,
            seq=seq,
            run_id=dto.run_id,
            outcome=dto.outcome.value,
            window_start=dto.window_start,
            window_end=dto.window_end,
            net_amount=dto.net_amount,
            failing_step=dto.failing_step,
            error_code=dto.error_code,
            error_detail=dto.error_detail,
            recorded_at=recorded_at,
        )
