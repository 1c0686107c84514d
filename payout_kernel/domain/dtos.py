"""
payout_kernel.domain.dtos -- Frozen DTOs crossing the Ledger Store boundary.

ZERO I/O.  The Ledger Store returns these instead of ORM instances so the
pipeline never holds a live session object.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class HistoryOutcome(str, Enum):
    """Outcome recorded in the append-only checkpoint history."""

    COMMITTED = "committed"
    FAILED = "failed"
    DEFERRED = "deferred"  # Negative balance carried forward
    COMMIT_UNCONFIRMED = "commit_unconfirmed"  # Paid, checkpoint not confirmed
    RESOLVED = "resolved"  # Operator confirmed an unconfirmed commit


# Rows that open or close an unconfirmed-payout hold.
HOLD_OUTCOMES = (HistoryOutcome.COMMIT_UNCONFIRMED, HistoryOutcome.RESOLVED)


@dataclass(frozen=True)
class SellerSnapshot:
    """One row of ``list_sellers()`` as seen at listing time."""

    seller_id: str
    last_checkpoint: datetime
    retry_count: int = 0
    tenant_id: str | None = None


@dataclass(frozen=True)
class LedgerEntryRecord:
    """An immutable signed ledger entry (purchase > 0, refund < 0)."""

    amount: Decimal
    occurred_at: datetime
    product_id: str
    entry_id: UUID | None = None


@dataclass(frozen=True)
class HistoryRecord:
    """One appended checkpoint-history row."""

    seller_id: str
    run_id: UUID
    outcome: HistoryOutcome
    window_start: datetime
    window_end: datetime
    net_amount: Decimal | None = None
    failing_step: str | None = None
    error_code: str | None = None
    error_detail: str | None = None
    recorded_at: datetime | None = None
    seq: int | None = None
    history_id: UUID | None = None
