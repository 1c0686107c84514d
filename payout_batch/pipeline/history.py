"""
HistoryRecorder -- appends each terminal seller outcome to the checkpoint
history and keeps the consecutive-failure counter current.

Mapping:
    COMMITTED                       -> committed
    DEFERRED                        -> deferred
    FAILED at commit after payment  -> commit_unconfirmed
    FAILED anywhere else            -> failed (retry_count incremented)

Sellers that failed before a window existed are recorded with an empty
window at their last checkpoint.
"""

from __future__ import annotations

from uuid import UUID

from payout_kernel.domain.dtos import HistoryOutcome, HistoryRecord, SellerSnapshot
from payout_kernel.logging_config import get_logger
from payout_kernel.services.ledger_store import LedgerStore

from payout_batch.domain.types import (
    AlertSeverity,
    PayoutOutcome,
    PayoutStatus,
    PipelineStep,
)

logger = get_logger("batch.history")


def history_outcome_for(outcome: PayoutOutcome) -> HistoryOutcome:
    if outcome.status is PayoutStatus.COMMITTED:
        return HistoryOutcome.COMMITTED
    if outcome.status is PayoutStatus.DEFERRED:
        return HistoryOutcome.DEFERRED
    if (
        outcome.failing_step is PipelineStep.COMMIT
        and outcome.severity is AlertSeverity.CRITICAL
    ):
        return HistoryOutcome.COMMIT_UNCONFIRMED
    return HistoryOutcome.FAILED


class HistoryRecorder:
    """Writes one history row per seller per run."""

    def __init__(self, store: LedgerStore, run_id: UUID):
        self._store = store
        self._run_id = run_id

    def record(self, seller: SellerSnapshot, outcome: PayoutOutcome) -> HistoryRecord | None:
        """Append the outcome.  Returns None if the write failed.

        A failed history write never changes the seller's outcome; it is
        logged at CRITICAL when the lost row was a commit_unconfirmed one.
        """
        kind = history_outcome_for(outcome)
        if outcome.window is not None:
            window_start = outcome.window.window_start
            window_end = outcome.window.window_end
        else:
            window_start = window_end = seller.last_checkpoint

        record = HistoryRecord(
            seller_id=seller.seller_id,
            run_id=self._run_id,
            outcome=kind,
            window_start=window_start,
            window_end=window_end,
            net_amount=outcome.net_amount,
            failing_step=outcome.failing_step.value if outcome.failing_step else None,
            error_code=outcome.error_code,
            error_detail=outcome.error_detail,
        )

        try:
            stored = self._store.record_history(record)
            if kind is HistoryOutcome.FAILED:
                self._store.record_failure(seller.seller_id)
        except Exception:
            log = logger.critical if kind is HistoryOutcome.COMMIT_UNCONFIRMED else logger.error
            log(
                "checkpoint_history_write_failed",
                exc_info=True,
                extra={"outcome": kind.value},
            )
            return None
        return stored
