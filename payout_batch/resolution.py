"""
Operator resolution of unconfirmed payouts.

A seller whose payout was transferred but whose checkpoint commit never
confirmed is held by every later run.  Once an operator has checked the
payment rail, ``resolve_unconfirmed_payout`` releases the hold:

    paid=True   the transfer went through: the checkpoint is committed to the
                unconfirmed window's end, so the window is never paid again.
    paid=False  the transfer did not happen: the checkpoint stays, so the
                next run pays the window.

Either way a ``resolved`` row is appended to the checkpoint history.
"""

from __future__ import annotations

from uuid import UUID, uuid4

from payout_kernel.domain.dtos import HOLD_OUTCOMES, HistoryOutcome, HistoryRecord
from payout_kernel.exceptions import NothingToResolveError
from payout_kernel.logging_config import get_logger
from payout_kernel.services.ledger_store import LedgerStore

logger = get_logger("batch.resolution")


def resolve_unconfirmed_payout(
    store: LedgerStore,
    seller_id: str,
    paid: bool = True,
    resolution_id: UUID | None = None,
) -> HistoryRecord:
    """Clear a seller's unconfirmed-payout hold.

    Raises:
        NothingToResolveError: The seller is not held by an unconfirmed payout.
        CheckpointConflictError: The checkpoint moved somewhere unexpected.
    """
    latest = store.latest_history(seller_id, HOLD_OUTCOMES)
    if latest is None or latest.outcome is not HistoryOutcome.COMMIT_UNCONFIRMED:
        raise NothingToResolveError(seller_id)

    moved = False
    # A commit that landed despite the reported failure needs no repeat.
    if paid and store.get_seller(seller_id).last_checkpoint < latest.window_end:
        moved = store.commit_checkpoint(
            seller_id,
            latest.window_end,
            expected_checkpoint=latest.window_start,
        )

    record = store.record_history(
        HistoryRecord(
            seller_id=seller_id,
            run_id=resolution_id or uuid4(),
            outcome=HistoryOutcome.RESOLVED,
            window_start=latest.window_start,
            window_end=latest.window_end,
            net_amount=latest.net_amount,
            failing_step=latest.failing_step,
            error_code=latest.error_code,
            error_detail=(
                "operator confirmed transfer" if paid
                else "operator confirmed no transfer; window will be paid again"
            ),
        )
    )

    logger.warning(
        "unconfirmed_payout_resolved",
        extra={
            "seller_id": seller_id,
            "paid": paid,
            "checkpoint_moved": moved,
            "window_end": latest.window_end,
            "unconfirmed_run_id": latest.run_id,
        },
    )
    return record
