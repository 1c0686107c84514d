"""
DeltaAggregator -- folds a seller's window into one net payable amount.

Contract:
    ``aggregate(window)`` reads the entries in ``[window_start, window_end)``
    and sums their signed amounts (empty window is zero).  Read-only.

    ``fold_entries()`` is the pure fold.  It applies the half-open boundary
    itself, so an entry exactly at ``window_end`` never contributes even if a
    store hands it back.

Failure modes:
    - LedgerReadError: any read failure, retryable on the next run.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from payout_kernel.domain.dtos import LedgerEntryRecord
from payout_kernel.exceptions import LedgerReadError
from payout_kernel.logging_config import get_logger
from payout_kernel.services.ledger_store import LedgerStore

from payout_batch.domain.types import Aggregation, RunWindow

logger = get_logger("batch.aggregator")

ZERO = Decimal("0")


def fold_entries(window: RunWindow, entries: Iterable[LedgerEntryRecord]) -> Aggregation:
    """Sum the signed amounts of the entries inside ``window``."""
    net = ZERO
    purchases = ZERO
    refunds = ZERO
    count = 0
    outside = 0

    for entry in entries:
        if not window.contains(entry.occurred_at):
            outside += 1
            continue
        count += 1
        net += entry.amount
        if entry.amount >= 0:
            purchases += entry.amount
        else:
            refunds += entry.amount

    if outside:
        logger.warning(
            "entries_outside_window_ignored",
            extra={"seller_id": window.seller_id, "ignored_count": outside},
        )

    return Aggregation(
        window=window,
        net_amount=net,
        entry_count=count,
        gross_purchases=purchases,
        gross_refunds=refunds,
    )


class DeltaAggregator:
    """Reads one window from the Ledger Store and folds it."""

    def __init__(self, store: LedgerStore):
        self._store = store

    def aggregate(self, window: RunWindow) -> Aggregation:
        if window.is_empty:
            return Aggregation(window=window, net_amount=ZERO)

        try:
            entries = self._store.read_entries(
                window.seller_id, window.window_start, window.window_end,
            )
        except LedgerReadError:
            raise
        except Exception as exc:
            raise LedgerReadError(window.seller_id, str(exc)) from exc

        aggregation = fold_entries(window, entries)
        logger.info(
            "window_aggregated",
            extra={
                "entry_count": aggregation.entry_count,
                "net_amount": aggregation.net_amount,
                "gross_purchases": aggregation.gross_purchases,
                "gross_refunds": aggregation.gross_refunds,
            },
        )
        return aggregation
