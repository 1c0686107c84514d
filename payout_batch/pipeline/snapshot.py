"""
SnapshotSelector -- fixes a seller's window before any ledger read.

Contract:
    ``select(seller)`` reads the injected Clock exactly once and returns
    ``RunWindow(last_checkpoint, now)``.  The caller must not touch the
    ledger for this seller before this returns, and must thread the window
    through every later step instead of reading the clock again.

Failure modes:
    - ClockUnavailableError: the clock raised or returned a naive datetime.
    - ClockRegressionError: the clock reads before ``last_checkpoint``.
"""

from __future__ import annotations

from payout_kernel.domain.clock import Clock
from payout_kernel.domain.dtos import SellerSnapshot
from payout_kernel.exceptions import ClockRegressionError, ClockUnavailableError
from payout_kernel.logging_config import get_logger

from payout_batch.domain.types import RunWindow

logger = get_logger("batch.snapshot")


class SnapshotSelector:
    """Captures ``window_end`` for one seller."""

    def __init__(self, clock: Clock):
        self._clock = clock

    def select(self, seller: SellerSnapshot) -> RunWindow:
        try:
            now = self._clock.now()
        except Exception as exc:
            raise ClockUnavailableError(seller.seller_id, str(exc)) from exc

        if now.tzinfo is None:
            raise ClockUnavailableError(
                seller.seller_id, f"clock returned naive datetime {now!r}",
            )

        if now < seller.last_checkpoint:
            raise ClockRegressionError(
                seller_id=seller.seller_id,
                last_checkpoint=seller.last_checkpoint,
                observed_now=now,
            )

        window = RunWindow(
            seller_id=seller.seller_id,
            window_start=seller.last_checkpoint,
            window_end=now,
        )
        logger.debug(
            "snapshot_selected",
            extra={"window_start": window.window_start, "window_end": window.window_end},
        )
        return window
