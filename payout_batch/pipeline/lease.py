"""
SellerLease -- per-seller mutual exclusion across overlapping runs.

Acquisition is a conditional update in the store, so two runs can never hold
the same seller at once.  A lease that outlives its TTL (crashed run) can be
taken over.

A seller whose newest ``commit_unconfirmed`` row has no later ``resolved``
row, and whose checkpoint has not reached that window, is held: paying it
again would repeat the unconfirmed transfer.  An operator clears it with
``payout-cycle resolve``.
"""

from __future__ import annotations

from datetime import timedelta

from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.domain.dtos import HOLD_OUTCOMES, HistoryOutcome, SellerSnapshot
from payout_kernel.exceptions import UnconfirmedPayoutError
from payout_kernel.logging_config import get_logger
from payout_kernel.services.ledger_store import LedgerStore

logger = get_logger("batch.lease")


class SellerLease:
    def __init__(
        self,
        store: LedgerStore,
        holder: str,
        ttl: timedelta,
        clock: Clock | None = None,
    ):
        self._store = store
        self._holder = holder
        self._ttl = ttl
        self._clock = clock or SystemClock()

    @property
    def holder(self) -> str:
        return self._holder

    def acquire(self, seller: SellerSnapshot) -> SellerSnapshot:
        """Take the lease, then refuse sellers with an unconfirmed payout.

        The lease runs for ``ttl`` from the moment it is taken, read from the
        clock here.  A run that has been going for longer than ``ttl`` still
        gets a live lease for each seller it starts.

        Returns the seller as re-read under the lease.  The listing snapshot
        may predate a commit by a run that finished in between.

        Raises:
            SellerLeaseHeldError: Another live run holds the seller.
            UnconfirmedPayoutError: A previous payout was never committed.
        """
        now = self._clock.now()
        self._store.acquire_lease(seller.seller_id, self._holder, now, self._ttl)

        try:
            current = self._store.get_seller(seller.seller_id)
            latest = self._store.latest_history(seller.seller_id, HOLD_OUTCOMES)
        except Exception:
            self.release(seller.seller_id)
            raise

        if (
            latest is not None
            and latest.outcome is HistoryOutcome.COMMIT_UNCONFIRMED
            and latest.window_end > current.last_checkpoint
        ):
            self.release(seller.seller_id)
            raise UnconfirmedPayoutError(seller.seller_id, latest.window_end)

        logger.debug(
            "seller_lease_acquired",
            extra={"lease_holder": self._holder, "lease_expires_at": now + self._ttl},
        )
        return current

    def release(self, seller_id: str) -> None:
        """Release the lease.  Failures are logged; the TTL reclaims it."""
        try:
            self._store.release_lease(seller_id, self._holder)
        except Exception:
            logger.exception(
                "seller_lease_release_failed",
                extra={"lease_holder": self._holder},
            )
