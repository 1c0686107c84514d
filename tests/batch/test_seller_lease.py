"""
Tests for payout_batch.pipeline.lease -- SellerLease, including the
unconfirmed-payout hold.
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from payout_kernel.domain.clock import DeterministicClock
from payout_kernel.domain.dtos import HistoryOutcome, HistoryRecord
from payout_kernel.exceptions import SellerLeaseHeldError, UnconfirmedPayoutError

from payout_batch.pipeline.lease import SellerLease

from tests.conftest import T0, T1

TTL = timedelta(hours=1)


def _lease(store, holder, clock=None):
    return SellerLease(store, holder, TTL, clock or DeterministicClock(T1))


def _history(store, outcome, window_end=T1):
    store.record_history(
        HistoryRecord(
            seller_id="s-1",
            run_id=uuid4(),
            outcome=outcome,
            window_start=T0,
            window_end=window_end,
            net_amount=Decimal("70"),
        )
    )


class TestSellerLease:
    def test_returns_fresh_seller(self, store, add_seller):
        add_seller("s-1")
        listed = store.list_sellers()[0]
        store.commit_checkpoint("s-1", T0 + timedelta(minutes=5))

        current = _lease(store, "run-a").acquire(listed)

        assert current.last_checkpoint == T0 + timedelta(minutes=5)

    def test_blocks_second_run(self, store, add_seller):
        add_seller("s-1")
        seller = store.list_sellers()[0]
        _lease(store, "run-a").acquire(seller)

        with pytest.raises(SellerLeaseHeldError):
            _lease(store, "run-b").acquire(seller)

    def test_release(self, store, add_seller):
        add_seller("s-1")
        seller = store.list_sellers()[0]
        lease = _lease(store, "run-a")
        lease.acquire(seller)
        lease.release("s-1")

        _lease(store, "run-b").acquire(seller)

    def test_expiry_counts_from_acquisition(self, store, add_seller):
        """A lease taken late in a long run is live for a full TTL from then."""
        add_seller("s-1")
        seller = store.list_sellers()[0]
        run_clock = DeterministicClock(T1)
        run_clock.advance(timedelta(hours=2))
        _lease(store, "run-a", run_clock).acquire(seller)

        overlapping = DeterministicClock(T1 + timedelta(hours=2, minutes=30))
        with pytest.raises(SellerLeaseHeldError):
            _lease(store, "run-b", overlapping).acquire(seller)

    def test_expired_lease_taken_over(self, store, add_seller):
        add_seller("s-1")
        seller = store.list_sellers()[0]
        _lease(store, "run-a").acquire(seller)

        _lease(store, "run-b", DeterministicClock(T1 + TTL)).acquire(seller)

    def test_release_failure_is_logged_not_raised(self, captured_logs):
        class BrokenStore:
            def release_lease(self, seller_id, holder):
                raise ConnectionError("gone")

        SellerLease(BrokenStore(), "run-a", TTL).release("s-1")

        assert any(r["message"] == "seller_lease_release_failed" for r in captured_logs())


class TestUnconfirmedPayoutHold:
    def test_held(self, store, add_seller):
        add_seller("s-1")
        _history(store, HistoryOutcome.COMMIT_UNCONFIRMED)
        seller = store.list_sellers()[0]

        with pytest.raises(UnconfirmedPayoutError) as exc_info:
            _lease(store, "run-a").acquire(seller)

        assert exc_info.value.window_end == T1
        assert exc_info.value.code == "UNCONFIRMED_PAYOUT"

    def test_hold_releases_lease(self, store, add_seller):
        add_seller("s-1")
        _history(store, HistoryOutcome.COMMIT_UNCONFIRMED)
        seller = store.list_sellers()[0]

        with pytest.raises(UnconfirmedPayoutError):
            _lease(store, "run-a").acquire(seller)

        store.acquire_lease("s-1", "operator", T1, TTL)

    def test_not_held_when_checkpoint_reached(self, store, add_seller):
        """The commit landed despite the reported failure."""
        add_seller("s-1")
        _history(store, HistoryOutcome.COMMIT_UNCONFIRMED)
        store.commit_checkpoint("s-1", T1)

        _lease(store, "run-a").acquire(store.list_sellers()[0])

    def test_not_held_after_resolution(self, store, add_seller):
        add_seller("s-1")
        _history(store, HistoryOutcome.COMMIT_UNCONFIRMED)
        _history(store, HistoryOutcome.RESOLVED)

        _lease(store, "run-a").acquire(store.list_sellers()[0])

    def test_ordinary_failure_not_held(self, store, add_seller):
        add_seller("s-1")
        _history(store, HistoryOutcome.FAILED)

        _lease(store, "run-a").acquire(store.list_sellers()[0])

    def test_still_held_after_later_failures(self, store, add_seller):
        """Runs refused by the hold append failed rows; the hold survives them."""
        add_seller("s-1")
        _history(store, HistoryOutcome.COMMIT_UNCONFIRMED)
        _history(store, HistoryOutcome.FAILED)
        _history(store, HistoryOutcome.FAILED)

        with pytest.raises(UnconfirmedPayoutError):
            _lease(store, "run-a").acquire(store.list_sellers()[0])
