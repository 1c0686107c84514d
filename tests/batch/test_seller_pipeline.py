"""
Tests for payout_batch.pipeline.seller_pipeline -- the per-seller state
machine.

Validates step ordering, the step named on failure, failure severity,
cancellation before and after disbursement, lease release on every path,
and the history row written while the lease is still held.
"""

import threading
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from payout_config.schema import NegativeBalancePolicy
from payout_kernel.domain.clock import Clock, DeterministicClock
from payout_kernel.domain.dtos import HistoryOutcome
from payout_kernel.exceptions import SellerLeaseHeldError

from payout_batch.domain.types import (
    AlertSeverity,
    DisbursementDecision,
    PayoutStatus,
    PipelineState,
    PipelineStep,
)
from payout_batch.pipeline import (
    CheckpointCommitter,
    DeltaAggregator,
    DisbursementExecutor,
    HistoryRecorder,
    SellerLease,
    SellerPipeline,
    SnapshotSelector,
)

from tests.conftest import (
    T0,
    T1,
    DelegatingStore,
    RecordingNotifier,
    RecordingPaymentRail,
    always_raise,
)

TTL = timedelta(hours=1)


class BrokenClock(Clock):
    def now(self):
        raise OSError("ntp unreachable")


def _pipeline(
    store,
    rail=None,
    notifier=None,
    clock=None,
    cancel_event=None,
    policy=NegativeBalancePolicy.CARRY_FORWARD,
    holder="run-a",
    aggregator=None,
    history=None,
):
    return SellerPipeline(
        lease=SellerLease(store, holder, TTL, DeterministicClock(T1)),
        snapshot_selector=SnapshotSelector(clock or DeterministicClock(T1)),
        aggregator=aggregator or DeltaAggregator(store),
        executor=DisbursementExecutor(
            rail if rail is not None else RecordingPaymentRail(),
            notifier if notifier is not None else RecordingNotifier(),
            policy,
        ),
        committer=CheckpointCommitter(store, max_attempts=2, sleep=lambda s: None),
        cancel_event=cancel_event,
        history=history,
    )


def _lease_free(store, seller_id="s-1"):
    store.acquire_lease(seller_id, "checker", T1, TTL)
    store.release_lease(seller_id, "checker")
    return True


@pytest.fixture
def seller(store, add_seller):
    add_seller("s-1", entries=[(1, "100"), (2, "-30")])
    return store.get_seller("s-1")


class TestHappyPath:
    def test_committed(self, store, seller):
        rail = RecordingPaymentRail()

        outcome = _pipeline(store, rail=rail).run(seller)

        assert outcome.status is PayoutStatus.COMMITTED
        assert outcome.final_state is PipelineState.COMMITTED
        assert outcome.net_amount == Decimal("70")
        assert outcome.decision is DisbursementDecision.PAY
        assert outcome.window.window_end == T1
        assert outcome.failing_step is None
        assert len(rail.calls) == 1
        assert store.get_seller("s-1").last_checkpoint == T1
        assert _lease_free(store)

    def test_steps_logged_with_context(self, store, seller, captured_logs):
        _pipeline(store).run(seller)

        steps = [
            r["step"] for r in captured_logs()
            if r["message"] == "seller_step_completed"
        ]
        assert steps == ["lease", "snapshot", "aggregate", "disburse", "commit"]

    def test_carry_forward_is_deferred(self, store, add_seller):
        add_seller("s-2", entries=[(1, "-30")])
        rail = RecordingPaymentRail()

        outcome = _pipeline(store, rail=rail).run(store.get_seller("s-2"))

        assert outcome.status is PayoutStatus.DEFERRED
        assert outcome.final_state is PipelineState.DEFERRED
        assert outcome.decision is DisbursementDecision.CARRY_FORWARD
        assert rail.calls == []
        assert store.get_seller("s-2").last_checkpoint == T0

    def test_skip_negative_commits(self, store, add_seller):
        add_seller("s-2", entries=[(1, "-30")])
        seller = store.get_seller("s-2")

        outcome = _pipeline(store, policy=NegativeBalancePolicy.SKIP).run(seller)

        assert outcome.status is PayoutStatus.COMMITTED
        assert outcome.decision is DisbursementDecision.SKIP_NEGATIVE
        assert store.get_seller("s-2").last_checkpoint == T1


class TestFailures:
    def test_lease_held(self, store, seller):
        store.acquire_lease("s-1", "other-run", T1, TTL)

        outcome = _pipeline(store).run(seller)

        assert outcome.status is PayoutStatus.FAILED
        assert outcome.failing_step is PipelineStep.LEASE
        assert outcome.error_code == "SELLER_LEASE_HELD"
        assert outcome.window is None
        # Other run's lease untouched.
        with pytest.raises(SellerLeaseHeldError):
            store.acquire_lease("s-1", "third-run", T1, TTL)

    def test_clock_unavailable(self, store, seller):
        outcome = _pipeline(store, clock=BrokenClock()).run(seller)

        assert outcome.failing_step is PipelineStep.SNAPSHOT
        assert outcome.error_code == "CLOCK_UNAVAILABLE"
        assert _lease_free(store)

    def test_ledger_read_failure(self, store, seller):
        broken = DelegatingStore(
            store, read_entries=always_raise(TimeoutError("statement timeout")),
        )

        outcome = _pipeline(broken).run(seller)

        assert outcome.failing_step is PipelineStep.AGGREGATE
        assert outcome.error_code == "LEDGER_READ_FAILURE"
        assert store.get_seller("s-1").last_checkpoint == T0

    def test_payment_failure(self, store, seller):
        outcome = _pipeline(store, rail=RecordingPaymentRail(decline={"s-1"})).run(seller)

        assert outcome.failing_step is PipelineStep.DISBURSE
        assert outcome.error_code == "PAYMENT_RAIL_FAILURE"
        assert outcome.severity is AlertSeverity.WARNING
        assert outcome.net_amount == Decimal("70")
        assert store.get_seller("s-1").last_checkpoint == T0

    def test_notification_failure(self, store, seller):
        rail = RecordingPaymentRail()

        outcome = _pipeline(
            store, rail=rail, notifier=RecordingNotifier(explode={"s-1"}),
        ).run(seller)

        assert outcome.failing_step is PipelineStep.DISBURSE
        assert outcome.error_code == "NOTIFICATION_FAILURE"
        assert "notification" in outcome.error_detail
        assert len(rail.calls) == 1
        assert store.get_seller("s-1").last_checkpoint == T0
        assert _lease_free(store)

    def test_commit_failure_after_payment_is_critical(self, store, seller):
        broken = DelegatingStore(
            store, commit_checkpoint=always_raise(ConnectionError("connection reset")),
        )

        outcome = _pipeline(broken).run(seller)

        assert outcome.failing_step is PipelineStep.COMMIT
        assert outcome.error_code == "CHECKPOINT_COMMIT_FAILURE"
        assert outcome.severity is AlertSeverity.CRITICAL
        assert outcome.decision is DisbursementDecision.PAY
        assert _lease_free(store)

    def test_commit_failure_without_payment_is_warning(self, store, add_seller):
        add_seller("s-2")
        broken = DelegatingStore(
            store, commit_checkpoint=always_raise(ConnectionError("connection reset")),
        )

        outcome = _pipeline(broken).run(store.get_seller("s-2"))

        assert outcome.failing_step is PipelineStep.COMMIT
        assert outcome.decision is DisbursementDecision.SKIP_ZERO
        assert outcome.severity is AlertSeverity.WARNING

    def test_unexpected_exception(self, store, seller):
        broken = DelegatingStore(store, acquire_lease=always_raise(KeyError("boom")))

        outcome = _pipeline(broken).run(seller)

        assert outcome.failing_step is PipelineStep.LEASE
        assert outcome.error_code == "UNHANDLED_EXCEPTION"
        assert "KeyError" in outcome.error_detail


class TestCancellation:
    def test_cancelled_before_start(self, store, seller):
        event = threading.Event()
        event.set()
        rail = RecordingPaymentRail()

        outcome = _pipeline(store, rail=rail, cancel_event=event).run(seller)

        assert outcome.status is PayoutStatus.FAILED
        assert outcome.failing_step is PipelineStep.LEASE
        assert outcome.error_code == "RUN_CANCELLED"
        assert rail.calls == []
        assert store.get_seller("s-1").last_checkpoint == T0

    def test_cancelled_before_disburse(self, store, seller):
        event = threading.Event()
        rail = RecordingPaymentRail()

        class CancellingAggregator(DeltaAggregator):
            def aggregate(self, window):
                result = super().aggregate(window)
                event.set()
                return result

        outcome = _pipeline(
            store, rail=rail, cancel_event=event,
            aggregator=CancellingAggregator(store),
        ).run(seller)

        assert outcome.failing_step is PipelineStep.DISBURSE
        assert outcome.error_code == "RUN_CANCELLED"
        assert rail.calls == []
        assert store.get_seller("s-1").last_checkpoint == T0
        assert _lease_free(store)

    def test_cancel_after_disburse_still_commits(self, store, seller):
        event = threading.Event()
        rail = RecordingPaymentRail()
        rail.on_disburse = lambda seller_id: event.set()

        outcome = _pipeline(store, rail=rail, cancel_event=event).run(seller)

        assert outcome.status is PayoutStatus.COMMITTED
        assert store.get_seller("s-1").last_checkpoint == T1


class TestHistoryUnderLease:
    def test_every_outcome_recorded(self, store, seller):
        run_id = uuid4()

        _pipeline(store, history=HistoryRecorder(store, run_id)).run(seller)

        [row] = store.run_history(run_id)
        assert row.outcome is HistoryOutcome.COMMITTED
        assert row.window_end == T1
        assert row.net_amount == Decimal("70")

    def test_unconfirmed_row_written_before_release(self, store, seller):
        seen_at_release = []

        def release_lease(seller_id, holder):
            seen_at_release.append(store.latest_history(seller_id))
            store.release_lease(seller_id, holder)

        broken = DelegatingStore(
            store,
            commit_checkpoint=always_raise(ConnectionError("connection reset")),
            release_lease=release_lease,
        )

        outcome = _pipeline(broken, history=HistoryRecorder(broken, uuid4())).run(seller)

        assert outcome.severity is AlertSeverity.CRITICAL
        [row] = seen_at_release
        assert row.outcome is HistoryOutcome.COMMIT_UNCONFIRMED
        assert row.window_end == T1
        assert _lease_free(store)

    def test_lease_held_recorded_without_lease(self, store, seller):
        store.acquire_lease("s-1", "other-run", T1, TTL)
        run_id = uuid4()

        _pipeline(store, history=HistoryRecorder(store, run_id)).run(seller)

        [row] = store.run_history(run_id)
        assert row.outcome is HistoryOutcome.FAILED
        assert row.error_code == "SELLER_LEASE_HELD"
        assert row.window_start == row.window_end == T0
