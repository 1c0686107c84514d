"""
SellerPipeline -- drives one seller through the payout state machine.

    PENDING -> LEASED -> SNAPSHOTTED -> AGGREGATED -> DISBURSED -> COMMITTED
    any step -> FAILED

    A negative balance under the carry_forward policy ends DEFERRED after
    disburse: nothing is paid and the commit is skipped.

Contract:
    ``run(seller)`` never raises.  Every step returns an explicit
    ``StepResult``; the first failed result ends the pipeline with a FAILED
    ``PayoutOutcome`` naming the step.

    Cancellation is observed before each step up to and including disburse.
    Once money may have moved the pipeline always attempts the commit.

    The terminal outcome is written to the checkpoint history while the
    seller is still leased, so no other run can take the seller before a
    commit_unconfirmed row exists.  The lease is released on every path once
    acquired, after that write.

Failure severity:
    A commit failure after a successful transfer is CRITICAL: the window was
    paid but not recorded.  Every other failure is WARNING.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable

from payout_kernel.domain.dtos import SellerSnapshot
from payout_kernel.exceptions import PayoutError, RunCancelledError
from payout_kernel.logging_config import LogContext, get_logger

from payout_batch.domain.types import (
    STEP_TARGET_STATE,
    AlertSeverity,
    Aggregation,
    DisbursementReceipt,
    PayoutOutcome,
    PayoutStatus,
    PipelineState,
    PipelineStep,
    RunWindow,
    StepFailure,
    StepResult,
)
from payout_batch.pipeline.aggregator import DeltaAggregator
from payout_batch.pipeline.committer import CheckpointCommitter
from payout_batch.pipeline.disbursement import DisbursementExecutor
from payout_batch.pipeline.history import HistoryRecorder
from payout_batch.pipeline.lease import SellerLease
from payout_batch.pipeline.snapshot import SnapshotSelector

logger = get_logger("batch.seller_pipeline")

UNHANDLED_EXCEPTION = "UNHANDLED_EXCEPTION"


class SellerPipeline:
    """Sequences lease, snapshot, aggregate, disburse and commit for a seller."""

    def __init__(
        self,
        lease: SellerLease,
        snapshot_selector: SnapshotSelector,
        aggregator: DeltaAggregator,
        executor: DisbursementExecutor,
        committer: CheckpointCommitter,
        cancel_event: threading.Event | None = None,
        history: HistoryRecorder | None = None,
    ):
        self._lease = lease
        self._snapshot_selector = snapshot_selector
        self._aggregator = aggregator
        self._executor = executor
        self._committer = committer
        self._cancel_event = cancel_event or threading.Event()
        self._history = history

    def run(self, seller: SellerSnapshot) -> PayoutOutcome:
        started = time.monotonic()
        seller_id = seller.seller_id
        window: RunWindow | None = None
        aggregation: Aggregation | None = None
        receipt: DisbursementReceipt | None = None
        leased = False

        def finish(
            status: PayoutStatus,
            state: PipelineState,
            failure: StepFailure | None = None,
        ) -> PayoutOutcome:
            outcome = PayoutOutcome(
                seller_id=seller_id,
                status=status,
                net_amount=aggregation.net_amount if aggregation else None,
                window=window,
                decision=receipt.decision if receipt else None,
                final_state=state,
                failing_step=failure.step if failure else None,
                error_code=failure.error_code if failure else None,
                error_detail=failure.error_detail if failure else None,
                severity=failure.severity if failure else None,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            logger.info(
                "seller_pipeline_finished",
                extra={
                    "status": status.value,
                    "final_state": state.value,
                    "failing_step": outcome.failing_step.value if outcome.failing_step else None,
                    "error_code": outcome.error_code,
                    "duration_ms": outcome.duration_ms,
                },
            )
            if self._history is not None:
                self._history.record(seller, outcome)
            return outcome

        try:
            lease_result: StepResult[SellerSnapshot] = self._step(
                PipelineStep.LEASE, seller_id,
                lambda: self._lease.acquire(seller),
            )
            if not lease_result.ok:
                return finish(PayoutStatus.FAILED, PipelineState.FAILED, lease_result.failure)
            leased = True
            current = lease_result.value

            snapshot_result: StepResult[RunWindow] = self._step(
                PipelineStep.SNAPSHOT, seller_id,
                lambda: self._snapshot_selector.select(current),
            )
            if not snapshot_result.ok:
                return finish(PayoutStatus.FAILED, PipelineState.FAILED, snapshot_result.failure)
            window = snapshot_result.value

            aggregate_result: StepResult[Aggregation] = self._step(
                PipelineStep.AGGREGATE, seller_id,
                lambda: self._aggregator.aggregate(window),
            )
            if not aggregate_result.ok:
                return finish(PayoutStatus.FAILED, PipelineState.FAILED, aggregate_result.failure)
            aggregation = aggregate_result.value

            disburse_result: StepResult[DisbursementReceipt] = self._step(
                PipelineStep.DISBURSE, seller_id,
                lambda: self._executor.execute(aggregation),
            )
            if not disburse_result.ok:
                return finish(PayoutStatus.FAILED, PipelineState.FAILED, disburse_result.failure)
            receipt = disburse_result.value

            if not receipt.advances_checkpoint:
                return finish(PayoutStatus.DEFERRED, PipelineState.DEFERRED)

            commit_result: StepResult[bool] = self._step(
                PipelineStep.COMMIT, seller_id,
                lambda: self._committer.commit(window),
                cancellable=False,
                severity=AlertSeverity.CRITICAL if receipt.paid else AlertSeverity.WARNING,
            )
            if not commit_result.ok:
                return finish(PayoutStatus.FAILED, PipelineState.FAILED, commit_result.failure)

            return finish(PayoutStatus.COMMITTED, STEP_TARGET_STATE[PipelineStep.COMMIT])
        finally:
            if leased:
                self._lease.release(seller_id)

    def _step(
        self,
        step: PipelineStep,
        seller_id: str,
        action: Callable[[], Any],
        cancellable: bool = True,
        severity: AlertSeverity = AlertSeverity.WARNING,
    ) -> StepResult:
        with LogContext.bind(step=step.value):
            if cancellable and self._cancel_event.is_set():
                cancelled = RunCancelledError(seller_id, step.value)
                logger.warning("seller_step_cancelled")
                return StepResult.failed(
                    StepFailure(step, cancelled.code, str(cancelled), severity),
                )

            try:
                value = action()
            except PayoutError as exc:
                logger.warning(
                    "seller_step_failed",
                    extra={"error_code": exc.code, "error": str(exc)},
                )
                return StepResult.failed(StepFailure(step, exc.code, str(exc), severity))
            except Exception as exc:
                logger.exception("seller_step_unhandled_exception")
                return StepResult.failed(
                    StepFailure(
                        step,
                        UNHANDLED_EXCEPTION,
                        f"{type(exc).__name__}: {exc}",
                        severity,
                    )
                )

            logger.debug(
                "seller_step_completed",
                extra={"state": STEP_TARGET_STATE[step].value},
            )
            return StepResult.success(value)
