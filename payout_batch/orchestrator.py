"""
PayoutRunOrchestrator -- one payout cycle across every seller.

Contract:
    ``run_payout_cycle()`` lists sellers once, runs each seller's pipeline in
    isolation (inline, or on a bounded worker pool when ``max_workers > 1``),
    records every terminal outcome in the checkpoint history before the
    seller's lease is released, alerts once per failed seller, and returns a
    ``RunSummary``.

    One seller's failure never affects another seller's outcome.  The only
    run-level failure is ``SellerListingError``, raised before any seller is
    touched.

    ``cancel()`` stops new sellers and steps from starting.  Sellers that
    already disbursed still commit.  A cancel requested before a run starts
    cancels that run; the request is cleared when the run finishes.

Architecture: payout_batch.  Wires pipeline components over a LedgerStore and
    the external collaborators; ``from_config()`` builds the whole graph from
    a ``PayoutConfig``.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from payout_config.schema import PayoutConfig, RunConfig
from payout_kernel.db.engine import get_session_factory, init_engine_from_url
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.domain.dtos import SellerSnapshot
from payout_kernel.exceptions import SellerListingError
from payout_kernel.logging_config import LogContext, get_logger
from payout_kernel.services.ledger_store import LedgerStore, SqlLedgerStore

from payout_batch.collaborators import (
    Alerter,
    LoggingAlerter,
    PaymentRail,
    SellerNotifier,
    load_collaborator,
)
from payout_batch.domain.types import (
    AlertSeverity,
    DisbursementDecision,
    PayoutOutcome,
    PayoutStatus,
    RunFailure,
    RunSummary,
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

logger = get_logger("batch.orchestrator")


class PayoutRunOrchestrator:
    """Runs payout cycles.  Safe to reuse for consecutive runs."""

    def __init__(
        self,
        store: LedgerStore,
        payment_rail: PaymentRail | None,
        notifier: SellerNotifier | None,
        alerter: Alerter | None = None,
        clock: Clock | None = None,
        run_config: RunConfig | None = None,
        sleep=time.sleep,
    ) -> None:
        self._store = store
        self._payment_rail = payment_rail
        self._notifier = notifier
        self._alerter = alerter or LoggingAlerter()
        self._clock = clock or SystemClock()
        self._config = run_config or RunConfig()
        self._sleep = sleep
        self._cancel_event = threading.Event()

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_config(
        cls,
        config: PayoutConfig,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
    ) -> PayoutRunOrchestrator:
        """Create a fully wired orchestrator from configuration.

        Args:
            config: Active payout configuration.
            session_factory: Optional pre-built factory.  If None, the
                module-level engine is initialized from ``config.database``.
            clock: Optional clock for deterministic testing.

        Raises:
            CollaboratorLoadError: If a configured collaborator cannot be built.
        """
        if session_factory is None:
            init_engine_from_url(
                config.database.url,
                echo=config.database.echo,
                pool_size=config.database.pool_size,
                max_overflow=config.database.max_overflow,
            )
            session_factory = get_session_factory()

        effective_clock = clock or SystemClock()
        collaborators = config.collaborators
        options = collaborators.options

        payment_rail = None
        if collaborators.payment_rail:
            payment_rail = load_collaborator(
                "payment_rail", collaborators.payment_rail,
                options.get("payment_rail"), protocol=PaymentRail,
            )
        else:
            logger.warning("payment_rail_not_configured")

        notifier = None
        if collaborators.notifier:
            notifier = load_collaborator(
                "notifier", collaborators.notifier,
                options.get("notifier"), protocol=SellerNotifier,
            )
        else:
            logger.warning("notifier_not_configured")

        alerter = load_collaborator(
            "alerter", collaborators.alerter,
            options.get("alerter"), protocol=Alerter,
        )

        return cls(
            store=SqlLedgerStore(session_factory, clock=effective_clock),
            payment_rail=payment_rail,
            notifier=notifier,
            alerter=alerter,
            clock=effective_clock,
            run_config=config.run,
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def cancel(self) -> None:
        """Signal cancellation.  In-flight disbursements still commit."""
        self._cancel_event.set()
        logger.warning("payout_run_cancel_requested")

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def run_payout_cycle(self) -> RunSummary:
        """Execute one payout cycle.

        Raises:
            SellerListingError: If the seller listing fails.  No seller has
                been touched.
        """
        run_id = uuid4()
        with LogContext.bind(run_id=str(run_id), tenant_id=self._config.tenant_id):
            try:
                return self._run_cycle(run_id)
            finally:
                self._cancel_event.clear()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_cycle(self, run_id: UUID) -> RunSummary:
        started = time.monotonic()
        started_at = self._clock.now()

        logger.info(
            "payout_run_started",
            extra={
                "max_workers": self._config.max_workers,
                "negative_balance_policy": self._config.negative_balance_policy.value,
            },
        )

        try:
            sellers = self._store.list_sellers(self._config.tenant_id)
        except SellerListingError:
            logger.exception("payout_run_listing_failed")
            raise
        except Exception as exc:
            logger.exception("payout_run_listing_failed")
            raise SellerListingError(str(exc)) from exc

        pipeline = self._build_pipeline(run_id)

        if self._config.max_workers == 1 or len(sellers) <= 1:
            outcomes = [
                self._process_seller(seller, pipeline, run_id)
                for seller in sellers
            ]
        else:
            workers = min(self._config.max_workers, len(sellers))
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="payout-seller",
            ) as pool:
                futures = [
                    pool.submit(self._process_seller, seller, pipeline, run_id)
                    for seller in sellers
                ]
                outcomes = [future.result() for future in futures]

        duration_ms = int((time.monotonic() - started) * 1000)
        summary = self._summarize(
            run_id, outcomes, started_at,
            started_at + timedelta(milliseconds=duration_ms), duration_ms,
        )

        logger.info(
            "payout_run_completed",
            extra={
                "seller_count": summary.seller_count,
                "committed_count": summary.committed_count,
                "failed_count": summary.failed_count,
                "deferred_count": summary.deferred_count,
                "total_disbursed": summary.total_disbursed,
                "cancelled": summary.cancelled,
                "duration_ms": summary.duration_ms,
            },
        )
        return summary

    def _build_pipeline(self, run_id: UUID) -> SellerPipeline:
        return SellerPipeline(
            lease=SellerLease(
                self._store,
                holder=str(run_id),
                ttl=timedelta(seconds=self._config.lease_ttl_seconds),
                clock=self._clock,
            ),
            snapshot_selector=SnapshotSelector(self._clock),
            aggregator=DeltaAggregator(self._store),
            executor=DisbursementExecutor(
                self._payment_rail,
                self._notifier,
                self._config.negative_balance_policy,
            ),
            committer=CheckpointCommitter(
                self._store,
                max_attempts=self._config.commit_max_attempts,
                backoff_seconds=self._config.commit_backoff_seconds,
                sleep=self._sleep,
            ),
            cancel_event=self._cancel_event,
            history=HistoryRecorder(self._store, run_id),
        )

    def _process_seller(
        self,
        seller: SellerSnapshot,
        pipeline: SellerPipeline,
        run_id: UUID,
    ) -> PayoutOutcome:
        # Worker threads start with an empty context.
        with LogContext.bind(
            run_id=str(run_id),
            seller_id=seller.seller_id,
            tenant_id=seller.tenant_id,
        ):
            outcome = pipeline.run(seller)
            if outcome.status is PayoutStatus.FAILED:
                self._alert(outcome)
            return outcome

    def _alert(self, outcome: PayoutOutcome) -> None:
        try:
            self._alerter.alert(
                outcome.seller_id,
                outcome.failing_step.value if outcome.failing_step else "unknown",
                outcome.error_detail or "",
                outcome.severity or AlertSeverity.WARNING,
            )
        except Exception:
            logger.exception(
                "alert_delivery_failed",
                extra={"error_code": outcome.error_code},
            )

    def _summarize(
        self,
        run_id: UUID,
        outcomes: list[PayoutOutcome],
        started_at: datetime,
        completed_at: datetime,
        duration_ms: int,
    ) -> RunSummary:
        failures = tuple(
            RunFailure(
                seller_id=o.seller_id,
                step=o.failing_step,
                error=o.error_detail or "",
                error_code=o.error_code or "",
                severity=o.severity or AlertSeverity.WARNING,
            )
            for o in outcomes
            if o.status is PayoutStatus.FAILED
        )
        total = sum(
            (o.net_amount for o in outcomes
             if o.decision is DisbursementDecision.PAY and o.net_amount is not None),
            Decimal("0"),
        )
        return RunSummary(
            run_id=run_id,
            committed_count=sum(1 for o in outcomes if o.succeeded),
            failed_count=len(failures),
            deferred_count=sum(1 for o in outcomes if o.status is PayoutStatus.DEFERRED),
            failures=failures,
            outcomes=tuple(outcomes),
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=duration_ms,
            cancelled=self._cancel_event.is_set(),
            total_disbursed=total,
        )
