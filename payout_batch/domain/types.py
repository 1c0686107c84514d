"""
payout_batch.domain.types -- Pure frozen dataclasses for the payout run.

ZERO I/O.

Follows the batch DTO pattern: frozen dataclasses with enum status fields
and tuples for immutable collections.

Invariants enforced:
    - RunWindow is half-open: ``window_start <= t < window_end``.
    - RunWindow is built once per seller and threaded through every later
      step; nothing re-derives ``window_end``.
    - PayoutOutcome is the only thing a pipeline hands back to the
      orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Generic, TypeVar
from uuid import UUID

from payout_kernel.utils.idempotency import generate_payout_reference

T = TypeVar("T")


# =============================================================================
# Enums
# =============================================================================


class PipelineStep(str, Enum):
    """Steps of the per-seller pipeline, in execution order."""

    LEASE = "lease"
    SNAPSHOT = "snapshot"
    AGGREGATE = "aggregate"
    DISBURSE = "disburse"
    COMMIT = "commit"


class PipelineState(str, Enum):
    """Per-seller state machine."""

    PENDING = "pending"
    LEASED = "leased"
    SNAPSHOTTED = "snapshotted"
    AGGREGATED = "aggregated"
    DISBURSED = "disbursed"
    COMMITTED = "committed"  # Terminal success
    DEFERRED = "deferred"  # Terminal, negative balance carried forward
    FAILED = "failed"  # Terminal failure


# State reached when each step succeeds.
STEP_TARGET_STATE: dict[PipelineStep, PipelineState] = {
    PipelineStep.LEASE: PipelineState.LEASED,
    PipelineStep.SNAPSHOT: PipelineState.SNAPSHOTTED,
    PipelineStep.AGGREGATE: PipelineState.AGGREGATED,
    PipelineStep.DISBURSE: PipelineState.DISBURSED,
    PipelineStep.COMMIT: PipelineState.COMMITTED,
}


class PayoutStatus(str, Enum):
    """Terminal status reported to the orchestrator."""

    COMMITTED = "committed"
    FAILED = "failed"
    DEFERRED = "deferred"


class DisbursementDecision(str, Enum):
    """Explicit business decision taken for a computed net amount."""

    PAY = "pay"  # net > 0: transfer and notify
    SKIP_ZERO = "skip_zero"  # net == 0: nothing to move, checkpoint advances
    SKIP_NEGATIVE = "skip_negative"  # net < 0, policy skip: checkpoint advances
    CARRY_FORWARD = "carry_forward"  # net < 0, policy carry_forward: checkpoint kept


class AlertSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"  # Paid but checkpoint not confirmed


# =============================================================================
# Window and step values
# =============================================================================


@dataclass(frozen=True)
class RunWindow:
    """Half-open ledger window ``[window_start, window_end)`` for one seller.

    Ephemeral: exists only for one pipeline execution and is never persisted.
    """

    seller_id: str
    window_start: datetime
    window_end: datetime

    def contains(self, occurred_at: datetime) -> bool:
        return self.window_start <= occurred_at < self.window_end

    @property
    def is_empty(self) -> bool:
        return self.window_end <= self.window_start

    @property
    def payout_reference(self) -> str:
        return generate_payout_reference(
            self.seller_id, self.window_start, self.window_end,
        )


@dataclass(frozen=True)
class Aggregation:
    """Net payable amount folded from one window's entries."""

    window: RunWindow
    net_amount: Decimal
    entry_count: int = 0
    gross_purchases: Decimal = Decimal("0")
    gross_refunds: Decimal = Decimal("0")


@dataclass(frozen=True)
class DisbursementReceipt:
    """Outcome of a successful disbursement (including explicit no-ops)."""

    seller_id: str
    amount: Decimal
    decision: DisbursementDecision
    reference: str
    paid: bool = False
    notified: bool = False

    @property
    def advances_checkpoint(self) -> bool:
        return self.decision is not DisbursementDecision.CARRY_FORWARD


@dataclass(frozen=True)
class StepFailure:
    """Why a step failed, with enough detail for one operator alert."""

    step: PipelineStep
    error_code: str
    error_detail: str
    severity: AlertSeverity = AlertSeverity.WARNING


@dataclass(frozen=True)
class StepResult(Generic[T]):
    """Explicit per-step result threaded through the state machine."""

    value: T | None = None
    failure: StepFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T) -> StepResult[T]:
        return cls(value=value)

    @classmethod
    def failed(cls, failure: StepFailure) -> StepResult[T]:
        return cls(failure=failure)


# =============================================================================
# Outcomes
# =============================================================================


@dataclass(frozen=True)
class PayoutOutcome:
    """Terminal outcome of one seller's pipeline.  Not persisted by the core."""

    seller_id: str
    status: PayoutStatus
    net_amount: Decimal | None = None
    window: RunWindow | None = None
    decision: DisbursementDecision | None = None
    final_state: PipelineState = PipelineState.PENDING
    failing_step: PipelineStep | None = None
    error_code: str | None = None
    error_detail: str | None = None
    severity: AlertSeverity | None = None
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status is PayoutStatus.COMMITTED


@dataclass(frozen=True)
class RunFailure:
    """One failing seller as reported in the run summary."""

    seller_id: str
    step: PipelineStep
    error: str
    error_code: str
    severity: AlertSeverity = AlertSeverity.WARNING


@dataclass(frozen=True)
class RunSummary:
    """Run-level result returned to the scheduler."""

    run_id: UUID
    committed_count: int
    failed_count: int
    deferred_count: int = 0
    failures: tuple[RunFailure, ...] = ()
    outcomes: tuple[PayoutOutcome, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    cancelled: bool = False
    total_disbursed: Decimal = field(default=Decimal("0"))

    @property
    def seller_count(self) -> int:
        return self.committed_count + self.failed_count + self.deferred_count
