"""Pure payout-run domain types."""

from payout_batch.domain.types import (
    Aggregation,
    AlertSeverity,
    DisbursementDecision,
    DisbursementReceipt,
    PayoutOutcome,
    PayoutStatus,
    PipelineState,
    PipelineStep,
    RunFailure,
    RunSummary,
    RunWindow,
    StepFailure,
    StepResult,
)

__all__ = [
    "Aggregation",
    "AlertSeverity",
    "DisbursementDecision",
    "DisbursementReceipt",
    "PayoutOutcome",
    "PayoutStatus",
    "PipelineState",
    "PipelineStep",
    "RunFailure",
    "RunSummary",
    "RunWindow",
    "StepFailure",
    "StepResult",
]
