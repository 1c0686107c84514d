"""
Per-seller pipeline components, leaf-first:

    SellerLease -> SnapshotSelector -> DeltaAggregator
        -> DisbursementExecutor -> CheckpointCommitter

``SellerPipeline`` drives one seller through them; ``HistoryRecorder``
appends the terminal outcome to the checkpoint history.
"""

from payout_batch.pipeline.aggregator import DeltaAggregator, fold_entries
from payout_batch.pipeline.committer import CheckpointCommitter
from payout_batch.pipeline.disbursement import DisbursementExecutor
from payout_batch.pipeline.history import HistoryRecorder
from payout_batch.pipeline.lease import SellerLease
from payout_batch.pipeline.seller_pipeline import SellerPipeline
from payout_batch.pipeline.snapshot import SnapshotSelector

__all__ = [
    "CheckpointCommitter",
    "DeltaAggregator",
    "DisbursementExecutor",
    "HistoryRecorder",
    "SellerLease",
    "SellerPipeline",
    "SnapshotSelector",
    "fold_entries",
]
