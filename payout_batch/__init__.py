"""
payout_batch -- Periodic per-seller payout reconciliation.

Drives every seller through the checkpoint protocol:

    Lease -> Snapshot -> Aggregate -> Disburse -> Commit

Each seller runs in isolation: a failure is alerted once, recorded in the
checkpoint history, and never touches another seller's pipeline.  The run
is resumable and idempotent because a checkpoint advances only after a
completed disbursement for exactly the window just read.

Architecture:
    payout_batch/ is a top-level package.  Nothing in payout_kernel/ or
    payout_config/ imports from payout_batch.
"""
