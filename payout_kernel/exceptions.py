"""
Typed Exception Hierarchy for the Payout Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The run orchestrator must tell operators exactly which step of a seller's
pipeline failed.  "Read failed", "payment failed", and "checkpoint failed"
call for very different responses, and a checkpoint failure after a
successful payment must never be confused with an ordinary failure.

Every exception here therefore:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, alert-safe)
  3. Carries structured DATA (seller_id, window bounds, attempts, ...)

Example:
    try:
        committer.commit(window)
    except CheckpointConflictError as e:
        alert_critical(e.seller_id, e.code)
    except CheckpointCommitError as e:
        alert_critical(e.seller_id, e.code, attempts=e.attempts)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from PayoutError:

    PayoutError (base)
    |
    +-- SnapshotError
    |   +-- ClockUnavailableError
    |   +-- ClockRegressionError
    |
    +-- LedgerReadError                   (retryable on next run)
    |
    +-- DisbursementError
    |   +-- PaymentRailError
    |   +-- NotificationError
    |
    +-- CheckpointCommitError             (CRITICAL: paid but not recorded)
    |   +-- CheckpointConflictError
    |
    +-- SellerLeaseError
    |   +-- SellerLeaseHeldError
    |   +-- UnconfirmedPayoutError
    |
    +-- RunCancelledError
    +-- SellerListingError                (run-level, fatal to the run)
    +-- SellerNotFoundError
    +-- ImmutabilityViolationError
    +-- CollaboratorLoadError
    +-- NothingToResolveError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------
Snapshot        | CLOCK_UNAVAILABLE           | Clock source raised / naive time
                | CLOCK_REGRESSION            | Clock reads before last checkpoint
----------------|-----------------------------|-----------------------------------
Ledger          | LEDGER_READ_FAILURE         | Timeout / connection loss on read
----------------|-----------------------------|-----------------------------------
Disbursement    | PAYMENT_RAIL_FAILURE        | Rail raised or declined
                | NOTIFICATION_FAILURE        | Notifier raised or declined
----------------|-----------------------------|-----------------------------------
Checkpoint      | CHECKPOINT_COMMIT_FAILURE   | Commit retries exhausted
                | CHECKPOINT_CONFLICT         | Concurrent run moved checkpoint
----------------|-----------------------------|-----------------------------------
Lease           | SELLER_LEASE_HELD           | Another run holds the seller
                | UNCONFIRMED_PAYOUT          | Prior payout never confirmed
----------------|-----------------------------|-----------------------------------
Run             | RUN_CANCELLED               | Run cancelled before disbursement
                | SELLER_LISTING_FAILURE      | list_sellers() failed
                | SELLER_NOT_FOUND            | Unknown seller_id
----------------|-----------------------------|-----------------------------------
Storage         | IMMUTABILITY_VIOLATION      | Update/delete of append-only row
Config          | COLLABORATOR_LOAD_FAILURE   | Dotted path cannot be imported
Operator        | NOTHING_TO_RESOLVE          | resolve on a seller with no hold

===============================================================================
"""

from __future__ import annotations

from datetime import datetime


class PayoutError(Exception):
    """
    Base exception for all payout errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "PAYOUT_ERROR"


# Snapshot-related exceptions


class SnapshotError(PayoutError):
    """Base exception for window selection errors."""

    code: str = "SNAPSHOT_ERROR"


class ClockUnavailableError(SnapshotError):
    """The clock source could not produce a usable timestamp."""

    code: str = "CLOCK_UNAVAILABLE"

    def __init__(self, seller_id: str, reason: str):
        self.seller_id = seller_id
        self.reason = reason
        super().__init__(f"Clock unavailable for seller {seller_id}: {reason}")


class ClockRegressionError(SnapshotError):
    """The clock reads earlier than the seller's last checkpoint."""

    code: str = "CLOCK_REGRESSION"

    def __init__(
        self,
        seller_id: str,
        last_checkpoint: datetime,
        observed_now: datetime,
    ):
        self.seller_id = seller_id
        self.last_checkpoint = last_checkpoint
        self.observed_now = observed_now
        super().__init__(
            f"Clock for seller {seller_id} reads {observed_now.isoformat()}, "
            f"before last checkpoint {last_checkpoint.isoformat()}"
        )


# Ledger-related exceptions


class LedgerReadError(PayoutError):
    """
    Ledger entries for a seller's window could not be read.

    Retryable: the checkpoint is untouched, so the next run reads the same
    window again (plus whatever arrived since).
    """

    code: str = "LEDGER_READ_FAILURE"
    retryable: bool = True

    def __init__(self, seller_id: str, reason: str):
        self.seller_id = seller_id
        self.reason = reason
        super().__init__(f"Ledger read failed for seller {seller_id}: {reason}")


# Disbursement-related exceptions


class DisbursementError(PayoutError):
    """Base exception for any failed disbursement sub-step."""

    code: str = "DISBURSEMENT_FAILURE"

    def __init__(self, seller_id: str, sub_step: str, reason: str):
        self.seller_id = seller_id
        self.sub_step = sub_step
        self.reason = reason
        super().__init__(
            f"Disbursement {sub_step} failed for seller {seller_id}: {reason}"
        )


class PaymentRailError(DisbursementError):
    """The payment rail raised or declined the transfer."""

    code: str = "PAYMENT_RAIL_FAILURE"

    def __init__(self, seller_id: str, reason: str):
        super().__init__(seller_id, "payment", reason)


class NotificationError(DisbursementError):
    """The seller notification raised or was not delivered."""

    code: str = "NOTIFICATION_FAILURE"

    def __init__(self, seller_id: str, reason: str):
        super().__init__(seller_id, "notification", reason)


# Checkpoint-related exceptions


class CheckpointCommitError(PayoutError):
    """
    Disbursement succeeded but the checkpoint could not be recorded.

    CRITICAL: a naive retry on the next run would pay the same window twice.
    Must be alerted distinctly from ordinary failures.
    """

    code: str = "CHECKPOINT_COMMIT_FAILURE"

    def __init__(
        self,
        seller_id: str,
        window_end: datetime,
        attempts: int,
        reason: str,
    ):
        self.seller_id = seller_id
        self.window_end = window_end
        self.attempts = attempts
        self.reason = reason
        super().__init__(
            f"Checkpoint commit to {window_end.isoformat()} failed for seller "
            f"{seller_id} after {attempts} attempt(s): {reason}"
        )


class CheckpointConflictError(CheckpointCommitError):
    """The stored checkpoint no longer matches the window just paid."""

    code: str = "CHECKPOINT_CONFLICT"

    def __init__(
        self,
        seller_id: str,
        expected_checkpoint: datetime,
        current_checkpoint: datetime,
        window_end: datetime,
    ):
        self.expected_checkpoint = expected_checkpoint
        self.current_checkpoint = current_checkpoint
        super().__init__(
            seller_id,
            window_end,
            attempts=1,
            reason=(
                f"expected checkpoint {expected_checkpoint.isoformat()}, "
                f"found {current_checkpoint.isoformat()}"
            ),
        )


# Lease-related exceptions


class SellerLeaseError(PayoutError):
    """Base exception for per-seller mutual exclusion errors."""

    code: str = "SELLER_LEASE_ERROR"


class SellerLeaseHeldError(SellerLeaseError):
    """Another run currently holds this seller's lease."""

    code: str = "SELLER_LEASE_HELD"

    def __init__(self, seller_id: str, holder: str | None):
        self.seller_id = seller_id
        self.holder = holder
        super().__init__(
            f"Seller {seller_id} is leased by another run ({holder})"
        )


class UnconfirmedPayoutError(SellerLeaseError):
    """A prior disbursement was never confirmed by a checkpoint commit."""

    code: str = "UNCONFIRMED_PAYOUT"

    def __init__(self, seller_id: str, window_end: datetime):
        self.seller_id = seller_id
        self.window_end = window_end
        super().__init__(
            f"Seller {seller_id} has an unconfirmed payout up to "
            f"{window_end.isoformat()}; resolve before the next payout"
        )


# Run-level exceptions


class RunCancelledError(PayoutError):
    """The run was cancelled before this seller reached disbursement."""

    code: str = "RUN_CANCELLED"

    def __init__(self, seller_id: str, step: str):
        self.seller_id = seller_id
        self.step = step
        super().__init__(f"Run cancelled before {step} for seller {seller_id}")


class SellerListingError(PayoutError):
    """Listing sellers failed.  Fatal to the whole run."""

    code: str = "SELLER_LISTING_FAILURE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Could not list sellers: {reason}")


class SellerNotFoundError(PayoutError):
    """Seller with given ID was not found."""

    code: str = "SELLER_NOT_FOUND"

    def __init__(self, seller_id: str):
        self.seller_id = seller_id
        super().__init__(f"Seller not found: {seller_id}")


# Storage and configuration exceptions


class ImmutabilityViolationError(PayoutError):
    """Attempt to update or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


class CollaboratorLoadError(PayoutError):
    """A configured collaborator factory could not be imported or built."""

    code: str = "COLLABORATOR_LOAD_FAILURE"

    def __init__(self, role: str, path: str, reason: str):
        self.role = role
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot load {role} from '{path}': {reason}")


class NothingToResolveError(PayoutError):
    """The seller has no unconfirmed payout to resolve."""

    code: str = "NOTHING_TO_RESOLVE"

    def __init__(self, seller_id: str):
        self.seller_id = seller_id
        super().__init__(f"Seller {seller_id} has no unconfirmed payout")
