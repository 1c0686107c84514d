"""
ORM-Level Immutability Enforcement.

Ledger entries and checkpoint history are append-only:

Entity                  | When Immutable        | Why
------------------------|-----------------------|----------------------------------
LedgerEntryModel        | ALWAYS (from creation)| A refund is a new entry, never an edit
CheckpointHistoryModel  | ALWAYS (from creation)| Audit trail of payouts

SQLAlchemy fires ``before_update`` / ``before_delete`` mapper events before
the SQL is sent.  The listeners below raise ImmutabilityViolationError and
the flush is aborted.

Usage:

    from payout_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event

from payout_kernel.exceptions import ImmutabilityViolationError
from payout_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_ledger_entry_update(mapper, connection, target):
    _block(
        "LedgerEntry", target, "UPDATE",
        "Ledger entries are append-only; record a refund as a new entry",
    )


def _check_ledger_entry_delete(mapper, connection, target):
    _block("LedgerEntry", target, "DELETE", "Ledger entries cannot be deleted")


def _check_history_update(mapper, connection, target):
    _block(
        "CheckpointHistory", target, "UPDATE",
        "Checkpoint history is immutable and cannot be modified",
    )


def _check_history_delete(mapper, connection, target):
    _block(
        "CheckpointHistory", target, "DELETE",
        "Checkpoint history cannot be deleted",
    )


def _listeners():
    from payout_kernel.models.checkpoint_history import CheckpointHistoryModel
    from payout_kernel.models.ledger_entry import LedgerEntryModel

    return (
        (LedgerEntryModel, "before_update", _check_ledger_entry_update),
        (LedgerEntryModel, "before_delete", _check_ledger_entry_delete),
        (CheckpointHistoryModel, "before_update", _check_history_update),
        (CheckpointHistoryModel, "before_delete", _check_history_delete),
    )


def register_immutability_listeners() -> None:
    """Register all immutability enforcement event listeners (idempotent)."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
