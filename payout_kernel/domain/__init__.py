"""
Pure domain layer.

Frozen DTOs and the clock abstraction.  NO dependencies on the ORM,
the database, or I/O (except SystemClock, the sanctioned time boundary).
"""

from payout_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SequentialClock,
    SystemClock,
)
from payout_kernel.domain.dtos import (
    HistoryOutcome,
    HistoryRecord,
    LedgerEntryRecord,
    SellerSnapshot,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "HistoryOutcome",
    "HistoryRecord",
    "LedgerEntryRecord",
    "SellerSnapshot",
    "SequentialClock",
    "SystemClock",
]
