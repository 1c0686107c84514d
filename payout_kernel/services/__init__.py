"""Imperative-shell services over the payout ledger."""

from payout_kernel.services.ledger_store import LedgerStore, SqlLedgerStore
from payout_kernel.services.ledger_writer import LedgerWriter

__all__ = ["LedgerStore", "LedgerWriter", "SqlLedgerStore"]
