"""Read-only query selectors."""

from payout_kernel.selectors.base import BaseSelector
from payout_kernel.selectors.ledger_selector import LedgerSelector

__all__ = ["BaseSelector", "LedgerSelector"]
