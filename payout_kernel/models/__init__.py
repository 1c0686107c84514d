"""ORM models for the payout kernel."""

from payout_kernel.models.checkpoint_history import CheckpointHistoryModel
from payout_kernel.models.ledger_entry import LedgerEntryModel
from payout_kernel.models.seller import ProductModel, SellerModel

__all__ = [
    "CheckpointHistoryModel",
    "LedgerEntryModel",
    "ProductModel",
    "SellerModel",
]
