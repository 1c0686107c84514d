"""
LedgerSelector -- read-only queries over sellers, ledger entries and history.

Contract:
    ``entries_in_window()`` is the canonical half-open window read:
    ``window_start <= occurred_at < window_end``.  An entry recorded exactly
    at ``window_end`` belongs to the next window.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from sqlalchemy import select

from payout_kernel.domain.dtos import (
    HistoryOutcome,
    HistoryRecord,
    LedgerEntryRecord,
    SellerSnapshot,
)
from payout_kernel.models.checkpoint_history import CheckpointHistoryModel
from payout_kernel.models.ledger_entry import LedgerEntryModel
from payout_kernel.models.seller import ProductModel, SellerModel
from payout_kernel.selectors.base import BaseSelector


class LedgerSelector(BaseSelector):
    """Read-only access to the payout ledger."""

    def list_sellers(self, tenant_id: str | None = None) -> tuple[SellerSnapshot, ...]:
        """All sellers (optionally one tenant's), ordered by seller_id."""
        stmt = select(SellerModel).order_by(SellerModel.seller_id)
        if tenant_id is not None:
            stmt = stmt.where(SellerModel.tenant_id == tenant_id)
        return self._dtos(stmt)

    def get_seller(self, seller_id: str) -> SellerSnapshot | None:
        model = self.session.execute(
            select(SellerModel).where(SellerModel.seller_id == seller_id)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def entries_in_window(
        self,
        seller_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> tuple[LedgerEntryRecord, ...]:
        """Entries owned by ``seller_id`` with start <= occurred_at < end."""
        stmt = (
            select(LedgerEntryModel)
            .join(ProductModel, ProductModel.product_id == LedgerEntryModel.product_id)
            .where(
                ProductModel.seller_id == seller_id,
                LedgerEntryModel.occurred_at >= window_start,
                LedgerEntryModel.occurred_at < window_end,
            )
            .order_by(LedgerEntryModel.occurred_at)
        )
        return self._dtos(stmt)

    def seller_history(
        self,
        seller_id: str,
        limit: int | None = None,
        outcomes: Iterable[HistoryOutcome] | None = None,
    ) -> tuple[HistoryRecord, ...]:
        """History rows for one seller, newest first, optionally by outcome."""
        stmt = (
            select(CheckpointHistoryModel)
            .where(CheckpointHistoryModel.seller_id == seller_id)
            .order_by(CheckpointHistoryModel.seq.desc())
        )
        if outcomes is not None:
            stmt = stmt.where(CheckpointHistoryModel.outcome.in_([o.value for o in outcomes]))
        if limit is not None:
            stmt = stmt.limit(limit)
        return self._dtos(stmt)

    def latest_history(
        self,
        seller_id: str,
        outcomes: Iterable[HistoryOutcome] | None = None,
    ) -> HistoryRecord | None:
        rows = self.seller_history(seller_id, limit=1, outcomes=outcomes)
        return rows[0] if rows else None

    def run_history(self, run_id) -> tuple[HistoryRecord, ...]:
        """All history rows appended by one run, ordered by seller."""
        stmt = (
            select(CheckpointHistoryModel)
            .where(CheckpointHistoryModel.run_id == run_id)
            .order_by(CheckpointHistoryModel.seller_id)
        )
        return self._dtos(stmt)
