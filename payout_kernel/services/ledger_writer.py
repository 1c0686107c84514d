"""
LedgerWriter -- append-only writes to the ledger.

Registers sellers and products and appends purchase/refund entries.  Entries
are never updated: a refund is appended as a new negative entry.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from payout_kernel.db.engine import session_scope
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.domain.dtos import LedgerEntryRecord, SellerSnapshot
from payout_kernel.exceptions import SellerNotFoundError
from payout_kernel.logging_config import get_logger
from payout_kernel.models.ledger_entry import LedgerEntryModel
from payout_kernel.models.seller import ProductModel, SellerModel

logger = get_logger("services.ledger_writer")


class LedgerWriter:
    """Append-only ledger writes, one transaction per call."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    def register_seller(
        self,
        seller_id: str,
        initial_checkpoint: datetime,
        tenant_id: str | None = None,
    ) -> SellerSnapshot:
        """Create a seller whose first window starts at ``initial_checkpoint``."""
        with session_scope(self._session_factory) as session:
            model = SellerModel(
                seller_id=seller_id,
                tenant_id=tenant_id,
                last_checkpoint=initial_checkpoint,
                retry_count=0,
                created_at=self._clock.now(),
            )
            session.add(model)
            session.flush()
            dto = model.to_dto()

        logger.info(
            "seller_registered",
            extra={"seller_id": seller_id, "initial_checkpoint": initial_checkpoint},
        )
        return dto

    def register_product(
        self, product_id: str, seller_id: str, name: str | None = None,
    ) -> None:
        with session_scope(self._session_factory) as session:
            exists = session.execute(
                select(SellerModel.id).where(SellerModel.seller_id == seller_id)
            ).scalar_one_or_none()
            if exists is None:
                raise SellerNotFoundError(seller_id)
            session.add(
                ProductModel(product_id=product_id, seller_id=seller_id, name=name)
            )

    def append_entry(
        self,
        product_id: str,
        amount: Decimal,
        occurred_at: datetime,
        reference: str | None = None,
    ) -> LedgerEntryRecord:
        """Append a purchase (amount > 0) or refund (amount < 0)."""
        with session_scope(self._session_factory) as session:
            model = LedgerEntryModel(
                product_id=product_id,
                amount=Decimal(amount),
                occurred_at=occurred_at,
                reference=reference,
            )
            session.add(model)
            session.flush()
            return LedgerEntryRecord(
                amount=Decimal(amount),
                occurred_at=occurred_at,
                product_id=product_id,
                entry_id=model.id,
            )
