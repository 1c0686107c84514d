"""
LedgerStore -- the durable side of the payout checkpoint protocol.

Responsibility:
    Exposes the narrow interface the payout pipeline consumes:
    ``list_sellers``, ``read_entries`` (half-open window), and the atomic,
    idempotent ``commit_checkpoint``.  Also owns the per-seller run lease,
    the failure counter, and the append-only checkpoint history.

Architecture position:
    Kernel > Services -- imperative shell over selectors and models.

Invariants enforced:
    - Every operation runs in its own short transaction (session_scope), so a
      committed checkpoint is durable when ``commit_checkpoint`` returns.
    - ``last_checkpoint`` only moves forward: a commit to a value at or
      before the stored one is a no-op success (idempotent retry).
    - Conditional single-row UPDATE: a commit whose ``expected_checkpoint``
      is stale raises CheckpointConflictError instead of overwriting.
    - Lease acquisition is a conditional UPDATE: at most one live holder.

Failure modes:
    - SellerListingError: listing failed (fatal to the run).
    - LedgerReadError: window read failed (retryable, seller-level).
    - CheckpointConflictError: concurrent run moved the checkpoint.
    - SellerLeaseHeldError: another live run holds the seller.
    - SellerNotFoundError: unknown seller_id.
    - sqlalchemy.exc.SQLAlchemyError from commit/lease/history writes is
      propagated unchanged; callers decide whether to retry.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from payout_kernel.db.engine import session_scope
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.domain.dtos import (
    HistoryOutcome,
    HistoryRecord,
    LedgerEntryRecord,
    SellerSnapshot,
)
from payout_kernel.exceptions import (
    CheckpointConflictError,
    LedgerReadError,
    SellerLeaseHeldError,
    SellerListingError,
    SellerNotFoundError,
)
from payout_kernel.logging_config import get_logger
from payout_kernel.models.checkpoint_history import CheckpointHistoryModel
from payout_kernel.models.seller import SellerModel
from payout_kernel.selectors.ledger_selector import LedgerSelector

logger = get_logger("services.ledger_store")


@runtime_checkable
class LedgerStore(Protocol):
    """Interface consumed by the payout pipeline.

    Implementations must make ``commit_checkpoint`` atomic and idempotent.
    """

    def list_sellers(self, tenant_id: str | None = None) -> tuple[SellerSnapshot, ...]: ...

    def get_seller(self, seller_id: str) -> SellerSnapshot: ...

    def read_entries(
        self, seller_id: str, window_start: datetime, window_end: datetime,
    ) -> tuple[LedgerEntryRecord, ...]: ...

    def commit_checkpoint(
        self,
        seller_id: str,
        new_checkpoint: datetime,
        expected_checkpoint: datetime | None = None,
    ) -> bool: ...

    def acquire_lease(
        self, seller_id: str, holder: str, now: datetime, ttl: timedelta,
    ) -> None: ...

    def release_lease(self, seller_id: str, holder: str) -> None: ...

    def record_failure(self, seller_id: str) -> int: ...

    def record_history(self, record: HistoryRecord) -> HistoryRecord: ...

    def latest_history(
        self,
        seller_id: str,
        outcomes: Iterable[HistoryOutcome] | None = None,
    ) -> HistoryRecord | None: ...


class SqlLedgerStore:
    """SQLAlchemy implementation of LedgerStore.

    Contract:
        Takes a session factory, not a session: each call opens and closes
        its own transaction, which makes the store safe to share between
        worker threads.

    Non-goals:
        - Does NOT compute payouts or call collaborators.
        - Does NOT retry -- the checkpoint committer owns retry policy.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def list_sellers(self, tenant_id: str | None = None) -> tuple[SellerSnapshot, ...]:
        """Full seller snapshot, no filtering beyond the optional tenant.

        Raises:
            SellerListingError: If the query fails.
        """
        try:
            with session_scope(self._session_factory) as session:
                return LedgerSelector(session).list_sellers(tenant_id)
        except SQLAlchemyError as exc:
            raise SellerListingError(str(exc)) from exc

    def get_seller(self, seller_id: str) -> SellerSnapshot:
        """Raises SellerNotFoundError if the seller does not exist."""
        with session_scope(self._session_factory) as session:
            seller = LedgerSelector(session).get_seller(seller_id)
        if seller is None:
            raise SellerNotFoundError(seller_id)
        return seller

    def read_entries(
        self,
        seller_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> tuple[LedgerEntryRecord, ...]:
        """Entries in ``[window_start, window_end)`` for one seller.

        Raises:
            LedgerReadError: On any database failure (retryable).
        """
        try:
            with session_scope(self._session_factory) as session:
                return LedgerSelector(session).entries_in_window(
                    seller_id, window_start, window_end,
                )
        except SQLAlchemyError as exc:
            raise LedgerReadError(seller_id, str(exc)) from exc

    def latest_history(
        self,
        seller_id: str,
        outcomes: Iterable[HistoryOutcome] | None = None,
    ) -> HistoryRecord | None:
        """Newest history row, optionally restricted to some outcomes."""
        with session_scope(self._session_factory) as session:
            return LedgerSelector(session).latest_history(seller_id, outcomes)

    def seller_history(
        self, seller_id: str, limit: int | None = None,
    ) -> tuple[HistoryRecord, ...]:
        with session_scope(self._session_factory) as session:
            return LedgerSelector(session).seller_history(seller_id, limit)

    def run_history(self, run_id: UUID) -> tuple[HistoryRecord, ...]:
        with session_scope(self._session_factory) as session:
            return LedgerSelector(session).run_history(run_id)

    # -------------------------------------------------------------------------
    # Checkpoint
    # -------------------------------------------------------------------------

    def commit_checkpoint(
        self,
        seller_id: str,
        new_checkpoint: datetime,
        expected_checkpoint: datetime | None = None,
    ) -> bool:
        """Atomically advance ``last_checkpoint`` to ``new_checkpoint``.

        Returns:
            True if the checkpoint moved.  False if it was already at
            ``new_checkpoint``, or past it with no ``expected_checkpoint`` or
            an ``expected_checkpoint`` that still matches (idempotent no-op
            success).

        Raises:
            SellerNotFoundError: If the seller does not exist.
            CheckpointConflictError: If ``expected_checkpoint`` is stale,
                including when another writer already moved the checkpoint
                past ``new_checkpoint``.
        """
        with session_scope(self._session_factory) as session:
            seller = session.execute(
                select(SellerModel)
                .where(SellerModel.seller_id == seller_id)
                .with_for_update()
            ).scalar_one_or_none()

            if seller is None:
                raise SellerNotFoundError(seller_id)

            current = seller.last_checkpoint
            stale = expected_checkpoint is not None and current != expected_checkpoint

            if current == new_checkpoint or (current > new_checkpoint and not stale):
                logger.info(
                    "checkpoint_commit_noop",
                    extra={
                        "seller_id": seller_id,
                        "current_checkpoint": current,
                        "requested_checkpoint": new_checkpoint,
                    },
                )
                return False

            if stale:
                raise CheckpointConflictError(
                    seller_id=seller_id,
                    expected_checkpoint=expected_checkpoint,
                    current_checkpoint=current,
                    window_end=new_checkpoint,
                )

            result = session.execute(
                update(SellerModel)
                .where(
                    SellerModel.seller_id == seller_id,
                    SellerModel.last_checkpoint == current,
                )
                .values(last_checkpoint=new_checkpoint, retry_count=0)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                # Moved between our read and our write.
                session.expire_all()
                moved_to = session.execute(
                    select(SellerModel.last_checkpoint)
                    .where(SellerModel.seller_id == seller_id)
                ).scalar_one()
                raise CheckpointConflictError(
                    seller_id=seller_id,
                    expected_checkpoint=current,
                    current_checkpoint=moved_to,
                    window_end=new_checkpoint,
                )

        logger.info(
            "checkpoint_committed",
            extra={
                "seller_id": seller_id,
                "previous_checkpoint": current,
                "new_checkpoint": new_checkpoint,
            },
        )
        return True

    def record_failure(self, seller_id: str) -> int:
        """Increment the consecutive-failure counter; return the new value."""
        with session_scope(self._session_factory) as session:
            session.execute(
                update(SellerModel)
                .where(SellerModel.seller_id == seller_id)
                .values(retry_count=SellerModel.retry_count + 1)
                .execution_options(synchronize_session=False)
            )
            count = session.execute(
                select(SellerModel.retry_count)
                .where(SellerModel.seller_id == seller_id)
            ).scalar_one_or_none()
        if count is None:
            raise SellerNotFoundError(seller_id)
        return count

    # -------------------------------------------------------------------------
    # Lease
    # -------------------------------------------------------------------------

    def acquire_lease(
        self,
        seller_id: str,
        holder: str,
        now: datetime,
        ttl: timedelta,
    ) -> None:
        """Take the seller's run lease for ``holder`` until ``now + ttl``.

        Re-entrant for the same holder; an expired lease can be taken over.

        Raises:
            SellerLeaseHeldError: If another live holder has the lease.
            SellerNotFoundError: If the seller does not exist.
        """
        with session_scope(self._session_factory) as session:
            result = session.execute(
                update(SellerModel)
                .where(
                    SellerModel.seller_id == seller_id,
                    or_(
                        SellerModel.lease_holder.is_(None),
                        SellerModel.lease_holder == holder,
                        SellerModel.lease_expires_at <= now,
                    ),
                )
                .values(lease_holder=holder, lease_expires_at=now + ttl)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return

            current_holder = session.execute(
                select(SellerModel.lease_holder)
                .where(SellerModel.seller_id == seller_id)
            ).one_or_none()

        if current_holder is None:
            raise SellerNotFoundError(seller_id)
        raise SellerLeaseHeldError(seller_id, current_holder[0])

    def release_lease(self, seller_id: str, holder: str) -> None:
        """Release the lease if ``holder`` still owns it."""
        with session_scope(self._session_factory) as session:
            session.execute(
                update(SellerModel)
                .where(
                    SellerModel.seller_id == seller_id,
                    SellerModel.lease_holder == holder,
                )
                .values(lease_holder=None, lease_expires_at=None)
                .execution_options(synchronize_session=False)
            )

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    def record_history(self, record: HistoryRecord) -> HistoryRecord:
        """Append one checkpoint-history row and return it as stored."""
        recorded_at = record.recorded_at or self._clock.now()
        with session_scope(self._session_factory) as session:
            last_seq = session.execute(
                select(func.max(CheckpointHistoryModel.seq))
                .where(CheckpointHistoryModel.seller_id == record.seller_id)
            ).scalar_one()
            model = CheckpointHistoryModel.from_dto(
                record, seq=(last_seq or 0) + 1, recorded_at=recorded_at,
            )
            session.add(model)
            session.flush()
            stored = model.to_dto()

        logger.debug(
            "checkpoint_history_recorded",
            extra={
                "seller_id": record.seller_id,
                "outcome": record.outcome.value,
                "seq": stored.seq,
            },
        )
        return stored
