"""
CheckpointCommitter -- makes a paid window durable.

Contract:
    ``commit(window)`` asks the store to move ``last_checkpoint`` from
    ``window_start`` to ``window_end``.  Transient store errors are retried
    in-process up to ``max_attempts`` times with linear backoff.  The store
    commit is idempotent, so a retry after an ambiguous failure that actually
    landed is a no-op success.

Failure modes:
    - CheckpointConflictError: another writer moved the checkpoint.  Never
      retried.
    - CheckpointCommitError: attempts exhausted, or the seller vanished.
"""

from __future__ import annotations

import time
from typing import Callable

from payout_kernel.exceptions import (
    CheckpointConflictError,
    CheckpointCommitError,
    SellerNotFoundError,
)
from payout_kernel.logging_config import get_logger
from payout_kernel.services.ledger_store import LedgerStore

from payout_batch.domain.types import RunWindow

logger = get_logger("batch.committer")


class CheckpointCommitter:
    """Bounded-retry wrapper around ``LedgerStore.commit_checkpoint``."""

    def __init__(
        self,
        store: LedgerStore,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._store = store
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    def commit(self, window: RunWindow) -> bool:
        """Returns True if the checkpoint moved, False if it already had."""
        last_error: Exception | None = None

        for attempt in range(1, self._max_attempts + 1):
            try:
                moved = self._store.commit_checkpoint(
                    window.seller_id,
                    window.window_end,
                    expected_checkpoint=window.window_start,
                )
            except CheckpointConflictError:
                raise
            except SellerNotFoundError as exc:
                raise CheckpointCommitError(
                    window.seller_id, window.window_end, attempt, str(exc),
                ) from exc
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "checkpoint_commit_attempt_failed",
                    extra={
                        "attempt": attempt,
                        "max_attempts": self._max_attempts,
                        "error": str(exc),
                    },
                )
                if attempt < self._max_attempts:
                    self._sleep(self._backoff_seconds * attempt)
                continue

            if attempt > 1:
                logger.info("checkpoint_commit_recovered", extra={"attempt": attempt})
            return moved

        raise CheckpointCommitError(
            window.seller_id,
            window.window_end,
            self._max_attempts,
            str(last_error),
        ) from last_error
