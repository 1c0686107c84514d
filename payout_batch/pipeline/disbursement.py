"""
DisbursementExecutor -- decides what to do with a net amount and does it.

Contract:
    ``decide(amount)`` is pure:

        amount > 0                      -> PAY
        amount == 0                     -> SKIP_ZERO
        amount < 0, policy skip         -> SKIP_NEGATIVE
        amount < 0, policy carry_forward-> CARRY_FORWARD

    ``execute(aggregation)`` pays and then notifies only for PAY.  Every other
    decision is an explicit no-op receipt: nothing is transferred and the
    seller is not notified.

Failure modes:
    - PaymentRailError: the rail raised, declined, or is not configured.
      Nothing was paid; the checkpoint must not move.
    - NotificationError: payment went through but the notifier failed.
      Treated as a failed disbursement (checkpoint stays put); the rail
      receives the same payout reference on the next run.
"""

from __future__ import annotations

from decimal import Decimal

from payout_config.schema import NegativeBalancePolicy
from payout_kernel.exceptions import NotificationError, PaymentRailError
from payout_kernel.logging_config import get_logger

from payout_batch.collaborators import PaymentRail, SellerNotifier
from payout_batch.domain.types import (
    Aggregation,
    DisbursementDecision,
    DisbursementReceipt,
)

logger = get_logger("batch.disbursement")


class DisbursementExecutor:
    """Pays and notifies one seller for one aggregated window."""

    def __init__(
        self,
        payment_rail: PaymentRail | None,
        notifier: SellerNotifier | None,
        negative_balance_policy: NegativeBalancePolicy = NegativeBalancePolicy.CARRY_FORWARD,
    ):
        self._payment_rail = payment_rail
        self._notifier = notifier
        self._policy = negative_balance_policy

    def decide(self, amount: Decimal) -> DisbursementDecision:
        if amount > 0:
            return DisbursementDecision.PAY
        if amount == 0:
            return DisbursementDecision.SKIP_ZERO
        if self._policy is NegativeBalancePolicy.SKIP:
            return DisbursementDecision.SKIP_NEGATIVE
        return DisbursementDecision.CARRY_FORWARD

    def execute(self, aggregation: Aggregation) -> DisbursementReceipt:
        window = aggregation.window
        seller_id = window.seller_id
        amount = aggregation.net_amount
        decision = self.decide(amount)
        reference = window.payout_reference

        if decision is not DisbursementDecision.PAY:
            logger.info(
                "disbursement_skipped",
                extra={"decision": decision.value, "net_amount": amount},
            )
            return DisbursementReceipt(
                seller_id=seller_id,
                amount=amount,
                decision=decision,
                reference=reference,
            )

        self._pay(seller_id, amount, reference)
        self._notify(seller_id, amount)

        logger.info(
            "disbursement_completed",
            extra={"net_amount": amount, "payout_reference": reference},
        )
        return DisbursementReceipt(
            seller_id=seller_id,
            amount=amount,
            decision=decision,
            reference=reference,
            paid=True,
            notified=True,
        )

    def _pay(self, seller_id: str, amount: Decimal, reference: str) -> None:
        if self._payment_rail is None:
            raise PaymentRailError(seller_id, "no payment rail configured")
        try:
            accepted = self._payment_rail.disburse(seller_id, amount, reference)
        except Exception as exc:
            raise PaymentRailError(seller_id, str(exc) or type(exc).__name__) from exc
        if not accepted:
            raise PaymentRailError(seller_id, "transfer declined")

    def _notify(self, seller_id: str, amount: Decimal) -> None:
        if self._notifier is None:
            raise NotificationError(seller_id, "no notifier configured")
        try:
            delivered = self._notifier.notify(seller_id, amount)
        except Exception as exc:
            raise NotificationError(seller_id, str(exc) or type(exc).__name__) from exc
        if not delivered:
            raise NotificationError(seller_id, "notification not delivered")
