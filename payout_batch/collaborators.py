"""
External collaborator protocols, the default alerter, and the loader that
wires concrete collaborators from configuration.

Contract:
    ``PaymentRail.disburse`` and ``SellerNotifier.notify`` report success by
    returning a truthy value.  Returning a falsy value or raising is a
    failure.  ``Alerter.alert`` is fire-and-forget: the orchestrator logs and
    drops anything it raises.

Non-goals:
    - No real payment-rail or notification integration lives here.
"""

from __future__ import annotations

import importlib
from decimal import Decimal
from typing import Any, Callable, Protocol, runtime_checkable

from payout_kernel.exceptions import CollaboratorLoadError
from payout_kernel.logging_config import get_logger

from payout_batch.domain.types import AlertSeverity

logger = get_logger("batch.collaborators")


@runtime_checkable
class PaymentRail(Protocol):
    """Transfers funds to a seller."""

    def disburse(self, seller_id: str, amount: Decimal, reference: str) -> bool:
        """Transfer ``amount`` to ``seller_id``.

        ``reference`` identifies the seller window; rails should treat a
        repeated reference as the same transfer.
        """
        ...


@runtime_checkable
class SellerNotifier(Protocol):
    """Informs a seller about a payout."""

    def notify(self, seller_id: str, amount: Decimal) -> bool: ...


@runtime_checkable
class Alerter(Protocol):
    """Routes a seller-level failure to operators."""

    def alert(
        self,
        seller_id: str,
        failing_step: str,
        error_detail: str,
        severity: AlertSeverity = AlertSeverity.WARNING,
    ) -> None: ...


class LoggingAlerter:
    """Alerter that emits one structured log record per alert.

    CRITICAL alerts are logged at CRITICAL level so log-based paging can
    treat them differently from ordinary failures.
    """

    def __init__(self, logger_name: str = "alerts"):
        self._logger = get_logger(logger_name)

    def alert(
        self,
        seller_id: str,
        failing_step: str,
        error_detail: str,
        severity: AlertSeverity = AlertSeverity.WARNING,
    ) -> None:
        level = "critical" if severity is AlertSeverity.CRITICAL else "error"
        getattr(self._logger, level)(
            "payout_alert",
            extra={
                "alert_seller_id": seller_id,
                "failing_step": failing_step,
                "error_detail": error_detail,
                "severity": severity.value,
            },
        )


# =============================================================================
# Loader
# =============================================================================


def _resolve(path: str) -> Any:
    module_name, sep, attr_path = path.partition(":")
    if not sep or not module_name or not attr_path:
        raise ValueError("expected 'module:attribute'")
    target: Any = importlib.import_module(module_name)
    for attr in attr_path.split("."):
        target = getattr(target, attr)
    return target


def load_collaborator(
    role: str,
    path: str,
    options: dict[str, Any] | None = None,
    protocol: type | None = None,
) -> Any:
    """Import ``module:attribute`` and build the collaborator.

    Classes and other callables are called with ``**options``; any other
    object is used as-is.

    Raises:
        CollaboratorLoadError: If the path cannot be imported, the factory
            fails, or the result does not satisfy ``protocol``.
    """
    try:
        target = _resolve(path)
    except (ImportError, AttributeError, ValueError) as exc:
        raise CollaboratorLoadError(role, path, str(exc)) from exc

    if callable(target):
        factory: Callable[..., Any] = target
        try:
            instance = factory(**(options or {}))
        except TypeError as exc:
            raise CollaboratorLoadError(role, path, str(exc)) from exc
    else:
        instance = target

    if protocol is not None and not isinstance(instance, protocol):
        raise CollaboratorLoadError(
            role, path, f"object does not implement {protocol.__name__}",
        )

    logger.info(
        "collaborator_loaded",
        extra={"role": role, "path": path, "type": type(instance).__name__},
    )
    return instance
