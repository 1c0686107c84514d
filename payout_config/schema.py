"""
Payout run configuration schema.

Frozen dataclasses parsed from YAML by ``payout_config.loader``.  Validation
happens in ``__post_init__`` so an invalid configuration can never be
constructed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class NegativeBalancePolicy(str, Enum):
    """What a run does with a seller whose window nets below zero."""

    CARRY_FORWARD = "carry_forward"  # Keep the checkpoint; net against later sales
    SKIP = "skip"  # Pay nothing and advance the checkpoint


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """Ledger Store connection settings."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("database.url is required")
        if self.pool_size < 1:
            raise ValueError(f"database.pool_size must be >= 1, got {self.pool_size}")


@dataclass(frozen=True)
class RunConfig:
    """Behaviour of one payout cycle."""

    max_workers: int = 1
    commit_max_attempts: int = 3
    commit_backoff_seconds: float = 0.5
    lease_ttl_seconds: int = 3600
    negative_balance_policy: NegativeBalancePolicy = NegativeBalancePolicy.CARRY_FORWARD
    tenant_id: str | None = None

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ValueError(f"run.max_workers must be >= 1, got {self.max_workers}")
        if self.commit_max_attempts < 1:
            raise ValueError(
                f"run.commit_max_attempts must be >= 1, got {self.commit_max_attempts}"
            )
        if self.commit_backoff_seconds < 0:
            raise ValueError("run.commit_backoff_seconds must be >= 0")
        if self.lease_ttl_seconds < 1:
            raise ValueError("run.lease_ttl_seconds must be >= 1")


@dataclass(frozen=True)
class CollaboratorConfig:
    """Dotted ``module:attribute`` factory paths for external collaborators.

    ``alerter`` defaults to the built-in structured-log alerter.  The payment
    rail and notifier have no default: a run cannot pay anyone without them.
    """

    payment_rail: str | None = None
    notifier: str | None = None
    alerter: str = "payout_batch.collaborators:LoggingAlerter"
    options: dict[str, dict] = field(default_factory=dict)


@dataclass(frozen=True)
class PayoutConfig:
    """Complete configuration for the payout system."""

    database: DatabaseConfig
    run: RunConfig = field(default_factory=RunConfig)
    collaborators: CollaboratorConfig = field(default_factory=CollaboratorConfig)
    config_id: str = "default"
    version: int = 1
    checksum: str = ""
