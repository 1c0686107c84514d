"""
payout_config -- single public entrypoint for payout run configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``PayoutConfig``.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Parse-time validation: an invalid setting raises before any seller is
      touched.
    - Deterministic checksum: same YAML always yields the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the requested configuration file is missing.
    - ``ValueError`` / ``KeyError`` -- schema validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``PAYOUT_CONFIG_TRACE`` log entry containing config_id, version,
    checksum and the effective run settings.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from payout_config.loader import load_config_file
from payout_config.schema import (
    CollaboratorConfig,
    DatabaseConfig,
    NegativeBalancePolicy,
    PayoutConfig,
    RunConfig,
)
from payout_kernel.logging_config import get_logger

_logger = get_logger("config")

# Default configuration set
DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(
    config_path: Path | None = None,
    database_url: str | None = None,
) -> PayoutConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to ``sets/default.yaml``.
        database_url: Optional override for ``database.url`` (CLI flag).

    Returns:
        PayoutConfig -- frozen, validated configuration.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If validation fails.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    config = load_config_file(path)

    if database_url is not None:
        config = replace(config, database=replace(config.database, url=database_url))

    _logger.info(
        "PAYOUT_CONFIG_TRACE",
        extra={
            "trace_type": "PAYOUT_CONFIG_TRACE",
            "config_path": str(path),
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "max_workers": config.run.max_workers,
            "commit_max_attempts": config.run.commit_max_attempts,
            "negative_balance_policy": config.run.negative_balance_policy.value,
            "tenant_id": config.run.tenant_id,
        },
    )
    return config


__all__ = [
    "CollaboratorConfig",
    "DEFAULT_CONFIG_PATH",
    "DatabaseConfig",
    "NegativeBalancePolicy",
    "PayoutConfig",
    "RunConfig",
    "get_active_config",
]
