"""
Configuration Loader (``payout_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen dataclasses
of ``payout_config.schema``.  The public entry point for callers is
``payout_config.get_active_config()``.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Unknown keys are rejected, so a misspelled setting cannot be ignored.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``database.url``  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml

from payout_config.schema import (
    CollaboratorConfig,
    DatabaseConfig,
    NegativeBalancePolicy,
    PayoutConfig,
    RunConfig,
)

_TOP_LEVEL_KEYS = frozenset({"config_id", "version", "database", "run", "collaborators"})
_DATABASE_KEYS = frozenset({"url", "echo", "pool_size", "max_overflow"})
_RUN_KEYS = frozenset({
    "max_workers",
    "commit_max_attempts",
    "commit_backoff_seconds",
    "lease_ttl_seconds",
    "negative_balance_policy",
    "tenant_id",
})
_COLLABORATOR_KEYS = frozenset({"payment_rail", "notifier", "alerter", "options"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping")
    return data


def _check_keys(section: str, data: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"Unknown key(s) in {section}: {sorted(unknown)}")


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    _check_keys("database", data, _DATABASE_KEYS)
    return DatabaseConfig(
        url=data["url"],
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
    )


def parse_run(data: dict[str, Any]) -> RunConfig:
    _check_keys("run", data, _RUN_KEYS)
    policy = data.get("negative_balance_policy", NegativeBalancePolicy.CARRY_FORWARD.value)
    try:
        policy_enum = NegativeBalancePolicy(policy)
    except ValueError:
        raise ValueError(
            f"run.negative_balance_policy must be one of "
            f"{[p.value for p in NegativeBalancePolicy]}, got {policy!r}"
        ) from None
    return RunConfig(
        max_workers=int(data.get("max_workers", 1)),
        commit_max_attempts=int(data.get("commit_max_attempts", 3)),
        commit_backoff_seconds=float(data.get("commit_backoff_seconds", 0.5)),
        lease_ttl_seconds=int(data.get("lease_ttl_seconds", 3600)),
        negative_balance_policy=policy_enum,
        tenant_id=data.get("tenant_id"),
    )


def parse_collaborators(data: dict[str, Any]) -> CollaboratorConfig:
    _check_keys("collaborators", data, _COLLABORATOR_KEYS)
    defaults = CollaboratorConfig()
    return CollaboratorConfig(
        payment_rail=data.get("payment_rail"),
        notifier=data.get("notifier"),
        alerter=data.get("alerter") or defaults.alerter,
        options=dict(data.get("options") or {}),
    )


def parse_config(data: dict[str, Any]) -> PayoutConfig:
    """Parse a raw YAML mapping into a PayoutConfig (checksum included)."""
    _check_keys("configuration", data, _TOP_LEVEL_KEYS)
    config = PayoutConfig(
        database=parse_database(data["database"]),
        run=parse_run(data.get("run") or {}),
        collaborators=parse_collaborators(data.get("collaborators") or {}),
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
    )
    return replace(config, checksum=compute_checksum(data))


def load_config_file(path: Path) -> PayoutConfig:
    return parse_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 over the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()
