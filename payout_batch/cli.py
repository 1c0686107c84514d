"""
payout-cycle -- operator command line.

Usage:
    payout-cycle run [--config PATH] [--database-url URL]
    payout-cycle resolve SELLER_ID [--not-paid]
    payout-cycle history SELLER_ID [--limit N]
    payout-cycle history --run-id RUN_ID [SELLER_ID]
    payout-cycle init-db

Examples:
    # One payout cycle with the default configuration set
    payout-cycle run

    # Against a local SQLite database
    payout-cycle --database-url sqlite:///payouts.db run

    # Operator confirmed the unconfirmed transfer went through
    payout-cycle resolve seller-42

    # Every seller a run touched, by the run_id from its summary
    payout-cycle history --run-id 6f1c0e4a-2b7d-4c39-9a57-3f0e1d2c4b8a

Exit codes:
    0  success (every seller committed or deferred)
    1  configuration, collaborator or listing failure; nothing was paid
    2  the run finished but at least one seller failed
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Sequence
from uuid import UUID

import yaml

from payout_config import get_active_config
from payout_config.schema import PayoutConfig
from payout_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
)
from payout_kernel.exceptions import PayoutError
from payout_kernel.logging_config import configure_logging, get_logger
from payout_kernel.services.ledger_store import SqlLedgerStore

from payout_batch.domain.types import RunSummary
from payout_batch.orchestrator import PayoutRunOrchestrator
from payout_batch.resolution import resolve_unconfirmed_payout

logger = get_logger("batch.cli")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_SELLER_FAILURES = 2


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="payout-cycle",
        description="Seller payout reconciliation: run, inspect and resolve payout cycles.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration YAML (default: the packaged default set).",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override database.url from the configuration.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for the structured JSON log on stderr (default: INFO).",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Execute one payout cycle across all sellers.")

    resolve = sub.add_parser(
        "resolve", help="Clear a seller held by an unconfirmed payout.",
    )
    resolve.add_argument("seller_id")
    resolve.add_argument(
        "--not-paid",
        action="store_true",
        help="The transfer did not happen; pay the window again on the next run.",
    )

    history = sub.add_parser(
        "history", help="Show a seller's or a run's checkpoint history.",
    )
    history.add_argument("seller_id", nargs="?")
    history.add_argument("--limit", type=int, default=20)
    history.add_argument(
        "--run-id",
        type=UUID,
        default=None,
        help="Show the rows one run wrote, optionally for SELLER_ID only.",
    )

    sub.add_parser("init-db", help="Create the payout tables.")

    args = parser.parse_args(argv)
    if args.command == "history" and args.seller_id is None and args.run_id is None:
        parser.error("history needs SELLER_ID or --run-id")
    return args


def _emit(payload: Any) -> None:
    print(json.dumps(payload, default=str, indent=2))


def _summary_payload(summary: RunSummary) -> dict[str, Any]:
    return {
        "run_id": summary.run_id,
        "committed_count": summary.committed_count,
        "failed_count": summary.failed_count,
        "deferred_count": summary.deferred_count,
        "total_disbursed": summary.total_disbursed,
        "cancelled": summary.cancelled,
        "duration_ms": summary.duration_ms,
        "failures": [
            {
                "seller_id": f.seller_id,
                "step": f.step.value,
                "error_code": f.error_code,
                "error": f.error,
                "severity": f.severity.value,
            }
            for f in summary.failures
        ],
    }


def _store(config: PayoutConfig) -> SqlLedgerStore:
    init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )
    return SqlLedgerStore(get_session_factory())


def _cmd_run(config: PayoutConfig) -> int:
    orchestrator = PayoutRunOrchestrator.from_config(config)

    def _on_signal(signum, frame):
        logger.warning("payout_run_signal_received", extra={"signal": signum})
        orchestrator.cancel()

    previous = {
        sig: signal.signal(sig, _on_signal)
        for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        summary = orchestrator.run_payout_cycle()
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    _emit(_summary_payload(summary))
    return EXIT_SELLER_FAILURES if summary.failed_count else EXIT_OK


def _cmd_resolve(config: PayoutConfig, seller_id: str, paid: bool) -> int:
    record = resolve_unconfirmed_payout(_store(config), seller_id, paid=paid)
    _emit(asdict(record))
    return EXIT_OK


def _cmd_history(
    config: PayoutConfig,
    seller_id: str | None,
    limit: int,
    run_id: UUID | None = None,
) -> int:
    store = _store(config)
    if run_id is not None:
        rows = [
            r for r in store.run_history(run_id)
            if seller_id is None or r.seller_id == seller_id
        ]
    else:
        store.get_seller(seller_id)
        rows = list(store.seller_history(seller_id, limit))
    _emit([asdict(r) for r in rows])
    return EXIT_OK


def _cmd_init_db(config: PayoutConfig) -> int:
    engine = init_engine_from_url(config.database.url, echo=config.database.echo)
    create_tables(engine)
    _emit({"database": engine.url.render_as_string(hide_password=True), "tables": "created"})
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(level=getattr(logging, args.log_level))

    try:
        config = get_active_config(args.config, database_url=args.database_url)
    except (OSError, ValueError, KeyError, yaml.YAMLError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return EXIT_ERROR

    try:
        if args.command == "run":
            return _cmd_run(config)
        if args.command == "resolve":
            return _cmd_resolve(config, args.seller_id, paid=not args.not_paid)
        if args.command == "history":
            return _cmd_history(config, args.seller_id, args.limit, run_id=args.run_id)
        return _cmd_init_db(config)
    except PayoutError as e:
        logger.error("payout_cli_failed", extra={"error_code": e.code, "error": str(e)})
        print(f"ERROR [{e.code}]: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
