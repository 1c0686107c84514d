"""
Pytest fixtures for the payout test suite.

Provides:
- A file-backed SQLite database per test (tmp_path), tables created
- DeterministicClock pinned to the standard run time T1
- SqlLedgerStore / LedgerWriter over that database
- Recording test doubles for the payment rail, notifier and alerter
- ``add_seller`` / ``make_orchestrator`` builders

No PostgreSQL required.  SQLite stores Numeric as float; the amounts used
here are exact in binary at the stored precision.
"""

import json
import logging
import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from io import StringIO

import pytest
from sqlalchemy.orm import sessionmaker

from payout_config.schema import RunConfig
from payout_kernel.db.engine import create_payout_engine, create_tables, reset_engine
from payout_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from payout_kernel.domain.clock import DeterministicClock
from payout_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from payout_kernel.services.ledger_store import SqlLedgerStore
from payout_kernel.services.ledger_writer import LedgerWriter

from payout_batch.domain.types import AlertSeverity
from payout_batch.orchestrator import PayoutRunOrchestrator

# Previous checkpoint and the run time used by most tests.
T0 = datetime(2026, 2, 1, 0, 0, 0, tzinfo=timezone.utc)
T1 = datetime(2026, 2, 2, 0, 0, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    """T0 plus ``seconds``."""
    return T0 + timedelta(seconds=seconds)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture payout logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.run_payout_cycle()
            logs = captured_logs()
            assert any(r["message"] == "payout_run_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payout")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()


@pytest.fixture
def engine(tmp_path):
    eng = create_payout_engine(f"sqlite:///{tmp_path / 'payouts.db'}")
    create_tables(eng)
    yield eng
    eng.dispose()
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def clock():
    return DeterministicClock(T1)


@pytest.fixture
def store(session_factory, clock):
    return SqlLedgerStore(session_factory, clock=clock)


@pytest.fixture
def writer(session_factory, clock):
    return LedgerWriter(session_factory, clock=clock)


@pytest.fixture
def add_seller(writer):
    """Register a seller with one product and the given entries.

    Usage::

        add_seller("s-1", entries=[(1, "100"), (2, "-30")])  # seconds after T0
    """

    def _add(
        seller_id: str,
        entries=(),
        checkpoint: datetime = T0,
        tenant_id: str | None = None,
    ):
        writer.register_seller(seller_id, checkpoint, tenant_id=tenant_id)
        product_id = f"{seller_id}-product"
        writer.register_product(product_id, seller_id)
        for offset, amount in entries:
            occurred = offset if isinstance(offset, datetime) else at(offset)
            writer.append_entry(product_id, Decimal(amount), occurred)
        return product_id

    return _add


# =============================================================================
# Store doubles
# =============================================================================


class DelegatingStore:
    """Wraps a real store; individual methods can be overridden."""

    def __init__(self, inner, **overrides):
        self._inner = inner
        self.overrides = overrides

    def __getattr__(self, name):
        if name in self.overrides:
            return self.overrides[name]
        return getattr(self._inner, name)


def always_raise(error):
    def _raise(*args, **kwargs):
        raise error
    return _raise


# =============================================================================
# Collaborator doubles
# =============================================================================


class RecordingPaymentRail:
    """Records transfers.  Sellers in ``decline`` get False, ``explode`` raise."""

    def __init__(self, decline=(), explode=()):
        self.decline = set(decline)
        self.explode = set(explode)
        self.calls: list[tuple[str, Decimal, str]] = []
        self._lock = threading.Lock()
        self.on_disburse = None

    def disburse(self, seller_id, amount, reference):
        with self._lock:
            self.calls.append((seller_id, amount, reference))
        if self.on_disburse is not None:
            self.on_disburse(seller_id)
        if seller_id in self.explode:
            raise ConnectionError("rail unreachable")
        return seller_id not in self.decline

    def paid(self, seller_id):
        return [c for c in self.calls if c[0] == seller_id]


class RecordingNotifier:
    def __init__(self, decline=(), explode=()):
        self.decline = set(decline)
        self.explode = set(explode)
        self.calls: list[tuple[str, Decimal]] = []
        self._lock = threading.Lock()

    def notify(self, seller_id, amount):
        with self._lock:
            self.calls.append((seller_id, amount))
        if seller_id in self.explode:
            raise TimeoutError("notification service timed out")
        return seller_id not in self.decline


class RecordingAlerter:
    def __init__(self, explode=False):
        self.explode = explode
        self.alerts: list[tuple[str, str, str, AlertSeverity]] = []
        self._lock = threading.Lock()

    def alert(self, seller_id, failing_step, error_detail, severity=AlertSeverity.WARNING):
        with self._lock:
            self.alerts.append((seller_id, failing_step, error_detail, severity))
        if self.explode:
            raise RuntimeError("pager down")

    def for_seller(self, seller_id):
        return [a for a in self.alerts if a[0] == seller_id]


@pytest.fixture
def rail():
    return RecordingPaymentRail()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def alerter():
    return RecordingAlerter()


@pytest.fixture
def make_orchestrator(store, rail, notifier, alerter, clock):
    """Build an orchestrator over the test store; kwargs override RunConfig."""

    def _make(store_override=None, clock_override=None, **run_settings):
        run_settings.setdefault("commit_backoff_seconds", 0)
        return PayoutRunOrchestrator(
            store=store_override or store,
            payment_rail=rail,
            notifier=notifier,
            alerter=alerter,
            clock=clock_override or clock,
            run_config=RunConfig(**run_settings),
            sleep=lambda seconds: None,
        )

    return _make


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()
