"""
Tests for payout_batch.pipeline.aggregator -- DeltaAggregator and the pure
``fold_entries``.

Includes hypothesis properties for the half-open boundary and the exact
signed sum.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from payout_kernel.domain.dtos import LedgerEntryRecord
from payout_kernel.exceptions import LedgerReadError

from payout_batch.domain.types import RunWindow
from payout_batch.pipeline.aggregator import DeltaAggregator, fold_entries

from tests.conftest import T0, T1, at

WINDOW = RunWindow("s-1", T0, T1)
WINDOW_SECONDS = int((T1 - T0).total_seconds())


def _entry(offset_seconds, amount):
    return LedgerEntryRecord(
        amount=Decimal(amount),
        occurred_at=at(offset_seconds),
        product_id="p-1",
    )


amounts = st.decimals(
    min_value=Decimal("-10000"),
    max_value=Decimal("10000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
offsets = st.integers(min_value=-WINDOW_SECONDS, max_value=2 * WINDOW_SECONDS)


class TestFoldEntries:
    def test_signed_sum(self):
        agg = fold_entries(WINDOW, [_entry(1, "100"), _entry(2, "-30")])

        assert agg.net_amount == Decimal("70")
        assert agg.entry_count == 2
        assert agg.gross_purchases == Decimal("100")
        assert agg.gross_refunds == Decimal("-30")

    def test_empty_is_zero(self):
        agg = fold_entries(WINDOW, [])
        assert agg.net_amount == Decimal("0")
        assert agg.entry_count == 0

    def test_boundaries(self):
        entries = [
            _entry(-1, "1000"),             # before start
            _entry(0, "5"),                 # at start: counted
            _entry(WINDOW_SECONDS, "2000"),  # at end: next window
        ]

        agg = fold_entries(WINDOW, entries)

        assert agg.net_amount == Decimal("5")
        assert agg.entry_count == 1

    def test_out_of_window_logged(self, captured_logs):
        fold_entries(WINDOW, [_entry(WINDOW_SECONDS, "1")])

        assert any(
            r["message"] == "entries_outside_window_ignored" and r["ignored_count"] == 1
            for r in captured_logs()
        )

    @settings(max_examples=200)
    @given(st.lists(st.tuples(offsets, amounts), max_size=40))
    def test_net_equals_sum_of_in_window_entries(self, raw):
        entries = [_entry(o, a) for o, a in raw]
        expected = sum(
            (Decimal(a) for o, a in raw if 0 <= o < WINDOW_SECONDS),
            Decimal("0"),
        )

        assert fold_entries(WINDOW, entries).net_amount == expected

    @given(
        st.lists(st.tuples(offsets, amounts), max_size=30),
        st.integers(min_value=1, max_value=WINDOW_SECONDS - 1),
    )
    def test_split_windows_add_up(self, raw, split_offset):
        """Two adjacent windows count every entry exactly once."""
        entries = [_entry(o, a) for o, a in raw]
        split = at(split_offset)

        left = fold_entries(RunWindow("s-1", T0, split), entries).net_amount
        right = fold_entries(RunWindow("s-1", split, T1), entries).net_amount

        assert left + right == fold_entries(WINDOW, entries).net_amount

    @given(st.lists(st.tuples(offsets, amounts), max_size=30))
    def test_order_independent(self, raw):
        entries = [_entry(o, a) for o, a in raw]
        assert (
            fold_entries(WINDOW, entries).net_amount
            == fold_entries(WINDOW, list(reversed(entries))).net_amount
        )


class FailingStore:
    def __init__(self, error):
        self.error = error

    def read_entries(self, seller_id, window_start, window_end):
        raise self.error


class TestDeltaAggregator:
    def test_reads_window_from_store(self, store, add_seller):
        add_seller("s-1", entries=[(1, "100"), (2, "-30"), (WINDOW_SECONDS, "500")])

        agg = DeltaAggregator(store).aggregate(WINDOW)

        assert agg.net_amount == Decimal("70")
        assert agg.window is WINDOW

    def test_empty_window_skips_read(self):
        window = RunWindow("s-1", T0, T0)
        agg = DeltaAggregator(FailingStore(RuntimeError("unused"))).aggregate(window)
        assert agg.net_amount == Decimal("0")

    def test_read_error_propagates(self):
        error = LedgerReadError("s-1", "statement timeout")
        with pytest.raises(LedgerReadError) as exc_info:
            DeltaAggregator(FailingStore(error)).aggregate(WINDOW)
        assert exc_info.value is error

    def test_other_errors_wrapped(self):
        with pytest.raises(LedgerReadError) as exc_info:
            DeltaAggregator(FailingStore(TimeoutError("read timed out"))).aggregate(WINDOW)

        assert exc_info.value.retryable is True
        assert "read timed out" in exc_info.value.reason
